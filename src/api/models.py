# src/api/models.py — v2
"""In-process message contract between the UI and the coordinator.

Inbound:
  {type: "explain", requestId?, selectedText, pageUrl | pageOrigin, explanationMode?}
  {type: "clear-cache"}
Outbound:
  {ok: true, data: ExplainPayload} | {ok: false, error: str}
Push:
  {type: "words-update", requestId, explanationMode?, result? | error?}
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from easyread.core.models import ExplainPayload

EXPLAIN_TYPES = frozenset({"explain", "easyread-explain"})
CLEAR_CACHE_TYPES = frozenset({"clear-cache", "easyread-clear-cache"})


class _Message(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ExplainMessage(_Message):
    """Explain request as sent by the UI. Fields are validated later."""

    type: Any = "explain"
    request_id: Any = None
    selected_text: Any = None
    page_url: Any = None
    page_origin: Any = None
    explanation_mode: Any = None


class MessageResponse(_Message):
    """Reply to any inbound message."""

    ok: bool
    data: ExplainPayload | None = None
    error: str | None = None
    removed: int | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
