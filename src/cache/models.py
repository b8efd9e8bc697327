# src/cache/models.py — v2
"""Cache domain models: RequestSnapshot, CacheEntry."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from easyread.core.models import ExplainResult


class _StoredModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestSnapshot(_StoredModel):
    """The request parts that produced a cached result."""

    selected_text: str
    explanation_mode: str
    model: str


class CacheEntry(_StoredModel):
    """Single cache entry. Timestamps are epoch milliseconds."""

    created_at: int
    expires_at: int
    request_snapshot: RequestSnapshot
    result: ExplainResult

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at < now_ms
