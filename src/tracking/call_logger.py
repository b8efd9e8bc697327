# src/tracking/call_logger.py — v2
"""Upstream call log — records every call sent to the proxy.

Kept in memory for the lifetime of the orchestrator. Used for
diagnostics (`easyread explain --calls PATH`) and by tests to count calls.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path

from easyread.tracking.models import ModelUsage, UpstreamCallRecord

logger = logging.getLogger(__name__)


class CallLogger:
    """Accumulates upstream call records."""

    def __init__(self) -> None:
        self._records: list[UpstreamCallRecord] = []

    def record(
        self,
        purpose: str,
        model: str,
        max_output_tokens: int,
        schema_enabled: bool,
        outcome: str,
        latency_ms: int,
        text_chars: int = 0,
        error_code: str | None = None,
    ) -> UpstreamCallRecord:
        """Record an upstream call.

        Args:
            purpose: Call purpose (explain, explanation, vocabulary, repair, moderation).
            model: Model the call was routed to.
            max_output_tokens: Output budget requested.
            schema_enabled: Whether a JSON schema was attached.
            outcome: completed / incomplete / refused / error.
            latency_ms: Wall time of the transport call.
            text_chars: Length of the text the provider returned.
            error_code: Error code when the call raised.
        """
        record = UpstreamCallRecord(
            call_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            purpose=purpose,
            model=model,
            max_output_tokens=max_output_tokens,
            schema_enabled=schema_enabled,
            outcome=outcome,  # type: ignore[arg-type]
            error_code=error_code,
            text_chars=text_chars,
            latency_ms=latency_ms,
        )
        self._records.append(record)
        logger.debug(
            "Upstream %s call: model=%s budget=%d schema=%s outcome=%s (%dms)",
            purpose, model, max_output_tokens, schema_enabled, outcome, latency_ms,
        )
        return record

    @property
    def records(self) -> list[UpstreamCallRecord]:
        return list(self._records)

    @property
    def total_calls(self) -> int:
        return len(self._records)

    def calls_for(self, purpose: str) -> list[UpstreamCallRecord]:
        return [r for r in self._records if r.purpose == purpose]

    def usage_by_model(self) -> dict[str, ModelUsage]:
        grouped: dict[str, list[UpstreamCallRecord]] = defaultdict(list)
        for record in self._records:
            grouped[record.model].append(record)
        return {
            model: ModelUsage(
                model=model,
                total_calls=len(records),
                failed_calls=sum(1 for r in records if r.outcome == "error"),
                avg_latency_ms=sum(r.latency_ms for r in records) / len(records),
            )
            for model, records in grouped.items()
        }

    def clear(self) -> None:
        self._records.clear()

    def save(self, path: Path) -> None:
        """Save all records to a JSON Lines file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            for record in self._records:
                f.write(json.dumps(record.model_dump(), default=str) + "\n")
