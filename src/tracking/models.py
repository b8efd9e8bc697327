# src/tracking/models.py — v2
"""Tracking domain models: UpstreamCallRecord, ModelUsage."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class UpstreamCallRecord(BaseModel):
    """One upstream model call as sent through the transport."""

    call_id: str
    timestamp: datetime
    purpose: str
    model: str
    max_output_tokens: int
    schema_enabled: bool
    outcome: Literal["completed", "incomplete", "refused", "error"]
    error_code: str | None = None
    text_chars: int = 0
    latency_ms: int


class ModelUsage(BaseModel):
    """Per-model aggregate over the recorded calls."""

    model: str
    total_calls: int
    failed_calls: int = 0
    avg_latency_ms: float = 0.0
