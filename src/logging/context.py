# src/logging/context.py — v1
"""Contextual logging support — attach request_id, fingerprint, stage to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging — set per explain request.
_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_fingerprint: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "fingerprint", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    request_id: str | None = None
    fingerprint: str | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        request_id=_request_id.get(),
        fingerprint=_fingerprint.get(),
        stage=_stage.get(),
    )


def set_request_context(request_id: str, fingerprint: str | None = None) -> None:
    """Set request-level context (called once per explain request).

    Only the first 12 hex chars of the fingerprint are kept.
    """
    _request_id.set(request_id)
    _fingerprint.set(fingerprint[:12] if fingerprint else None)


def set_stage(stage: str | None) -> None:
    """Set the pipeline stage (short, long, chunked, deferred, ...)."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _request_id.set(None)
    _fingerprint.set(None)
    _stage.set(None)
