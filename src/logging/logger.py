# src/logging/logger.py — v2
"""Formatters and handler wiring for the easyread logger tree.

JSON lines are flat: request context fields (request_id, fingerprint,
stage) sit beside the message so a log shipper can filter on them.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from easyread.logging.context import LogContext, get_context

if TYPE_CHECKING:
    from easyread.config.settings import Settings

_ROOT = "easyread"


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, context fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": _record_time(record).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
        }
        entry.update(get_context().as_dict())
        entry["msg"] = record.getMessage()

        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Single-line text for terminals: ``time LEVEL logger [request/stage] msg``."""

    @staticmethod
    def _tag(ctx: LogContext) -> str:
        parts = [p for p in (ctx.request_id, ctx.stage) if p]
        return f"[{'/'.join(parts)}] " if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        stamp = _record_time(record).strftime("%H:%M:%S.%f")[:-3]
        line = (
            f"{stamp} {record.levelname:<7} {record.name} "
            f"{self._tag(get_context())}{record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


_FORMATTERS: dict[str, type[logging.Formatter]] = {
    "json": JsonFormatter,
    "text": TextFormatter,
}


def build_formatter(log_format: str) -> logging.Formatter:
    try:
        return _FORMATTERS[log_format]()
    except KeyError:
        raise ValueError(f"Unknown log format: {log_format!r}") from None


def _resolve_level(level: str) -> int:
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | Path | None = None,
    rotation: str = "10MB",
    retention: int = 5,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """(Re)configure the ``easyread`` logger and return it.

    Handlers from a previous call are closed and replaced.
    """
    formatter = build_formatter(log_format)

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        from easyread.logging.handlers import create_rotating_handler

        handlers.append(create_rotating_handler(log_file, rotation=rotation, retention=retention))

    root = logging.getLogger(_ROOT)
    for old in root.handlers[:]:
        root.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    return root


def setup_from_settings(settings: Settings) -> logging.Logger:
    return setup_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
