# src/llm/retry.py — v2
"""Exponential backoff for upstream calls.

Only errors flagged `retriable` are retried. Delays start at the base
delay, double after each failed attempt and get up to `jitter_s` of
random jitter. Non-retriable errors and the last failure propagate
unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from easyread.config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters for a single upstream call."""

    max_attempts: int = 3
    base_delay_s: float = 0.6
    backoff_factor: float = 2.0
    jitter_s: float = 0.15

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryConfig:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_s=settings.retry_base_delay_s,
            jitter_s=settings.retry_jitter_s,
        )


def is_retriable(error: BaseException) -> bool:
    return bool(getattr(error, "retriable", False))


def compute_delay(config: RetryConfig, attempt: int) -> float:
    """Delay before the next try after failed attempt `attempt` (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter_s > 0:
        delay += random.random() * config.jitter_s  # noqa: S311
    return delay


async def with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    sleep: Sleep = asyncio.sleep,
    label: str = "upstream",
) -> T:
    """Run `fn` with exponential backoff on retriable errors.

    Raises:
        The last error once attempts are exhausted, or the first
        non-retriable error immediately.
    """
    config = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            attempt += 1
            if not is_retriable(e) or attempt >= config.max_attempts:
                raise
            delay = compute_delay(config, attempt - 1)
            logger.warning(
                "%s call failed: %s (attempt %d/%d), retrying in %.2fs",
                label, e, attempt, config.max_attempts, delay,
            )
            await sleep(delay)
