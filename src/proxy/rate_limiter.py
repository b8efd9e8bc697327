# src/proxy/rate_limiter.py — v1
"""Per-client rate limiter for the proxy.

Each (client id, remote address) pair gets a rolling window counter and a
calendar-day counter (UTC). A request is rejected when either counter is
at its cap; rejected requests are not counted.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

ANONYMOUS_CLIENT = "anon"
UNKNOWN_ADDRESS = "ip-unknown"


def _now_ms() -> int:
    return int(time.time() * 1000)


def day_key(now_ms: int) -> str:
    """UTC calendar date (YYYY-MM-DD) for an epoch-ms timestamp."""
    return datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


@dataclass
class RateEntry:
    window_reset_at: int
    window_count: int
    day_key: str
    day_count: int


@dataclass(frozen=True)
class RateDecision:
    ok: bool
    retry_after_s: int = 0


class RateLimiter:
    """Window + daily counters keyed by ``clientId|ip``."""

    def __init__(
        self,
        window_ms: int,
        max_per_window: int,
        max_per_day: int,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._window_ms = window_ms
        self._max_per_window = max_per_window
        self._max_per_day = max_per_day
        self._clock = clock
        self._entries: dict[str, RateEntry] = {}

    @staticmethod
    def key_for(client_id: str, address: str | None) -> str:
        client = client_id.strip() or ANONYMOUS_CLIENT
        return f"{client}|{address or UNKNOWN_ADDRESS}"

    def __len__(self) -> int:
        return len(self._entries)

    def check(self, client_id: str, address: str | None) -> RateDecision:
        now = self._clock()
        today = day_key(now)
        key = self.key_for(client_id, address)

        entry = self._entries.get(key)
        if entry is None:
            entry = RateEntry(now + self._window_ms, 0, today, 0)
            self._entries[key] = entry

        if now >= entry.window_reset_at:
            entry.window_reset_at = now + self._window_ms
            entry.window_count = 0
        if entry.day_key != today:
            entry.day_key = today
            entry.day_count = 0

        if (
            entry.window_count >= self._max_per_window
            or entry.day_count >= self._max_per_day
        ):
            retry_after = max(1, math.ceil((entry.window_reset_at - now) / 1000))
            return RateDecision(ok=False, retry_after_s=retry_after)

        entry.window_count += 1
        entry.day_count += 1
        return RateDecision(ok=True)
