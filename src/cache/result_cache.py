# src/cache/result_cache.py — v1
"""ResultCache — TTL layer over a cache store.

Expired entries are treated as absent and deleted when read. A disabled
cache answers every lookup with a miss and ignores writes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from easyread.cache.base_cache_store import BaseCacheStore
from easyread.cache.models import CacheEntry, RequestSnapshot
from easyread.core.models import ExplainResult

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ResultCache:
    """Fingerprint → ExplainResult with expiry."""

    def __init__(
        self,
        store: BaseCacheStore,
        ttl_s: int,
        enabled: bool = True,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._ttl_ms = ttl_s * 1000
        self._enabled = enabled
        self._clock = clock

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def get(self, key: str) -> ExplainResult | None:
        if not self._enabled:
            return None
        entry = await self._store.get(key)
        if entry is None:
            logger.debug("Cache miss %s", key[:12])
            return None
        if entry.is_expired(self._clock()):
            logger.debug("Cache entry %s expired, purging", key[:12])
            await self._store.delete(key)
            return None
        logger.debug("Cache hit %s", key[:12])
        return entry.result

    async def put(self, key: str, snapshot: RequestSnapshot, result: ExplainResult) -> None:
        """Write a whole new entry for `key`."""
        if not self._enabled:
            return
        now = self._clock()
        entry = CacheEntry(
            created_at=now,
            expires_at=now + self._ttl_ms,
            request_snapshot=snapshot,
            result=result,
        )
        await self._store.put(key, entry)

    async def clear(self) -> int:
        removed = await self._store.clear()
        logger.info("Cache cleared (%d entries)", removed)
        return removed

    async def prune_expired(self) -> int:
        """Delete expired entries. Returns the number removed."""
        now = self._clock()
        removed = 0
        for key in await self._store.keys():
            entry = await self._store.get(key)
            if entry is None or entry.is_expired(now):
                await self._store.delete(key)
                removed += 1
        if removed:
            logger.info("Pruned %d expired cache entries", removed)
        return removed
