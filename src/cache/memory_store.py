# src/cache/memory_store.py — v1
"""In-process cache store (CACHE_BACKEND=memory), lost on restart."""

from __future__ import annotations

from easyread.cache.base_cache_store import BaseCacheStore
from easyread.cache.models import CacheEntry


class MemoryCacheStore(BaseCacheStore):
    """Dict-backed store. Entries are kept as serialized JSON."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> CacheEntry | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        return CacheEntry.model_validate_json(raw)

    async def put(self, key: str, entry: CacheEntry) -> None:
        self._data[key] = entry.model_dump_json(by_alias=True)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count

    async def keys(self) -> list[str]:
        return list(self._data)

    def raw(self, key: str) -> str | None:
        """Stored JSON text for a key, as written."""
        return self._data.get(key)
