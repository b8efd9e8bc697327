# src/cache/base_cache_store.py — v2
"""Abstract cache store interface (key-value, whole-entry writes)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from easyread.cache.models import CacheEntry


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve cache entry by fingerprint key."""

    @abstractmethod
    async def put(self, key: str, entry: CacheEntry) -> None:
        """Store cache entry, replacing any previous one."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove cache entry (no-op if absent)."""

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry. Returns the number removed."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List all stored keys."""
