# src/cache/cache_factory.py — v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from easyread.cache.base_cache_store import BaseCacheStore
from easyread.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to the JSON backend.

    Returns:
        Configured BaseCacheStore implementation.
    """
    backend = "json" if settings is None else settings.cache_backend

    if backend == "json":
        from easyread.cache.json_store import JsonCacheStore
        cache_root = "~/.easyread/cache" if settings is None else settings.cache_root
        return JsonCacheStore(cache_root=cache_root)

    if backend == "memory":
        from easyread.cache.memory_store import MemoryCacheStore
        return MemoryCacheStore()

    raise ValueError(f"Unsupported cache backend: {backend!r}")
