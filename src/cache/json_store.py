# src/cache/json_store.py — v2
"""JSON file-based cache store (default CACHE_BACKEND=json).

One file per entry under CACHE_ROOT, named after the fingerprint.
Writes go to a temp file first and are moved into place, so a reader
never sees a half-written entry.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from easyread.cache.base_cache_store import BaseCacheStore
from easyread.cache.models import CacheEntry

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using JSON files."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, key: str) -> CacheEntry | None:
        """Retrieve cache entry by key. Unreadable files count as absent."""
        path = self._entry_path(key)
        if not path.exists():
            return None
        try:
            return CacheEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Failed to read cache entry %s: %s", key[:12], e)
            return None

    async def put(self, key: str, entry: CacheEntry) -> None:
        path = self._entry_path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-", suffix=_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(entry.model_dump_json(by_alias=True))
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def delete(self, key: str) -> None:
        self._entry_path(key).unlink(missing_ok=True)

    async def clear(self) -> int:
        count = 0
        for path in self._root.glob(f"*{_SUFFIX}"):
            if path.name.startswith(".tmp-"):
                continue
            path.unlink(missing_ok=True)
            count += 1
        return count

    async def keys(self) -> list[str]:
        return [
            path.stem
            for path in sorted(self._root.glob(f"*{_SUFFIX}"))
            if not path.name.startswith(".tmp-")
        ]

    def _entry_path(self, key: str) -> Path:
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._root / f"{safe_key}{_SUFFIX}"
