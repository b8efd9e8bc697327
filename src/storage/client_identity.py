# src/storage/client_identity.py — v1
"""Anonymous client identity, generated once and persisted locally.

Stored as JSON ({"anonymousClientId": "..."}) in the file given by the
caller, normally next to the cache directory.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

IDENTITY_FILENAME = "client.json"
_KEY = "anonymousClientId"


def identity_path_for(cache_root: Path) -> Path:
    """Identity file location for a cache root (its parent directory)."""
    return Path(cache_root).expanduser().parent / IDENTITY_FILENAME


def load_or_create_client_id(path: Path, configured: str = "") -> str:
    """Return the configured id, else the persisted one, else a new UUID.

    A new id is written to `path` before it is returned.
    """
    if configured.strip():
        return configured.strip()

    path = Path(path).expanduser()
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable client identity file %s: %s", path, e)
        else:
            existing = data.get(_KEY) if isinstance(data, dict) else None
            if isinstance(existing, str) and existing.strip():
                return existing.strip()

    client_id = str(uuid.uuid4())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({_KEY: client_id}), encoding="utf-8")
    logger.info("Created anonymous client id at %s", path)
    return client_id
