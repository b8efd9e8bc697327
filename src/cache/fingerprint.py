# src/cache/fingerprint.py — v4
"""Content-addressed cache keys for explain results.

The key covers everything that changes the answer: page origin, the exact
selection, explanation mode, model and the output schema version.
"""

from __future__ import annotations

import hashlib
import json


def compute_fingerprint(
    page_origin: str,
    selected_text: str,
    explanation_mode: str,
    model: str,
    schema_version: str,
) -> str:
    """SHA-256 hex digest of the request parts serialized as a JSON array.

    Args:
        page_origin: Origin of the page the selection came from.
        selected_text: Selection exactly as submitted (not normalized).
        explanation_mode: simple / balanced / detailed.
        model: Model the request is routed to.
        schema_version: Output schema version tag.

    Returns:
        64-char lowercase hex string.
    """
    serialized = json.dumps(
        [page_origin or "", selected_text or "", explanation_mode or "", model or "", schema_version or ""],
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
