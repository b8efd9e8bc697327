# src/proxy/payload.py — v1
"""Sanitise model-call payloads before they are forwarded upstream."""

from __future__ import annotations

import math
from typing import Any

MIN_OUTPUT_TOKENS = 64
MAX_OUTPUT_TOKENS = 2000

STRIPPED_PARAMETERS = ("temperature", "top_p", "frequency_penalty", "presence_penalty")


def sanitize_payload(payload: Any) -> dict[str, Any] | None:
    """Return a copy safe to forward, or None when payload is not an object.

    Forces ``store=False``, drops sampling parameters the models reject and
    clamps ``max_output_tokens`` into [64, 2000].
    """
    if not isinstance(payload, dict):
        return None

    sanitized = dict(payload)
    sanitized["store"] = False
    for name in STRIPPED_PARAMETERS:
        sanitized.pop(name, None)

    budget = sanitized.get("max_output_tokens")
    if isinstance(budget, (int, float)) and not isinstance(budget, bool):
        if math.isfinite(budget):
            sanitized["max_output_tokens"] = max(
                MIN_OUTPUT_TOKENS, min(MAX_OUTPUT_TOKENS, math.floor(budget)),
            )
    return sanitized
