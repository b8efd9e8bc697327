# src/llm/token_budget.py — v2
"""Output token budgets and vocabulary size limits by selection length."""

from __future__ import annotations

_MODE_ADJUSTMENT = {"simple": -120, "balanced": 0, "detailed": 220}

COMBINED_FLOOR = 650
EXPLANATION_FLOOR = 600


def _tiered(length: int, tiers: list[tuple[int, int]], top: int) -> int:
    for limit, value in tiers:
        if length <= limit:
            return value
    return top


def combined_budget(model: str, selection_length: int, mode: str, fast_model: str) -> int:
    """Budget for the single combined explain call.

    The fast model gets a smaller base budget than the large one.
    """
    if model == fast_model:
        budget = _tiered(selection_length, [(180, 800), (700, 950)], 1150)
    else:
        budget = _tiered(selection_length, [(700, 1100), (1800, 1400)], 1650)
    return max(COMBINED_FLOOR, budget + _MODE_ADJUSTMENT.get(mode, 0))


def explanation_budget(selection_length: int, mode: str) -> int:
    budget = _tiered(selection_length, [(320, 700), (1200, 900)], 1100)
    return max(EXPLANATION_FLOOR, budget + _MODE_ADJUSTMENT.get(mode, 0))


def word_limit(selection_length: int) -> int:
    """Maximum vocabulary entries requested for a selection."""
    return _tiered(selection_length, [(180, 10), (500, 14), (1200, 18)], 24)
