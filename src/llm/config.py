# src/llm/config.py — v2
"""Model routing: fast model for short selections, large model otherwise."""

from __future__ import annotations

from dataclasses import dataclass

from easyread.config.settings import Settings


@dataclass(frozen=True)
class ModelRouting:
    """Resolved fast/large model pair and the length cutoff between them."""

    fast: str
    large: str
    fast_max_chars: int

    @classmethod
    def from_settings(cls, settings: Settings) -> ModelRouting:
        return cls(
            fast=settings.model_fast,
            large=settings.model_large,
            fast_max_chars=settings.model_fast_max_chars,
        )

    def choose(self, selection_length: int) -> str:
        return self.large if selection_length > self.fast_max_chars else self.fast

    def escalate(self, model: str) -> str:
        """Model to use for repair or a retry after an empty fast answer."""
        return self.large if model == self.fast else model

    def is_fast(self, model: str) -> bool:
        return model == self.fast
