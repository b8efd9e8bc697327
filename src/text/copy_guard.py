# src/text/copy_guard.py — v1
"""Copy detection: reject explanations that just repeat the selection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from easyread.config.settings import Settings

_NON_WORD_RE = re.compile(r"[^a-z0-9\s']")
_SPACE_RE = re.compile(r"\s+")


def normalize_for_similarity(text: str) -> str:
    """Lowercase, punctuation to spaces, collapse whitespace."""
    lowered = (text or "").lower()
    return _SPACE_RE.sub(" ", _NON_WORD_RE.sub(" ", lowered)).strip()


def ngram_set(tokens: list[str], n: int) -> set[str]:
    if n <= 0 or len(tokens) < n:
        return set()
    return {" ".join(tokens[i : i + n]) for i in range(len(tokens) - n + 1)}


@dataclass(frozen=True)
class CopyGuard:
    """Similarity thresholds for the copy check."""

    ngram_size: int = 4
    overlap_ratio: float = 0.55
    min_tokens: int = 20
    substring_min_chars: int = 70

    @classmethod
    def from_settings(cls, settings: Settings) -> CopyGuard:
        return cls(
            ngram_size=settings.copy_ngram_size,
            overlap_ratio=settings.copy_overlap_ratio,
            min_tokens=settings.copy_min_tokens,
            substring_min_chars=settings.copy_substring_min_chars,
        )

    def overlap(self, explanation: str, source: str) -> float:
        """Share of explanation n-grams also present in the source."""
        exp_grams = ngram_set(normalize_for_similarity(explanation).split(), self.ngram_size)
        src_grams = ngram_set(normalize_for_similarity(source).split(), self.ngram_size)
        if not exp_grams or not src_grams:
            return 0.0
        return len(exp_grams & src_grams) / len(exp_grams)

    def is_too_close(self, explanation: str, source: str) -> bool:
        exp_norm = normalize_for_similarity(explanation)
        src_norm = normalize_for_similarity(source)
        if not exp_norm or not src_norm:
            return False
        if exp_norm == src_norm:
            return True
        if len(exp_norm) >= self.substring_min_chars and exp_norm in src_norm:
            return True

        exp_tokens = exp_norm.split()
        src_tokens = src_norm.split()
        if len(exp_tokens) < self.min_tokens or len(src_tokens) < self.min_tokens:
            return False
        return self.overlap(explanation, source) >= self.overlap_ratio
