# src/text/analyzer.py — v1
"""TextAnalyzer — difficult-word detection against the easy-word lexicon.

Tokens are runs of ASCII letters with at most one internal apostrophe.
Tokens of two characters or fewer, numbers and proper-noun-shaped tokens
(acronyms, Capitalized-Hyphenated-Names) are never flagged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from easyread.core.models import ExplainResult
from easyread.lexicon.easy_words import EasyWordLexicon, normalize_token

TOKEN_RE = re.compile(r"[A-Za-z]+(?:'[A-Za-z]+)?")
_NUMBER_RE = re.compile(r"^[0-9]+([.,][0-9]+)?$")
_ACRONYM_RE = re.compile(r"^[A-Z]{2,}$")
_HYPHENATED_NAME_RE = re.compile(r"^[A-Z][a-z]+(?:-[A-Z][a-z]+)+$")


@dataclass(frozen=True)
class SimplicityReport:
    """Outcome of a simplicity check over a generated result."""

    valid: bool
    offending_words: list[str] = field(default_factory=list)


def looks_like_proper_noun(token: str) -> bool:
    if not token:
        return False
    return bool(_ACRONYM_RE.match(token) or _HYPHENATED_NAME_RE.match(token))


def tokenize(text: str) -> list[str]:
    """Surface tokens in order of appearance."""
    if not text:
        return []
    return TOKEN_RE.findall(text)


class TextAnalyzer:
    """Flags difficult words and validates output simplicity."""

    def __init__(self, lexicon: EasyWordLexicon) -> None:
        self._lexicon = lexicon

    @property
    def lexicon(self) -> EasyWordLexicon:
        return self._lexicon

    def is_difficult(self, token: str) -> bool:
        """Single-token difficulty test (skip rules included)."""
        if len(token) <= 2 or _NUMBER_RE.match(token) or looks_like_proper_noun(token):
            return False
        return not self._lexicon.accepts(token)

    def find_difficult_words(self, text: str) -> set[str]:
        """Normalized tokens of `text` that the lexicon does not accept."""
        return {
            normalize_token(token)
            for token in tokenize(text)
            if self.is_difficult(token)
        }

    def find_difficult_ordered(self, text: str) -> list[str]:
        """Same as find_difficult_words, in first-seen order."""
        seen: dict[str, None] = {}
        for token in tokenize(text):
            if self.is_difficult(token):
                seen.setdefault(normalize_token(token), None)
        return list(seen)

    def extract_candidates(self, text: str, max_count: int = 24) -> list[str]:
        """First-seen surface forms of difficult words, capped at max_count."""
        candidates: dict[str, str] = {}
        if max_count <= 0:
            return []
        for token in tokenize(text):
            if len(token) <= 2 or looks_like_proper_noun(token):
                continue
            normalized = normalize_token(token)
            if not normalized or self._lexicon.accepts(normalized):
                continue
            if normalized not in candidates:
                candidates[normalized] = token
                if len(candidates) >= max_count:
                    break
        return list(candidates.values())

    def is_simple_enough(self, result: ExplainResult) -> SimplicityReport:
        """Re-run difficulty detection over every generated text field.

        Checks the explanation plus each vocabulary definition and example.
        """
        offending: dict[str, None] = {}
        for text in _generated_fields(result):
            for word in self.find_difficult_ordered(text):
                offending.setdefault(word, None)
        return SimplicityReport(valid=not offending, offending_words=list(offending))


def _generated_fields(result: ExplainResult) -> list[str]:
    fields = [result.explanation] if result.explanation else []
    for entry in result.vocabulary:
        if entry.definition:
            fields.append(entry.definition)
        if entry.example:
            fields.append(entry.example)
    return fields
