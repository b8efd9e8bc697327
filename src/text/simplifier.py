# src/text/simplifier.py — v1
"""LanguageSanitizer — last-line language safety for outgoing results.

Every explanation, definition and example leaving the coordinator goes
through `enforce()`. A fixed hard-word table runs first. Hard words that
survive are then either swapped for a placeholder word ("placeholder"
strategy) or cause the text to be replaced by a keyword template
("replace" strategy). Template sentences use lexicon words only.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import TYPE_CHECKING, Literal

from easyread.core.models import ExplainResult, VocabularyEntry
from easyread.text.analyzer import TOKEN_RE, TextAnalyzer

if TYPE_CHECKING:
    from easyread.config.settings import Settings

logger = logging.getLogger(__name__)

Strategy = Literal["placeholder", "replace"]

EASY_WORD_REPLACEMENTS: dict[str, str] = {
    "details": "small things",
    "closely": "very carefully",
    "emulated": "copied",
    "hometown": "home town",
    "souvenir": "gift",
    "emblazoned": "with words on it",
    "slogans": "short words",
    "stationery": "paper and pens",
    "bearing": "with",
    "likeness": "face",
    "alongside": "next to",
    "political": "government",
    "idol": "hero",
    "former": "past",
    "minister": "leader",
    "confidence": "clear sign",
    "detected": "found",
    "incomplete": "not done",
}

FALLBACK_STOP_WORDS: frozenset[str] = frozenset(
    "about after again also and are because been before being both but can could "
    "does each even from have having into just like made many more most much only "
    "other over same some than that their them then there they this those very were "
    "what when where which while with would".split()
)

NO_TEXT_EXPLANATION = "We could not read this text."
HARD_WORDS_EXPLANATION = "This text has hard words. Please choose a short part."
DEFAULT_DEFINITION = "This word is not easy."
DEFAULT_EXAMPLE = "I see this word here."

MODEL_PROBLEM_NOTE = "EasyRead had a model problem. This is a short backup answer."
NO_HARD_WORDS_NOTE = "EasyRead did not find clear hard words above B1."
EMPTY_EXPLANATION_NOTE = "EasyRead filled a backup explanation because the model returned empty text."
_MODEL_PROBLEM_MARKERS = (
    "cut off", "incomplete", "json", "fallback", "model problem", "backup answer",
)

_SPACE_RE = re.compile(r"\s+")
_KEYWORD_RE = re.compile(r"[a-z]+(?:'[a-z]+)?")
_REPLACEMENT_PATTERNS = [
    (re.compile(rf"\b{re.escape(hard)}\b", re.IGNORECASE), easy)
    for hard, easy in sorted(
        EASY_WORD_REPLACEMENTS.items(), key=lambda kv: len(kv[0]), reverse=True,
    )
]


def apply_easy_word_replacements(text: str) -> str:
    """Apply the fixed hard-word table (longest keys first), collapse spaces."""
    result = text or ""
    for pattern, easy in _REPLACEMENT_PATTERNS:
        result = pattern.sub(easy, result)
    return _SPACE_RE.sub(" ", result).strip()


def simplify_note(note: str) -> str:
    """Canned wording for technical notes, table replacements otherwise."""
    raw = (note or "").strip()
    if not raw:
        return ""
    lower = raw.lower()
    if any(marker in lower for marker in _MODEL_PROBLEM_MARKERS):
        return MODEL_PROBLEM_NOTE
    if "no words above b1" in lower:
        return NO_HARD_WORDS_NOTE
    return apply_easy_word_replacements(raw)


def append_note(existing: str, note: str) -> str:
    """Join two notes with a space, skipping duplicates and blanks."""
    existing = (existing or "").strip()
    note = (note or "").strip()
    if not note or note in existing:
        return existing
    return f"{existing} {note}" if existing else note


class LanguageSanitizer:
    """Enforces easy language on results and builds local fallbacks."""

    def __init__(
        self,
        analyzer: TextAnalyzer,
        strategy: Strategy = "placeholder",
        placeholder_word: str = "something",
    ) -> None:
        self._analyzer = analyzer
        self._strategy = strategy
        self._placeholder = placeholder_word
        self._repeat_re = re.compile(
            rf"\b({re.escape(placeholder_word)})(?:\s+\1\b)+", re.IGNORECASE,
        )

    @classmethod
    def from_settings(cls, settings: Settings, analyzer: TextAnalyzer) -> LanguageSanitizer:
        return cls(
            analyzer,
            strategy=settings.language_strategy,
            placeholder_word=settings.placeholder_word,
        )

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    # --- Fallback builders ---

    def fallback_keywords(self, text: str, max_count: int = 6) -> list[str]:
        """Easy non-stopword tokens of 4+ letters, most frequent first."""
        counts: Counter[str] = Counter()
        first_seen: dict[str, int] = {}
        for index, token in enumerate(_KEYWORD_RE.findall((text or "").lower())):
            if len(token) < 4 or token in FALLBACK_STOP_WORDS:
                continue
            if not self._analyzer.lexicon.accepts(token):
                continue
            counts[token] += 1
            first_seen.setdefault(token, index)
        ranked = sorted(counts, key=lambda t: (-counts[t], first_seen[t]))
        return ranked[:max_count]

    def build_fallback_explanation(self, selected_text: str) -> str:
        normalized = _SPACE_RE.sub(" ", selected_text or "").strip()
        if not normalized:
            return NO_TEXT_EXPLANATION
        kw = self.fallback_keywords(normalized)
        if len(kw) >= 4:
            return (
                f"This text talks about {kw[0]}, {kw[1]}, {kw[2]}, and {kw[3]}. "
                "It tells what happened and why it matters."
            )
        if len(kw) >= 2:
            return (
                f"This text talks about {kw[0]} and {kw[1]}. "
                "It gives key facts and the main point."
            )
        return HARD_WORDS_EXPLANATION

    def build_local_fallback_result(self, selected_text: str, note: str = "") -> ExplainResult:
        """Deterministic result used when every model attempt failed."""
        return ExplainResult(
            explanation=self.build_fallback_explanation(selected_text),
            vocabulary=[],
            notes=simplify_note(note),
            confidence=0.2,
        )

    def ensure_non_empty_explanation(
        self, result: ExplainResult, selected_text: str, note: str = EMPTY_EXPLANATION_NOTE,
    ) -> ExplainResult:
        """Fill an empty explanation, cap confidence at 0.35."""
        if result.is_usable:
            return result
        logger.info("Empty explanation, using local fallback sentence")
        return result.model_copy(update={
            "explanation": self.build_fallback_explanation(selected_text),
            "notes": append_note(result.notes, simplify_note(note)),
            "confidence": min(result.confidence, 0.35),
        })

    # --- Enforcement ---

    def simplify_text(self, text: str) -> str:
        """Table replacements, then hard-word placeholders if enabled."""
        simplified = apply_easy_word_replacements(text)
        if not simplified or self._strategy != "placeholder":
            return simplified
        return self._substitute_placeholders(simplified)

    def enforce(self, result: ExplainResult, selected_text: str) -> ExplainResult:
        """Return a copy of `result` that passes `is_simple_enough`."""
        explanation = self.simplify_text(result.explanation)
        if explanation and self._analyzer.find_difficult_words(explanation):
            explanation = self.build_fallback_explanation(selected_text)
        if not explanation and selected_text:
            explanation = self.build_fallback_explanation(selected_text)

        vocabulary: list[VocabularyEntry] = []
        for entry in result.vocabulary:
            cleaned = self._enforce_entry(entry)
            if cleaned is not None:
                vocabulary.append(cleaned)

        dropped = len(result.vocabulary) - len(vocabulary)
        if dropped:
            logger.debug("Dropped %d vocabulary entries with hard wording", dropped)

        return result.model_copy(update={
            "explanation": explanation,
            "vocabulary": vocabulary,
            "notes": simplify_note(result.notes),
        })

    def _enforce_entry(self, entry: VocabularyEntry) -> VocabularyEntry | None:
        definition = self.simplify_text(entry.definition) or DEFAULT_DEFINITION
        example = self.simplify_text(entry.example) or DEFAULT_EXAMPLE
        if self._analyzer.find_difficult_words(f"{definition} {example}"):
            return None
        return entry.model_copy(update={"definition": definition, "example": example})

    def _substitute_placeholders(self, text: str) -> str:
        def swap(match: re.Match[str]) -> str:
            token = match.group(0)
            return self._placeholder if self._analyzer.is_difficult(token) else token

        replaced = TOKEN_RE.sub(swap, text)
        return self._repeat_re.sub(r"\1", replaced)
