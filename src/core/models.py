# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types — all imports come from core.models.
Wire-facing models serialize with camelCase aliases (partOfSpeech,
requestId, wordsPending) while Python code uses snake_case names.
"""

from __future__ import annotations

from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ExplanationMode = Literal["simple", "balanced", "detailed"]
PartOfSpeech = Literal[
    "noun",
    "verb",
    "adjective",
    "adverb",
    "preposition",
    "pronoun",
    "determiner",
    "conjunction",
    "other",
]
CefrLevel = Literal["A2", "B1", "B2", "C1", "C2", "unknown"]

EXPLANATION_MODES: tuple[str, ...] = ("simple", "balanced", "detailed")
DEFAULT_EXPLANATION_MODE: ExplanationMode = "balanced"
PART_OF_SPEECH_VALUES: frozenset[str] = frozenset(get_args(PartOfSpeech))
CEFR_VALUES: frozenset[str] = frozenset(get_args(CefrLevel))
LEARNABLE_LEVELS: frozenset[str] = frozenset({"B2", "C1", "C2"})


class _WireModel(BaseModel):
    """Base for models exchanged with the UI (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# === RESULT MODELS ===


class VocabularyEntry(_WireModel):
    """A difficult word found in the selection, with a learner-friendly gloss."""

    word: str
    lemma: str
    part_of_speech: PartOfSpeech = "other"
    level: CefrLevel = "unknown"
    definition: str = ""
    example: str = ""

    @property
    def key(self) -> str:
        """Dedup key: normalized word, else normalized lemma."""
        return normalize_word_key(self.word) or normalize_word_key(self.lemma)

    @property
    def is_learnable(self) -> bool:
        """B2+ with non-empty definition and example."""
        return (
            self.level in LEARNABLE_LEVELS
            and bool(self.definition.strip())
            and bool(self.example.strip())
        )


class ExplainResult(_WireModel):
    """Canonical output: simplified explanation plus vocabulary glossary."""

    explanation: str = ""
    vocabulary: list[VocabularyEntry] = Field(default_factory=list)
    notes: str = ""
    confidence: float = 0.5

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:  # noqa: N805
        if v != v:  # NaN
            return 0.5
        return max(0.0, min(1.0, v))

    @property
    def is_usable(self) -> bool:
        return bool(self.explanation.strip())


# === REQUEST MODELS ===


class SelectionRequest(BaseModel):
    """Validated explain request, built once at the orchestrator boundary."""

    request_id: str
    selected_text: str
    page_origin: str = ""
    explanation_mode: ExplanationMode = DEFAULT_EXPLANATION_MODE
    context_id: str | None = None


class ExplainPayload(_WireModel):
    """`data` member of a successful explain response."""

    request_id: str
    result: ExplainResult
    cached: bool = False
    words_pending: bool = False
    explanation_mode: ExplanationMode = DEFAULT_EXPLANATION_MODE


class WordsUpdate(_WireModel):
    """Unsolicited push carrying the deferred vocabulary result."""

    type: Literal["words-update"] = "words-update"
    request_id: str
    explanation_mode: ExplanationMode | None = None
    result: ExplainResult | None = None
    error: str | None = None


def normalize_word_key(word: str | None) -> str:
    """Lowercase, fix mis-encoded apostrophes, strip edge apostrophes."""
    return (word or "").lower().replace("â€™", "'").replace("’", "'").strip("'")


def normalize_explanation_mode(mode: object) -> ExplanationMode:
    """Map free-form input to a known mode, defaulting to balanced."""
    value = mode.strip().lower() if isinstance(mode, str) else ""
    if value in EXPLANATION_MODES:
        return value  # type: ignore[return-value]
    return DEFAULT_EXPLANATION_MODE
