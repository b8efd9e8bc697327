# src/llm/schema.py — v1
"""Structured-output JSON schemas and the tolerant response parser.

The parser accepts the canonical keys (explanation, vocabulary,
part_of_speech, level, definition, example) and the legacy ones
(simple_explanation, a2_plus_words, pos, cefr, definition_simple,
example_simple). Markdown code fences and prose around the JSON object
are stripped before parsing.
"""

from __future__ import annotations

import json
import re
from typing import Any

from easyread.core.errors import MalformedOutput
from easyread.core.models import (
    CEFR_VALUES,
    PART_OF_SPEECH_VALUES,
    ExplainResult,
    VocabularyEntry,
)

_POS_ALIASES: dict[str, str] = {
    "adj": "adjective",
    "adv": "adverb",
    "prep": "preposition",
    "pron": "pronoun",
    "det": "determiner",
    "conj": "conjunction",
    "n": "noun",
    "v": "verb",
}

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)

VOCABULARY_ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["word", "lemma", "part_of_speech", "level", "definition", "example"],
    "properties": {
        "word": {"type": "string", "minLength": 1},
        "lemma": {"type": "string", "minLength": 1},
        "part_of_speech": {"type": "string", "enum": sorted(PART_OF_SPEECH_VALUES)},
        "level": {"type": "string", "enum": ["A2", "B1", "B2", "C1", "C2", "unknown"]},
        "definition": {"type": "string", "minLength": 1},
        "example": {"type": "string", "minLength": 1},
    },
}

EXPLAIN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["explanation", "vocabulary", "notes", "confidence"],
    "properties": {
        "explanation": {"type": "string"},
        "vocabulary": {"type": "array", "items": VOCABULARY_ITEM_SCHEMA},
        "notes": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
}

EXPLANATION_ONLY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["explanation", "notes", "confidence"],
    "properties": {
        "explanation": {"type": "string"},
        "notes": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
}

VOCABULARY_ONLY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["vocabulary"],
    "properties": {
        "vocabulary": {"type": "array", "items": VOCABULARY_ITEM_SCHEMA},
    },
}

SCHEMA_NAMES: dict[str, str] = {
    "explain": "easyread_output",
    "explanation": "easyread_explanation_only",
    "vocabulary": "easyread_word_coverage",
}


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _confidence(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.5
    return float(value)


def normalize_part_of_speech(value: object) -> str:
    pos = _text(value).lower()
    pos = _POS_ALIASES.get(pos, pos)
    return pos if pos in PART_OF_SPEECH_VALUES else "other"


def normalize_level(value: object) -> str:
    level = _text(value).upper()
    return level if level in CEFR_VALUES else "unknown"


def load_json_object(raw_text: str) -> dict[str, Any]:
    """Parse the first JSON object in `raw_text`.

    Raises:
        MalformedOutput: If no JSON object can be decoded.
    """
    text = (raw_text or "").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start < 0 or end <= start:
            raise MalformedOutput("No JSON object found in model output.", raw_text) from None
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError as e:
            raise MalformedOutput(f"Invalid JSON in model output: {e.msg}", raw_text) from e

    if not isinstance(parsed, dict):
        raise MalformedOutput("Parsed result is not an object.", raw_text)
    return parsed


def normalize_vocabulary(items: object) -> list[VocabularyEntry]:
    """Coerce a raw list into entries, skipping items without a word."""
    if not isinstance(items, list):
        return []
    entries: list[VocabularyEntry] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        word = _text(item.get("word"))
        if not word:
            continue
        entries.append(VocabularyEntry(
            word=word,
            lemma=_text(item.get("lemma")) or word.lower(),
            part_of_speech=normalize_part_of_speech(_first(item, "part_of_speech", "partOfSpeech", "pos")),
            level=normalize_level(_first(item, "level", "cefr")),
            definition=_text(_first(item, "definition", "definition_simple")),
            example=_text(_first(item, "example", "example_simple")),
        ))
    return entries


def parse_explain_result(raw_text: str) -> ExplainResult:
    """Parse a combined or explanation-only model answer."""
    data = load_json_object(raw_text)
    return ExplainResult(
        explanation=_text(_first(data, "explanation", "simple_explanation")),
        vocabulary=normalize_vocabulary(_first(data, "vocabulary", "a2_plus_words")),
        notes=_text(data.get("notes")),
        confidence=_confidence(data.get("confidence")),
    )


def parse_vocabulary(raw_text: str) -> list[VocabularyEntry]:
    """Parse a vocabulary-only model answer."""
    data = load_json_object(raw_text)
    return normalize_vocabulary(_first(data, "vocabulary", "a2_plus_words"))
