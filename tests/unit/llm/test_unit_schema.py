# tests/unit/llm/test_unit_schema.py — v1
"""Tests for llm/schema.py — schemas and the tolerant parser."""

from __future__ import annotations

import json

import pytest

from easyread.core.errors import MalformedOutput
from easyread.llm.schema import (
    EXPLAIN_SCHEMA,
    EXPLANATION_ONLY_SCHEMA,
    VOCABULARY_ONLY_SCHEMA,
    load_json_object,
    normalize_level,
    normalize_part_of_speech,
    parse_explain_result,
    parse_vocabulary,
)


class TestSchemas:
    @pytest.mark.parametrize("schema", [EXPLAIN_SCHEMA, EXPLANATION_ONLY_SCHEMA, VOCABULARY_ONLY_SCHEMA])
    def test_strict_mode_requirements(self, schema):
        # strict structured output needs every property required and no extras
        assert schema["additionalProperties"] is False
        assert set(schema["required"]) == set(schema["properties"])

    def test_explanation_only_has_no_vocabulary(self):
        assert "vocabulary" not in EXPLANATION_ONLY_SCHEMA["properties"]


class TestNormalizers:
    @pytest.mark.parametrize("raw,expected", [
        ("adj", "adjective"),
        ("ADV", "adverb"),
        ("prep", "preposition"),
        ("pron", "pronoun"),
        ("det", "determiner"),
        ("conj", "conjunction"),
        ("noun", "noun"),
        ("interjection", "other"),
        (None, "other"),
    ])
    def test_part_of_speech(self, raw, expected):
        assert normalize_part_of_speech(raw) == expected

    @pytest.mark.parametrize("raw,expected", [("c1", "C1"), ("B2", "B2"), ("X9", "unknown"), (3, "unknown")])
    def test_level(self, raw, expected):
        assert normalize_level(raw) == expected


class TestLoadJsonObject:
    def test_plain(self):
        assert load_json_object('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert load_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_object(self):
        assert load_json_object('Here you go: {"a": {"b": 2}} Thanks!') == {"a": {"b": 2}}

    def test_no_object(self):
        with pytest.raises(MalformedOutput) as exc:
            load_json_object("no json here")
        assert exc.value.raw_text == "no json here"

    def test_truncated_object(self):
        with pytest.raises(MalformedOutput):
            load_json_object('{"explanation": "cut')

    def test_array_rejected(self):
        with pytest.raises(MalformedOutput):
            load_json_object("[1, 2]")


class TestParseExplainResult:
    def test_canonical_keys(self, explain_body):
        result = parse_explain_result(json.dumps(explain_body))
        assert result.explanation == explain_body["explanation"]
        assert [e.word for e in result.vocabulary] == ["dilapidated", "allocate"]
        assert result.vocabulary[0].part_of_speech == "adjective"
        assert result.confidence == 0.8

    def test_legacy_keys(self):
        legacy = {
            "simple_explanation": "Easy words.",
            "a2_plus_words": [{
                "word": "allocate", "pos": "v", "cefr": "c1",
                "definition_simple": "To give.", "example_simple": "We give.",
            }],
            "notes": "",
            "confidence": 0.4,
        }
        result = parse_explain_result(json.dumps(legacy))
        assert result.explanation == "Easy words."
        entry = result.vocabulary[0]
        assert (entry.lemma, entry.part_of_speech, entry.level) == ("allocate", "verb", "C1")
        assert entry.definition == "To give."
        assert entry.example == "We give."

    def test_missing_fields_default(self):
        result = parse_explain_result('{"explanation": "  Hi.  "}')
        assert result.explanation == "Hi."
        assert result.vocabulary == []
        assert result.confidence == 0.5

    def test_items_without_word_skipped(self):
        body = {"explanation": "x", "vocabulary": [{"lemma": "a"}, "junk", {"word": "ok"}]}
        result = parse_explain_result(json.dumps(body))
        assert [e.word for e in result.vocabulary] == ["ok"]

    def test_confidence_clamped(self):
        assert parse_explain_result('{"explanation": "x", "confidence": 7}').confidence == 1.0
        assert parse_explain_result('{"explanation": "x", "confidence": true}').confidence == 0.5


def test_parse_vocabulary(sample_entries):
    entries = parse_vocabulary(json.dumps({"vocabulary": sample_entries}))
    assert len(entries) == 2
    assert parse_vocabulary('{"vocabulary": "nope"}') == []
