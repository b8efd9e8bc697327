# tests/unit/cache/test_unit_cache_stores.py — v1
"""Tests for the cache store backends, fingerprints and factory."""

from __future__ import annotations

import json

import pytest

from easyread.cache.cache_factory import create_cache_store
from easyread.cache.fingerprint import compute_fingerprint
from easyread.cache.json_store import JsonCacheStore
from easyread.cache.memory_store import MemoryCacheStore
from easyread.cache.models import CacheEntry, RequestSnapshot
from easyread.core.models import ExplainResult, VocabularyEntry


@pytest.fixture
def entry() -> CacheEntry:
    return CacheEntry(
        created_at=1_700_000_000_000,
        expires_at=1_700_604_800_000,
        request_snapshot=RequestSnapshot(
            selected_text="It’s a “quoted” naïve café.",
            explanation_mode="detailed",
            model="gpt-5-mini",
        ),
        result=ExplainResult(
            explanation="A small shop.",
            vocabulary=[VocabularyEntry(
                word="naïve", lemma="naive", part_of_speech="adjective", level="B2",
                definition="Too ready to believe.", example="He was young and believed all.",
            )],
            notes="",
            confidence=0.6,
        ),
    )


class TestFingerprint:
    def test_deterministic_hex(self):
        key = compute_fingerprint("https://a.com", "text", "balanced", "gpt-5-nano", "v1")
        assert key == compute_fingerprint("https://a.com", "text", "balanced", "gpt-5-nano", "v1")
        assert len(key) == 64
        assert all(c in "0123456789abcdef" for c in key)

    @pytest.mark.parametrize("changed", [
        ("https://b.com", "text", "balanced", "gpt-5-nano", "v1"),
        ("https://a.com", "text ", "balanced", "gpt-5-nano", "v1"),
        ("https://a.com", "text", "simple", "gpt-5-nano", "v1"),
        ("https://a.com", "text", "balanced", "gpt-5-mini", "v1"),
        ("https://a.com", "text", "balanced", "gpt-5-nano", "v2"),
    ])
    def test_every_part_matters(self, changed):
        base = compute_fingerprint("https://a.com", "text", "balanced", "gpt-5-nano", "v1")
        assert compute_fingerprint(*changed) != base

    def test_separator_in_origin_does_not_collide(self):
        shifted = compute_fingerprint("https://a.com||text", "more", "balanced", "gpt-5-nano", "v1")
        assert shifted != compute_fingerprint("https://a.com", "text||more", "balanced", "gpt-5-nano", "v1")


class TestMemoryCacheStore:
    @pytest.mark.asyncio
    async def test_round_trip_preserves_unicode(self, entry):
        store = MemoryCacheStore()
        await store.put("k", entry)
        assert await store.get("k") == entry

    @pytest.mark.asyncio
    async def test_stored_as_camel_case_json(self, entry):
        store = MemoryCacheStore()
        await store.put("k", entry)
        data = json.loads(store.raw("k"))
        assert data["createdAt"] == entry.created_at
        assert data["requestSnapshot"]["explanationMode"] == "detailed"
        assert data["result"]["vocabulary"][0]["partOfSpeech"] == "adjective"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, entry):
        store = MemoryCacheStore()
        await store.put("a", entry)
        await store.put("b", entry)
        await store.delete("a")
        await store.delete("absent")
        assert await store.keys() == ["b"]
        assert await store.clear() == 1


class TestJsonCacheStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path, entry):
        store = JsonCacheStore(cache_root=tmp_path / "cache")
        await store.put("abc", entry)
        assert await store.get("abc") == entry
        assert (tmp_path / "cache" / "abc.json").exists()

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, tmp_path, entry):
        store = JsonCacheStore(cache_root=tmp_path)
        await store.put("abc", entry)
        assert [p.name for p in tmp_path.iterdir()] == ["abc.json"]

    @pytest.mark.asyncio
    async def test_corrupt_file_is_a_miss(self, tmp_path):
        store = JsonCacheStore(cache_root=tmp_path)
        (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
        assert await store.get("bad") is None

    @pytest.mark.asyncio
    async def test_keys_and_clear(self, tmp_path, entry):
        store = JsonCacheStore(cache_root=tmp_path)
        await store.put("b", entry)
        await store.put("a", entry)
        assert await store.keys() == ["a", "b"]
        assert await store.clear() == 2
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_key_cannot_escape_root(self, tmp_path, entry):
        store = JsonCacheStore(cache_root=tmp_path / "cache")
        await store.put("../evil", entry)
        assert not (tmp_path / "evil.json").exists()


class TestFactory:
    def test_memory(self, make_settings):
        assert isinstance(create_cache_store(make_settings(cache_backend="memory")), MemoryCacheStore)

    def test_json(self, make_settings, tmp_path):
        store = create_cache_store(make_settings(cache_backend="json", cache_root=tmp_path / "c"))
        assert isinstance(store, JsonCacheStore)
        assert store.root == tmp_path / "c"
