# tests/integration/test_integration_explain_flow.py — v1
"""End-to-end request flows through MessageFacade with a scripted transport.

Covers the three compute paths, coalescing, caching, deferred words
delivery, retry exhaustion and moderation.
"""

from __future__ import annotations

import asyncio

import pytest

from easyread.api.facade import MessageFacade, create_orchestrator
from easyread.core.errors import ProxyRetryable

LONG_SENTENCE = "The municipal council will allocate substantial funding to renovate the dilapidated library. "
MANY_HARD_WORDS = (
    "The municipal council will allocate substantial funding to renovate the dilapidated library, "
    "notwithstanding considerable bureaucratic opposition from conservative associations."
)


@pytest.fixture
def respond_by_schema(payloads, easy_explanation, sample_entries):
    """Transport item answering each call according to its output schema."""

    def respond(payload):
        name = payload.get("text", {}).get("format", {}).get("name", "")
        if name == "easyread_word_coverage":
            return payloads.completed({"vocabulary": sample_entries})
        if name == "easyread_explanation_only":
            return payloads.completed({"explanation": easy_explanation, "notes": "", "confidence": 0.7})
        return payloads.completed({
            "explanation": easy_explanation, "vocabulary": sample_entries, "notes": "", "confidence": 0.8,
        })

    return respond


@pytest.fixture
def facade(make_orchestrator, fake_transport, sink) -> MessageFacade:
    return MessageFacade(make_orchestrator(fake_transport, sink=sink))


def _explain(text: str, **extra) -> dict:
    return {"type": "explain", "selectedText": text, **extra}


def _schema_name(payload: dict) -> str:
    return payload.get("text", {}).get("format", {}).get("name", "")


class TestSelectionLimits:
    @pytest.mark.asyncio
    async def test_oversize_rejected_without_upstream_call(self, facade, fake_transport):
        reply = await facade.handle(_explain("x" * 12_001))
        assert reply == {"ok": False, "error": "Selection is too long (12001 chars). Max is 12000."}
        assert fake_transport.payloads == []

    @pytest.mark.asyncio
    async def test_exact_maximum_accepted(self, facade, fake_transport, respond_by_schema, sink):
        text = ("The dilapidated library will open again. " * 300)[:12_000]
        assert len(text.strip()) == 12_000
        fake_transport.queue(*[respond_by_schema] * 20)

        reply = await facade.handle(_explain(text), context_id="tab-1")
        assert reply["ok"] is True
        data = reply["data"]
        assert data["wordsPending"] is True
        assert data["result"]["vocabulary"] == []
        assert "analyzed in 8 parts" in data["result"]["notes"]

        await facade.orchestrator.deferred.drain()
        assert len(sink.updates) == 1
        # 8 explanation calls, 8 per-chunk vocabulary calls
        assert len(fake_transport.payloads) == 16
        assert {p["model"] for p in fake_transport.payloads} == {"gpt-5-mini"}


class TestShortPath:
    @pytest.mark.asyncio
    async def test_single_combined_call(self, facade, fake_transport, respond_by_schema, short_selection):
        fake_transport.queue(respond_by_schema)
        reply = await facade.handle(_explain(short_selection))
        result = reply["data"]["result"]
        assert [w["word"] for w in result["vocabulary"]] == ["dilapidated", "allocate"]
        assert reply["data"]["wordsPending"] is False
        assert len(fake_transport.payloads) == 1
        assert fake_transport.payloads[0]["model"] == "gpt-5-nano"

    @pytest.mark.asyncio
    async def test_concurrent_identical_requests_share_one_call(
        self, facade, fake_transport, respond_by_schema, short_selection,
    ):
        fake_transport.gate = asyncio.Event()
        fake_transport.queue(respond_by_schema)
        first = asyncio.ensure_future(facade.handle(_explain(short_selection), context_id="tab-1"))
        second = asyncio.ensure_future(facade.handle(_explain(short_selection), context_id="tab-2"))
        for _ in range(5):
            await asyncio.sleep(0)
        fake_transport.gate.set()

        replies = await asyncio.gather(first, second)
        assert all(r["ok"] for r in replies)
        assert replies[0]["data"]["result"] == replies[1]["data"]["result"]
        assert len(fake_transport.payloads) == 1
        assert len(facade.orchestrator.deferred) == 0

    @pytest.mark.asyncio
    async def test_cache_hit_then_clear(self, facade, fake_transport, respond_by_schema, short_selection):
        fake_transport.queue(respond_by_schema, respond_by_schema)
        first = await facade.handle(_explain(short_selection))
        second = await facade.handle(_explain(short_selection))
        assert first["data"]["cached"] is False
        assert second["data"]["cached"] is True
        assert second["data"]["result"] == first["data"]["result"]
        assert len(fake_transport.payloads) == 1

        assert await facade.handle({"type": "clear-cache"}) == {"ok": True, "removed": 1}
        third = await facade.handle(_explain(short_selection))
        assert third["data"]["cached"] is False
        assert len(fake_transport.payloads) == 2

    @pytest.mark.asyncio
    async def test_modes_cached_separately(self, facade, fake_transport, respond_by_schema, short_selection):
        fake_transport.queue(respond_by_schema, respond_by_schema)
        await facade.handle(_explain(short_selection, explanationMode="simple"))
        reply = await facade.handle(_explain(short_selection, explanationMode="detailed"))
        assert reply["data"]["cached"] is False
        assert len(fake_transport.payloads) == 2

    @pytest.mark.asyncio
    async def test_supplemental_pass_when_no_words(
        self, facade, fake_transport, payloads, easy_explanation, sample_entries, short_selection,
    ):
        library = {
            "word": "library", "level": "A2", "part_of_speech": "noun",
            "definition": "A place with books.", "example": "I go to the library.",
        }
        fake_transport.queue(
            payloads.completed({"explanation": easy_explanation, "vocabulary": [], "confidence": 0.8}),
            payloads.completed({"vocabulary": [sample_entries[0], library, sample_entries[1]]}),
        )
        reply = await facade.handle(_explain(short_selection))

        assert len(fake_transport.payloads) == 2
        assert _schema_name(fake_transport.payloads[1]) == "easyread_word_coverage"
        vocabulary = reply["data"]["result"]["vocabulary"]
        assert [w["word"] for w in vocabulary] == ["dilapidated", "allocate"]

    @pytest.mark.asyncio
    async def test_supplemental_pass_on_under_extraction(
        self, facade, fake_transport, payloads, easy_explanation, sample_entries,
    ):
        considerable = {
            "word": "considerable", "level": "B1", "part_of_speech": "adjective",
            "definition": "Big.", "example": "It is a big plan.",
        }
        second_take = {**sample_entries[0], "definition": "Very old."}
        fake_transport.queue(
            payloads.completed({
                "explanation": easy_explanation, "vocabulary": [sample_entries[0]], "confidence": 0.8,
            }),
            payloads.completed({"vocabulary": [second_take, sample_entries[1], considerable]}),
        )
        reply = await facade.handle(_explain(MANY_HARD_WORDS))

        assert len(fake_transport.payloads) == 2
        assert _schema_name(fake_transport.payloads[1]) == "easyread_word_coverage"
        vocabulary = reply["data"]["result"]["vocabulary"]
        assert [w["word"] for w in vocabulary] == ["dilapidated", "allocate"]
        assert vocabulary[0]["definition"] == "Very old and broken."

    @pytest.mark.asyncio
    async def test_one_word_with_few_candidates_is_enough(
        self, facade, fake_transport, payloads, easy_explanation, sample_entries, short_selection,
    ):
        fake_transport.queue(payloads.completed({
            "explanation": easy_explanation, "vocabulary": [sample_entries[0]], "confidence": 0.8,
        }))
        reply = await facade.handle(_explain(short_selection))
        assert len(fake_transport.payloads) == 1
        assert [w["word"] for w in reply["data"]["result"]["vocabulary"]] == ["dilapidated"]

    @pytest.mark.asyncio
    async def test_fallback_skips_supplemental(self, facade, fake_transport, payloads, short_selection):
        fake_transport.queue(*[payloads.completed("not json") for _ in range(4)])
        reply = await facade.handle(_explain(short_selection))

        assert reply["ok"] is True
        assert reply["data"]["result"]["confidence"] == 0.2
        assert len(fake_transport.payloads) == 4
        assert "easyread_word_coverage" not in {_schema_name(p) for p in fake_transport.payloads}


class TestLongPath:
    @pytest.mark.asyncio
    async def test_words_pushed_after_explanation(
        self, facade, fake_transport, respond_by_schema, sink, easy_explanation,
    ):
        text = LONG_SENTENCE * 8
        fake_transport.queue(respond_by_schema, respond_by_schema)

        reply = await facade.handle(_explain(text, requestId="long-1"), context_id="tab-1")
        data = reply["data"]
        assert data["wordsPending"] is True
        assert data["result"]["explanation"] == easy_explanation
        assert data["result"]["vocabulary"] == []

        assert len(facade.orchestrator.deferred) == 1
        await facade.orchestrator.deferred.drain()
        assert len(sink.updates) == 1
        context_id, update = sink.updates[0]
        assert len(facade.orchestrator.deferred) == 0
        assert context_id == "tab-1"
        assert update.request_id == "long-1"
        assert update.error is None
        assert {e.level for e in update.result.vocabulary} <= {"B2", "C1", "C2"}
        assert [e.word for e in update.result.vocabulary] == ["dilapidated", "allocate"]

        cached = await facade.handle(_explain(text))
        assert cached["data"]["cached"] is True
        assert len(cached["data"]["result"]["vocabulary"]) == 2
        assert len(fake_transport.payloads) == 2

    @pytest.mark.asyncio
    async def test_superseded_update_dropped(self, facade, fake_transport, respond_by_schema, sink):
        fake_transport.queue(*[respond_by_schema] * 4)
        await facade.handle(_explain(LONG_SENTENCE * 8, requestId="old"), context_id="tab-1")
        await facade.handle(_explain(LONG_SENTENCE * 9, requestId="new"), context_id="tab-1")
        await facade.orchestrator.deferred.drain()
        assert [u.request_id for _, u in sink.updates] == ["new"]

    @pytest.mark.asyncio
    async def test_failed_words_pass_reports_error(self, facade, fake_transport, respond_by_schema, sink):
        fake_transport.queue(respond_by_schema, *[ProxyRetryable("busy", 503) for _ in range(3)])
        reply = await facade.handle(_explain(LONG_SENTENCE * 8, requestId="r"), context_id="tab-1")
        assert reply["ok"] is True
        await facade.orchestrator.deferred.drain()
        _, update = sink.updates[0]
        assert update.result is None
        assert update.error == "Words are taking too long. Try again for the full word list."


class TestFailures:
    @pytest.mark.asyncio
    async def test_retry_cap_surfaces_proxy_message(self, facade, fake_transport, payloads, short_selection):
        busy = [ProxyRetryable("EasyRead server temporary error (503).", status_code=503) for _ in range(4)]
        fake_transport.queue(*busy, payloads.completed({"explanation": "x"}))
        reply = await facade.handle(_explain(short_selection))
        assert reply == {"ok": False, "error": "EasyRead server temporary error (503)."}
        assert len(fake_transport.payloads) == 3

    @pytest.mark.asyncio
    async def test_repair_outage_still_answers(
        self, facade, fake_transport, payloads, respond_by_schema, easy_explanation, short_selection,
    ):
        busy = [ProxyRetryable("EasyRead server temporary error (503).", status_code=503) for _ in range(3)]
        fake_transport.queue(payloads.completed("not json at all"), *busy, respond_by_schema)
        reply = await facade.handle(_explain(short_selection))
        assert reply["ok"] is True
        assert reply["data"]["result"]["explanation"] == easy_explanation
        assert len(fake_transport.payloads) == 5

    @pytest.mark.asyncio
    async def test_flagged_text_rejected(self, make_orchestrator, fake_transport, short_selection):
        fake_transport.flagged = True
        facade = MessageFacade(make_orchestrator(fake_transport, moderation_enabled=True))
        reply = await facade.handle(_explain(short_selection))
        assert reply == {"ok": False, "error": "EasyRead cannot explain this text."}
        assert fake_transport.moderation_texts == [short_selection]
        assert fake_transport.payloads == []


@pytest.mark.asyncio
async def test_json_cache_survives_restart(make_settings, fake_transport, respond_by_schema, lexicon, short_selection):
    cfg = make_settings(cache_backend="json")
    fake_transport.queue(respond_by_schema)

    first = await create_orchestrator(cfg, transport=fake_transport, lexicon=lexicon)
    reply = await MessageFacade(first).handle(_explain(short_selection))
    await first.shutdown()
    assert reply["data"]["cached"] is False

    second = await create_orchestrator(cfg, transport=fake_transport, lexicon=lexicon)
    reply = await MessageFacade(second).handle(_explain(short_selection))
    await second.shutdown()
    assert reply["data"]["cached"] is True
    assert len(fake_transport.payloads) == 1
