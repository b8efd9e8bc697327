# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides a fake model transport that records every upstream payload and
answers from a script, a fake provider client for the proxy app,
Responses-API payload builders, settings with zero backoff and an
in-memory cache. No network access is required.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

import pytest

from easyread.cache.memory_store import MemoryCacheStore
from easyread.cache.result_cache import ResultCache
from easyread.config.settings import Settings
from easyread.core.models import WordsUpdate
from easyread.lexicon.easy_words import EasyWordLexicon
from easyread.llm.base_client import BaseModelTransport
from easyread.llm.gateway import ModelGateway
from easyread.llm.retry import RetryConfig
from easyread.pipeline.orchestrator import RequestOrchestrator


# === FAKES ===


class FakeTransport(BaseModelTransport):
    """Scripted transport. Each queued item is a provider payload (dict),
    an exception to raise, or a callable taking the request payload."""

    def __init__(self, responses: list[Any] | None = None, flagged: bool = False) -> None:
        self.responses: list[Any] = list(responses or [])
        self.payloads: list[dict[str, Any]] = []
        self.moderation_texts: list[str] = []
        self.flagged = flagged
        self.moderation_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.closed = False

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    @property
    def provider_name(self) -> str:
        return "fake"

    async def post_responses(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.payloads.append(payload)
        if self.gate is not None:
            await self.gate.wait()
        if not self.responses:
            raise AssertionError(f"Unexpected upstream call #{len(self.payloads)}")
        item = self.responses.pop(0)
        if callable(item):
            item = item(payload)
        if isinstance(item, BaseException):
            raise item
        return item

    async def post_moderation(self, text: str) -> dict[str, Any]:
        self.moderation_texts.append(text)
        if self.moderation_error is not None:
            raise self.moderation_error
        return {"flagged": self.flagged}

    async def aclose(self) -> None:
        self.closed = True


class SinkRecorder:
    """Collects pushed words-updates."""

    def __init__(self) -> None:
        self.updates: list[tuple[str | None, WordsUpdate]] = []

    async def __call__(self, context_id: str | None, update: WordsUpdate) -> None:
        self.updates.append((context_id, update))


class FakeModerations:
    def __init__(self, owner: FakeOpenAI) -> None:
        self._owner = owner

    async def create(self, model: str, input: str) -> Any:  # noqa: A002
        self._owner.moderation_calls.append((model, input))
        if self._owner.error is not None:
            raise self._owner.error
        return SimpleNamespace(results=[SimpleNamespace(flagged=self._owner.flagged)])


class FakeOpenAI:
    """Stands in for openai.AsyncOpenAI in the proxy: `post` and `moderations.create`.

    `body` is the raw provider text returned for every responses call.
    """

    def __init__(self) -> None:
        self.posts: list[tuple[str, dict[str, Any]]] = []
        self.moderation_calls: list[tuple[str, str]] = []
        self.body = json.dumps({"status": "completed", "output_text": "hi"})
        self.error: Exception | None = None
        self.flagged = False
        self.moderations = FakeModerations(self)

    async def post(self, path: str, *, body: dict[str, Any], cast_to: type) -> Any:
        self.posts.append((path, body))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.body)


class ProviderPayloads:
    """Builders for Responses-API payloads."""

    @staticmethod
    def completed(body: Any) -> dict[str, Any]:
        text = body if isinstance(body, str) else json.dumps(body)
        return {
            "status": "completed",
            "output": [{"type": "message", "content": [{"type": "output_text", "text": text}]}],
        }

    @staticmethod
    def incomplete(reason: str = "max_output_tokens", text: str = "") -> dict[str, Any]:
        output = (
            [{"type": "message", "content": [{"type": "output_text", "text": text}]}]
            if text else []
        )
        return {"status": "incomplete", "incomplete_details": {"reason": reason}, "output": output}

    @staticmethod
    def refused(message: str) -> dict[str, Any]:
        return {
            "status": "completed",
            "output": [{"type": "message", "content": [{"type": "refusal", "refusal": message}]}],
        }


async def no_sleep(_delay: float) -> None:
    return None


# === FIXTURES: Sample data ===


SHORT_SELECTION = (
    "The municipal council will allocate substantial funding "
    "to renovate the dilapidated library."
)


@pytest.fixture
def short_selection() -> str:
    return SHORT_SELECTION


@pytest.fixture
def easy_explanation() -> str:
    return "The city will spend a lot of money to make the old library new again."


@pytest.fixture
def sample_entries() -> list[dict[str, str]]:
    """Raw vocabulary items as the model returns them."""
    return [
        {
            "word": "dilapidated",
            "lemma": "dilapidated",
            "part_of_speech": "adjective",
            "level": "C1",
            "definition": "Very old and broken.",
            "example": "The old chair is broken.",
        },
        {
            "word": "allocate",
            "lemma": "allocate",
            "part_of_speech": "verb",
            "level": "C1",
            "definition": "To give money for a plan.",
            "example": "The school will give money for new books.",
        },
    ]


@pytest.fixture
def explain_body(easy_explanation, sample_entries) -> dict[str, Any]:
    return {
        "explanation": easy_explanation,
        "vocabulary": sample_entries,
        "notes": "",
        "confidence": 0.8,
    }


# === FIXTURES: Wiring ===


@pytest.fixture
def payloads() -> ProviderPayloads:
    return ProviderPayloads()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def sink() -> SinkRecorder:
    return SinkRecorder()


@pytest.fixture(scope="session")
def lexicon() -> EasyWordLexicon:
    return EasyWordLexicon.load()


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Settings with zero backoff, memory cache and no .env lookup."""

    def build(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "cache_backend": "memory",
            "cache_root": tmp_path / "cache",
            "retry_base_delay_s": 0.0,
            "retry_jitter_s": 0.0,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return build


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def make_orchestrator(make_settings, lexicon):
    """Build an orchestrator around a transport without start-up I/O."""

    def build(
        transport: BaseModelTransport,
        sink: Any = None,
        cache: ResultCache | None = None,
        **overrides: Any,
    ) -> RequestOrchestrator:
        cfg = make_settings(**overrides)
        gateway = ModelGateway(transport, RetryConfig.from_settings(cfg), sleep=no_sleep)
        cache = cache or ResultCache(MemoryCacheStore(), ttl_s=cfg.cache_ttl_s)
        return RequestOrchestrator(cfg, gateway, cache, lexicon=lexicon, sink=sink)

    return build
