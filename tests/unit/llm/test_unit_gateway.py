# tests/unit/llm/test_unit_gateway.py — v1
"""Tests for llm/gateway.py — schema fallback, backoff, call tracking."""

from __future__ import annotations

import pytest

from easyread.core.errors import (
    EmptyOutput,
    MalformedOutput,
    NetworkRetryable,
    ProxyError,
    ProxyRetryable,
)
from easyread.llm.gateway import ModelGateway, is_schema_rejection
from easyread.llm.models import Completed, Incomplete, ModelInvocation
from easyread.llm.retry import RetryConfig


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def invocation() -> ModelInvocation:
    return ModelInvocation(
        model="gpt-5-nano",
        system_prompt="sys",
        user_prompt="user",
        max_output_tokens=800,
        output_schema={"type": "object"},
        purpose="explain",
    )


@pytest.fixture
def gateway(fake_transport) -> ModelGateway:
    return ModelGateway(fake_transport, RetryConfig(max_attempts=3, jitter_s=0.0), sleep=_no_sleep)


def _schema_error() -> ProxyError:
    return ProxyError(
        "EasyRead server error (400). Invalid schema for response_format 'text.format'",
        status_code=400,
    )


def test_is_schema_rejection():
    assert is_schema_rejection(_schema_error())
    assert not is_schema_rejection(ProxyError("EasyRead server error (400). Model is not allowed", 400))
    assert not is_schema_rejection(NetworkRetryable("schema"))


class TestInvoke:
    @pytest.mark.asyncio
    async def test_completed(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(payloads.completed("hello"))
        assert await gateway.invoke(invocation) == Completed(text="hello")
        assert fake_transport.payloads[0]["text"]["format"]["strict"] is True

    @pytest.mark.asyncio
    async def test_schema_rejection_retried_without_schema(
        self, gateway, fake_transport, payloads, invocation,
    ):
        fake_transport.queue(_schema_error(), payloads.completed("hello"))
        assert await gateway.invoke(invocation) == Completed(text="hello")
        assert len(fake_transport.payloads) == 2
        assert "text" in fake_transport.payloads[0]
        assert "text" not in fake_transport.payloads[1]

    @pytest.mark.asyncio
    async def test_schema_rejection_without_schema_propagates(
        self, gateway, fake_transport, invocation,
    ):
        fake_transport.queue(_schema_error())
        with pytest.raises(ProxyError):
            await gateway.invoke(invocation.without_schema())
        assert len(fake_transport.payloads) == 1

    @pytest.mark.asyncio
    async def test_other_proxy_error_propagates(self, gateway, fake_transport, invocation):
        fake_transport.queue(ProxyError("EasyRead server error (403). Extension is not allowed", 403))
        with pytest.raises(ProxyError):
            await gateway.invoke(invocation)
        assert len(fake_transport.payloads) == 1

    @pytest.mark.asyncio
    async def test_retriable_errors_backed_off(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(
            ProxyRetryable("EasyRead server temporary error (503).", 503),
            NetworkRetryable("Network error while contacting EasyRead server."),
            payloads.completed("hello"),
        )
        assert await gateway.invoke(invocation) == Completed(text="hello")
        assert len(fake_transport.payloads) == 3

    @pytest.mark.asyncio
    async def test_retry_cap(self, gateway, fake_transport, invocation):
        fake_transport.queue(*[ProxyRetryable("busy", 503) for _ in range(5)])
        with pytest.raises(ProxyRetryable):
            await gateway.invoke(invocation)
        assert len(fake_transport.payloads) == 3

    @pytest.mark.asyncio
    async def test_incomplete(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(payloads.incomplete())
        assert await gateway.invoke(invocation) == Incomplete(reason="max_output_tokens")


class TestCallTracking:
    @pytest.mark.asyncio
    async def test_every_attempt_recorded(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(ProxyRetryable("busy", 503), payloads.completed("hello"))
        await gateway.invoke(invocation)
        records = gateway.call_log.records
        assert [r.outcome for r in records] == ["error", "completed"]
        assert records[0].error_code == "PROXY_RETRYABLE"
        assert records[1].text_chars == 5
        assert all(r.schema_enabled for r in records)

    @pytest.mark.asyncio
    async def test_schema_fallback_recorded(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(_schema_error(), payloads.completed("x"))
        await gateway.invoke(invocation)
        assert [r.schema_enabled for r in gateway.call_log.records] == [True, False]


class TestCallStructured:
    @pytest.mark.asyncio
    async def test_parses(self, gateway, fake_transport, payloads, invocation, explain_body):
        fake_transport.queue(payloads.completed(explain_body))
        result = await gateway.call_structured(invocation)
        assert result.explanation == explain_body["explanation"]

    @pytest.mark.asyncio
    async def test_empty_output(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(payloads.incomplete())
        with pytest.raises(EmptyOutput) as exc:
            await gateway.call_structured(invocation)
        assert exc.value.reason == "max_output_tokens"

    @pytest.mark.asyncio
    async def test_refusal(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(payloads.refused("No."))
        with pytest.raises(EmptyOutput) as exc:
            await gateway.call_structured(invocation)
        assert exc.value.refusal == "No."

    @pytest.mark.asyncio
    async def test_malformed(self, gateway, fake_transport, payloads, invocation):
        fake_transport.queue(payloads.completed("not json"))
        with pytest.raises(MalformedOutput):
            await gateway.call_structured(invocation)


class TestModerate:
    @pytest.mark.asyncio
    async def test_flagged(self, fake_transport):
        fake_transport.flagged = True
        gateway = ModelGateway(fake_transport, sleep=_no_sleep)
        assert await gateway.moderate("some text")
        assert gateway.call_log.calls_for("moderation")[0].outcome == "completed"

    @pytest.mark.asyncio
    async def test_failure_is_not_flagged(self, fake_transport):
        fake_transport.moderation_error = NetworkRetryable("down")
        gateway = ModelGateway(fake_transport, sleep=_no_sleep)
        assert not await gateway.moderate("some text")
        assert gateway.call_log.calls_for("moderation")[0].outcome == "error"

    @pytest.mark.asyncio
    async def test_blank_text_skipped(self, fake_transport):
        gateway = ModelGateway(fake_transport, sleep=_no_sleep)
        assert not await gateway.moderate("   ")
        assert fake_transport.moderation_texts == []


@pytest.mark.asyncio
async def test_aclose(gateway, fake_transport):
    await gateway.aclose()
    assert fake_transport.closed
