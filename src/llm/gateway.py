# src/llm/gateway.py — v1
"""ModelGateway — the single way the pipeline reaches the model.

Wraps the transport with backoff, the schema fallback (a proxy
rejection that mentions the schema is retried once without it),
outcome decoding and call tracking.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any

from easyread.core.errors import EasyReadError, EmptyOutput, ProxyError
from easyread.core.models import ExplainResult
from easyread.llm.base_client import BaseModelTransport
from easyread.llm.models import (
    Incomplete,
    ModelInvocation,
    ProviderOutcome,
    Refused,
    decode_provider_payload,
    describe_no_output,
    outcome_kind,
    outcome_text,
)
from easyread.llm.retry import RetryConfig, Sleep, with_backoff
from easyread.llm.schema import parse_explain_result
from easyread.tracking.call_logger import CallLogger

logger = logging.getLogger(__name__)

_SCHEMA_ISSUE_RE = re.compile(r"text\.format|json_schema|schema|strict", re.IGNORECASE)


def is_schema_rejection(error: BaseException) -> bool:
    return isinstance(error, ProxyError) and bool(_SCHEMA_ISSUE_RE.search(error.message))


class ModelGateway:
    """Sends invocations and classifies the provider's answer."""

    def __init__(
        self,
        transport: BaseModelTransport,
        retry_config: RetryConfig | None = None,
        call_logger: CallLogger | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._retry = retry_config or RetryConfig()
        self._calls = call_logger or CallLogger()
        self._sleep = sleep

    @property
    def call_log(self) -> CallLogger:
        return self._calls

    @property
    def transport(self) -> BaseModelTransport:
        return self._transport

    async def invoke(self, invocation: ModelInvocation) -> ProviderOutcome:
        """Send one invocation, falling back to schema-less on a schema rejection.

        Raises:
            NetworkRetryable / ProxyRetryable: After retries are exhausted.
            ProxyError: Non-retriable proxy rejection.
        """
        try:
            return await self._send(invocation)
        except ProxyError as e:
            if not (invocation.schema_enabled and is_schema_rejection(e)):
                raise
            logger.info("Proxy rejected the output schema, retrying without it")
            return await self._send(invocation.without_schema())

    async def call_structured(self, invocation: ModelInvocation) -> ExplainResult:
        """Invoke and parse the answer into an ExplainResult.

        Raises:
            EmptyOutput: The provider returned no text (truncated or refused).
            MalformedOutput: The text is not a JSON object.
        """
        outcome = await self.invoke(invocation)
        text = outcome_text(outcome)
        if not text:
            raise EmptyOutput(
                describe_no_output(outcome),
                reason=outcome.reason if isinstance(outcome, Incomplete) else "",
                refusal=outcome.message if isinstance(outcome, Refused) else "",
            )
        return parse_explain_result(text)

    async def moderate(self, text: str) -> bool:
        """True if the proxy flags `text`. Failures count as not flagged."""
        if not text.strip():
            return False
        started = time.monotonic()
        try:
            data = await self._transport.post_moderation(text)
        except EasyReadError as e:
            logger.warning("Moderation failed, treating as not flagged: %s", e)
            self._record_error("moderation", "", 0, False, started, e)
            return False
        self._calls.record(
            purpose="moderation", model="", max_output_tokens=0, schema_enabled=False,
            outcome="completed", latency_ms=_elapsed_ms(started),
        )
        return bool(data.get("flagged"))

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def _send(self, invocation: ModelInvocation) -> ProviderOutcome:
        payload = invocation.to_payload()

        async def attempt() -> dict[str, Any]:
            started = time.monotonic()
            try:
                data = await self._transport.post_responses(payload)
            except EasyReadError as e:
                self._record_error(
                    invocation.purpose, invocation.model, invocation.max_output_tokens,
                    invocation.schema_enabled, started, e,
                )
                raise
            outcome = decode_provider_payload(data)
            self._calls.record(
                purpose=invocation.purpose,
                model=invocation.model,
                max_output_tokens=invocation.max_output_tokens,
                schema_enabled=invocation.schema_enabled,
                outcome=outcome_kind(outcome),
                latency_ms=_elapsed_ms(started),
                text_chars=len(outcome_text(outcome)),
            )
            return data

        data = await with_backoff(attempt, self._retry, sleep=self._sleep, label=invocation.purpose)
        return decode_provider_payload(data)

    def _record_error(
        self,
        purpose: str,
        model: str,
        budget: int,
        schema_enabled: bool,
        started: float,
        error: EasyReadError,
    ) -> None:
        self._calls.record(
            purpose=purpose, model=model, max_output_tokens=budget,
            schema_enabled=schema_enabled, outcome="error",
            latency_ms=_elapsed_ms(started), error_code=error.code,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
