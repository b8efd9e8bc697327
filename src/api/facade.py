# src/api/facade.py — v2
"""Public API facade — the single entry point used by the UI layer.

Usage:
    orchestrator = await create_orchestrator(settings, sink=push_to_tab)
    facade = MessageFacade(orchestrator)
    reply = await facade.handle({"type": "explain", "selectedText": "..."}, context_id="tab-1")

Every reply is a plain dict in wire form (camelCase). Errors never
escape `handle()`: EasyRead errors become their own message, anything
else is logged with traceback and becomes the generic message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from easyread.api.models import (
    CLEAR_CACHE_TYPES,
    EXPLAIN_TYPES,
    ExplainMessage,
    MessageResponse,
)
from easyread.cache.cache_factory import create_cache_store
from easyread.cache.result_cache import ResultCache
from easyread.config.settings import Settings
from easyread.core.errors import EasyReadError, to_user_message
from easyread.core.models import WordsUpdate
from easyread.llm.client_factory import create_transport
from easyread.llm.gateway import ModelGateway
from easyread.llm.retry import RetryConfig
from easyread.logging.context import clear_context
from easyread.pipeline.orchestrator import RequestOrchestrator
from easyread.storage.client_identity import identity_path_for, load_or_create_client_id

if TYPE_CHECKING:
    from easyread.lexicon.easy_words import EasyWordLexicon
    from easyread.llm.base_client import BaseModelTransport
    from easyread.llm.retry import Sleep
    from easyread.pipeline.deferred import UpdateSink

logger = logging.getLogger(__name__)

UNKNOWN_MESSAGE = "EasyRead did not understand this request."


async def create_orchestrator(
    settings: Settings | None = None,
    sink: UpdateSink | None = None,
    transport: BaseModelTransport | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    lexicon: EasyWordLexicon | None = None,
    sleep: Sleep | None = None,
) -> RequestOrchestrator:
    """Wire the coordinator from settings and run its start-up step.

    Args:
        settings: Global settings. Loaded from .env if None.
        sink: Receiver for deferred words-updates.
        transport: Ready model transport. Built from settings if None.
        http_transport: httpx transport for the default proxy adapter.
        lexicon: Easy-word lexicon. Loaded from settings if None.
        sleep: Backoff sleep function (tests pass a no-op).
    """
    settings = settings or Settings()
    if transport is None:
        client_id = load_or_create_client_id(
            identity_path_for(settings.cache_root), settings.client_id,
        )
        transport = create_transport(settings, client_id, http_transport=http_transport)

    gateway_kwargs: dict[str, Any] = {"retry_config": RetryConfig.from_settings(settings)}
    if sleep is not None:
        gateway_kwargs["sleep"] = sleep
    gateway = ModelGateway(transport, **gateway_kwargs)

    cache = ResultCache(
        create_cache_store(settings),
        ttl_s=settings.cache_ttl_s,
        enabled=settings.cache_enabled,
    )
    orchestrator = RequestOrchestrator(settings, gateway, cache, lexicon=lexicon, sink=sink)
    pruned = await orchestrator.startup()
    logger.info("EasyRead coordinator ready (pruned %d expired cache entries)", pruned)
    return orchestrator


class MessageFacade:
    """Dispatches UI messages to the orchestrator."""

    def __init__(self, orchestrator: RequestOrchestrator) -> None:
        self._orchestrator = orchestrator

    @property
    def orchestrator(self) -> RequestOrchestrator:
        return self._orchestrator

    async def handle(self, message: dict[str, Any], context_id: str | None = None) -> dict[str, Any]:
        """Handle one inbound message and return the wire reply."""
        kind = message.get("type", "explain") if isinstance(message, dict) else None
        if not isinstance(kind, str):
            kind = None
        try:
            if kind in EXPLAIN_TYPES:
                return await self._explain(message, context_id)
            if kind in CLEAR_CACHE_TYPES:
                removed = await self._orchestrator.clear_cache()
                return MessageResponse(ok=True, removed=removed).to_wire()
        except EasyReadError as e:
            logger.info("Request failed: %s (%s)", e.message, e.code)
            return MessageResponse(ok=False, error=e.message).to_wire()
        except Exception as e:
            logger.exception("Unexpected failure handling %s message", kind)
            return MessageResponse(ok=False, error=to_user_message(e)).to_wire()
        finally:
            clear_context()
        return MessageResponse(ok=False, error=UNKNOWN_MESSAGE).to_wire()

    async def explain(self, message: dict[str, Any], context_id: str | None = None) -> dict[str, Any]:
        """Shortcut for an explain message without a `type` key."""
        return await self.handle({**message, "type": "explain"}, context_id)

    async def _explain(self, message: dict[str, Any], context_id: str | None) -> dict[str, Any]:
        payload = message.get("payload") if isinstance(message.get("payload"), dict) else message
        parsed = ExplainMessage.model_validate(payload)
        request = self._orchestrator.build_request(
            parsed.selected_text,
            request_id=parsed.request_id,
            page_origin=parsed.page_origin,
            page_url=parsed.page_url,
            explanation_mode=parsed.explanation_mode,
            context_id=context_id,
        )
        data = await self._orchestrator.explain(request)
        return MessageResponse(ok=True, data=data).to_wire()


def words_update_to_wire(update: WordsUpdate) -> dict[str, Any]:
    """Serialize a push update for the UI."""
    return update.model_dump(by_alias=True, exclude_none=True)
