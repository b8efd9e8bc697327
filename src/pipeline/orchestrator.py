# src/pipeline/orchestrator.py — v2
"""RequestOrchestrator — turns a selection into a sanitized, cached result.

Request states:
  Validating -> FingerprintLookup -> CacheHit | JoinInFlight | Compute

Compute picks one of three paths by selection length:
  ShortPath   (<= defer_words_min_chars): one combined call, optional
              supplemental vocabulary call, coalesced through the
              in-flight registry
  LongPath    (<= chunk_threshold_chars): explanation-only call, the
              vocabulary pass runs deferred and is pushed later
  ChunkedPath (longer): word-aligned chunks explained with bounded
              concurrency and merged, vocabulary deferred per chunk

The cache, in-flight registry and deferred registry are owned by one
orchestrator instance and live as long as it does.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from easyread.cache.fingerprint import compute_fingerprint
from easyread.cache.models import RequestSnapshot
from easyread.chunking.word_chunker import WordChunker
from easyread.core.errors import ValidationError
from easyread.core.models import (
    ExplainPayload,
    ExplainResult,
    SelectionRequest,
    VocabularyEntry,
    WordsUpdate,
    normalize_explanation_mode,
)
from easyread.lexicon.easy_words import EasyWordLexicon
from easyread.llm import prompts
from easyread.llm.config import ModelRouting
from easyread.llm.schema import EXPLAIN_SCHEMA, EXPLANATION_ONLY_SCHEMA
from easyread.llm.token_budget import combined_budget, explanation_budget, word_limit
from easyread.logging.context import set_request_context, set_stage
from easyread.pipeline.deferred import DeferredRegistry, UpdateSink
from easyread.pipeline.explain_call import ExplainCaller, ExplainJob
from easyread.pipeline.inflight import InFlightRegistry
from easyread.pipeline.merge import (
    keep_learnable,
    map_with_concurrency,
    merge_chunk_results,
    merge_word_entries,
    should_run_supplemental,
)
from easyread.text.analyzer import TextAnalyzer
from easyread.text.copy_guard import CopyGuard
from easyread.text.simplifier import LanguageSanitizer, append_note

if TYPE_CHECKING:
    from easyread.cache.result_cache import ResultCache
    from easyread.config.settings import Settings
    from easyread.llm.gateway import ModelGateway
    from easyread.tracking.call_logger import CallLogger

logger = logging.getLogger(__name__)

NO_SELECTION_MESSAGE = "Please select text first."
FLAGGED_MESSAGE = "EasyRead cannot explain this text."
DEFERRED_ERROR_MESSAGE = "Words are taking too long. Try again for the full word list."
NO_WORDS_NOTE = "No words above B1 were detected with enough confidence."
CACHED_EMPTY_NOTE = "EasyRead filled a backup explanation because cached output was empty."
SHARED_EMPTY_NOTE = "EasyRead filled a backup explanation because shared output was empty."
MODEL_EMPTY_NOTE = "EasyRead filled a backup explanation because the model returned empty text."

# (result, words_pending)
PathOutcome = tuple[ExplainResult, bool]


def too_long_message(length: int, maximum: int) -> str:
    return f"Selection is too long ({length} chars). Max is {maximum}."


def resolve_page_origin(page_origin: object, page_url: object) -> str:
    """Explicit origin first, else scheme://host of the page URL. Non-strings are ignored."""
    if isinstance(page_origin, str) and page_origin:
        return page_origin
    if isinstance(page_url, str) and page_url:
        try:
            parts = urlsplit(page_url)
        except ValueError:
            return ""
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}"
    return ""


class RequestOrchestrator:
    """End-to-end lifecycle of explain requests.

    Args:
        settings: Application settings.
        gateway: Model gateway (transport, backoff, call tracking).
        cache: Result cache.
        lexicon: Easy-word lexicon. Loaded from settings when None.
        sink: Receiver for deferred words-updates.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: ModelGateway,
        cache: ResultCache,
        lexicon: EasyWordLexicon | None = None,
        sink: UpdateSink | None = None,
    ) -> None:
        self._settings = settings
        self._gateway = gateway
        self._cache = cache
        self._lexicon = lexicon or EasyWordLexicon.load(settings.lexicon_path)
        self._analyzer = TextAnalyzer(self._lexicon)
        self._sanitizer = LanguageSanitizer.from_settings(settings, self._analyzer)
        self._routing = ModelRouting.from_settings(settings)
        self._caller = ExplainCaller(
            gateway, self._routing, self._sanitizer, CopyGuard.from_settings(settings), settings,
        )
        self._chunker = WordChunker(settings)
        self._inflight: InFlightRegistry[PathOutcome] = InFlightRegistry()
        self._deferred = DeferredRegistry(sink)

    # --- Lifecycle ---

    async def startup(self) -> int:
        """Prune expired cache entries. Returns the number removed."""
        return await self._cache.prune_expired()

    async def shutdown(self) -> None:
        await self._deferred.drain()
        await self._gateway.aclose()

    async def clear_cache(self) -> int:
        return await self._cache.clear()

    @property
    def analyzer(self) -> TextAnalyzer:
        return self._analyzer

    @property
    def sanitizer(self) -> LanguageSanitizer:
        return self._sanitizer

    @property
    def deferred(self) -> DeferredRegistry:
        return self._deferred

    @property
    def inflight(self) -> InFlightRegistry[PathOutcome]:
        return self._inflight

    @property
    def call_log(self) -> CallLogger:
        return self._gateway.call_log

    # --- Validating ---

    def build_request(
        self,
        selected_text: object,
        request_id: object = None,
        page_origin: object = None,
        page_url: object = None,
        explanation_mode: object = None,
        context_id: str | None = None,
    ) -> SelectionRequest:
        """Normalize raw inputs into a SelectionRequest.

        Raises:
            ValidationError: Empty selection, or longer than hard_max_chars.
        """
        text = selected_text.strip() if isinstance(selected_text, str) else ""
        if not text:
            raise ValidationError(NO_SELECTION_MESSAGE, code="NO_SELECTION")
        if len(text) > self._settings.hard_max_chars:
            raise ValidationError(
                too_long_message(len(text), self._settings.hard_max_chars),
                code="SELECTION_TOO_LONG",
            )
        rid = request_id.strip() if isinstance(request_id, str) else ""
        return SelectionRequest(
            request_id=rid or str(uuid.uuid4()),
            selected_text=text,
            page_origin=resolve_page_origin(page_origin, page_url),
            explanation_mode=normalize_explanation_mode(explanation_mode),
            context_id=context_id,
        )

    # --- Main entry ---

    async def explain(self, request: SelectionRequest) -> ExplainPayload:
        """Run one request through lookup and compute."""
        self._deferred.mark_current(request.context_id, request.request_id)
        payload: ExplainPayload | None = None
        try:
            payload = await self._explain(request)
            return payload
        finally:
            if payload is None or not payload.words_pending:
                self._deferred.settle(request.context_id, request.request_id)

    async def _explain(self, request: SelectionRequest) -> ExplainPayload:
        text = request.selected_text
        mode = request.explanation_mode

        model = self._routing.choose(len(text))
        key = compute_fingerprint(
            request.page_origin, text, mode, model, self._settings.schema_version,
        )
        set_request_context(request.request_id, key)
        set_stage("lookup")

        cached = await self._cache.get(key)
        if cached is not None:
            logger.info("Cache hit")
            return self._payload(
                request,
                self._sanitizer.ensure_non_empty_explanation(cached, text, CACHED_EMPTY_NOTE),
                cached=True,
            )

        if self._settings.moderation_enabled and await self._gateway.moderate(text):
            raise ValidationError(FLAGGED_MESSAGE, code="FLAGGED")

        short = len(text) <= self._settings.defer_words_min_chars
        if short and key in self._inflight:
            shared = await self._inflight.join(key)
            if shared is not None:
                result, pending = shared
                logger.info("Joined in-flight computation")
                return self._payload(
                    request,
                    self._sanitizer.ensure_non_empty_explanation(result, text, SHARED_EMPTY_NOTE),
                    words_pending=pending,
                )

        snapshot = RequestSnapshot(selected_text=text, explanation_mode=mode, model=model)
        if short:
            logger.info("Short path (%d chars, model=%s)", len(text), model)
            result, pending = await self._inflight.start(
                key, lambda: self._short_path(request, model, key, snapshot),
            )
        elif len(text) <= self._settings.chunk_threshold_chars:
            logger.info("Long path (%d chars, model=%s)", len(text), model)
            result, pending = await self._long_path(request, model, key, snapshot)
        else:
            logger.info("Chunked path (%d chars, model=%s)", len(text), model)
            result, pending = await self._chunked_path(request, model, key, snapshot)

        return self._payload(request, result, words_pending=pending)

    # --- Compute paths ---

    async def _short_path(
        self, request: SelectionRequest, model: str, key: str, snapshot: RequestSnapshot,
    ) -> PathOutcome:
        text = request.selected_text
        candidates = self._analyzer.extract_candidates(text, self._settings.max_candidates)
        limit = word_limit(len(text))
        job = ExplainJob(
            selected_text=text,
            mode=request.explanation_mode,
            model=model,
            user_prompt=prompts.build_explain_prompt(text, candidates, limit, request.explanation_mode),
            max_output_tokens=combined_budget(
                model, len(text), request.explanation_mode, self._routing.fast,
            ),
            output_schema=EXPLAIN_SCHEMA,
            purpose="explain",
        )
        outcome = await self._caller.explain(job)
        result = outcome.result
        vocabulary = keep_learnable(result.vocabulary)

        if not outcome.fell_back and should_run_supplemental(vocabulary, len(candidates), len(text)):
            logger.info("Supplemental vocabulary pass (%d candidates)", len(candidates))
            extra = await self._caller.vocabulary(text, candidates, model, limit)
            vocabulary = keep_learnable(merge_word_entries(vocabulary, extra))

        notes = result.notes
        if not outcome.fell_back and not vocabulary and candidates:
            notes = append_note(notes, NO_WORDS_NOTE)

        final = self._finalize(
            result.model_copy(update={"vocabulary": vocabulary, "notes": notes}), text,
        )
        await self._cache.put(key, snapshot, final)
        return final, False

    async def _long_path(
        self, request: SelectionRequest, model: str, key: str, snapshot: RequestSnapshot,
    ) -> PathOutcome:
        text = request.selected_text
        outcome = await self._caller.explain(self._explanation_job(text, request.explanation_mode, model))
        immediate = self._finalize(outcome.result.model_copy(update={"vocabulary": []}), text)

        candidates = self._analyzer.extract_candidates(text, self._settings.max_candidates)
        if not candidates:
            await self._cache.put(key, snapshot, immediate)
            return immediate, False

        async def words() -> list[VocabularyEntry]:
            return await self._caller.vocabulary(text, candidates, model, word_limit(len(text)))

        self._schedule_words(request, key, snapshot, immediate, words)
        return immediate, True

    async def _chunked_path(
        self, request: SelectionRequest, model: str, key: str, snapshot: RequestSnapshot,
    ) -> PathOutcome:
        text = request.selected_text
        chunks = self._chunker.chunk(text)
        if len(chunks) <= 1:
            return await self._long_path(request, model, key, snapshot)

        async def explain_chunk(chunk: str, index: int) -> ExplainResult:
            set_stage(f"chunk{index + 1}")
            outcome = await self._caller.explain(
                self._explanation_job(chunk, request.explanation_mode, model),
            )
            return outcome.result

        results = await map_with_concurrency(chunks, self._settings.chunk_concurrency, explain_chunk)
        merged = merge_chunk_results(results, len(chunks))
        immediate = self._finalize(merged.model_copy(update={"vocabulary": []}), text)

        chunk_hints = [
            (chunk, self._analyzer.extract_candidates(chunk, self._settings.max_candidates))
            for chunk in chunks
        ]
        chunk_hints = [(chunk, hints) for chunk, hints in chunk_hints if hints]
        if not chunk_hints:
            await self._cache.put(key, snapshot, immediate)
            return immediate, False

        async def words() -> list[VocabularyEntry]:
            async def chunk_words(item: tuple[str, list[str]], _index: int) -> list[VocabularyEntry]:
                chunk, hints = item
                return await self._caller.vocabulary(chunk, hints, model, word_limit(len(chunk)))

            per_chunk = await map_with_concurrency(
                chunk_hints, self._settings.chunk_concurrency, chunk_words,
            )
            return merge_word_entries(*per_chunk)

        self._schedule_words(request, key, snapshot, immediate, words)
        return immediate, True

    # --- Deferred vocabulary ---

    def _schedule_words(
        self,
        request: SelectionRequest,
        key: str,
        snapshot: RequestSnapshot,
        base: ExplainResult,
        fetch_words: Callable[[], Awaitable[list[VocabularyEntry]]],
    ) -> None:
        async def work() -> WordsUpdate:
            set_request_context(request.request_id, key)
            set_stage("deferred-words")
            try:
                words = keep_learnable(await fetch_words())
                notes = base.notes
                if not words:
                    notes = append_note(notes, NO_WORDS_NOTE)
                final = self._finalize(
                    base.model_copy(update={"vocabulary": words, "notes": notes}),
                    request.selected_text,
                )
                await self._cache.put(key, snapshot, final)
            except Exception:
                logger.warning("Deferred vocabulary pass failed", exc_info=True)
                return WordsUpdate(request_id=request.request_id, error=DEFERRED_ERROR_MESSAGE)
            logger.info("Deferred vocabulary ready (%d words)", len(final.vocabulary))
            return WordsUpdate(
                request_id=request.request_id,
                explanation_mode=request.explanation_mode,
                result=final,
            )

        self._deferred.schedule(request.context_id, request.request_id, work)

    # --- Helpers ---

    def _explanation_job(self, text: str, mode: str, model: str) -> ExplainJob:
        return ExplainJob(
            selected_text=text,
            mode=mode,
            model=model,
            user_prompt=prompts.build_explanation_prompt(text, mode),
            max_output_tokens=explanation_budget(len(text), mode),
            output_schema=EXPLANATION_ONLY_SCHEMA,
            purpose="explanation",
        )

    def _finalize(self, result: ExplainResult, selected_text: str) -> ExplainResult:
        """Language safety, then the non-empty guarantee."""
        enforced = self._sanitizer.enforce(result, selected_text)
        return self._sanitizer.ensure_non_empty_explanation(enforced, selected_text, MODEL_EMPTY_NOTE)

    @staticmethod
    def _payload(
        request: SelectionRequest, result: ExplainResult, cached: bool = False, words_pending: bool = False,
    ) -> ExplainPayload:
        return ExplainPayload(
            request_id=request.request_id,
            result=result,
            cached=cached,
            words_pending=words_pending,
            explanation_mode=request.explanation_mode,
        )
