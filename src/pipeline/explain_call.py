# src/pipeline/explain_call.py — v1
"""ExplainCaller — one model call wrapped in the repair ladder.

The ladder is a bounded loop. Each round sends the prompt (plus the
current correction hint) and walks these steps, stopping at the first
usable answer:

  1. parse the structured output
  2. empty + truncated: resend with the retry budget, schema off
  3. still empty on the fast model: resend on the large model
  4. parse failure: a "repair into valid JSON" call on the large model
  5. no text at all, empty explanation, copied explanation or still
     invalid JSON: one more round with a correction hint (each hint
     used once)
  6. otherwise: a local fallback result (confidence 0.2)

Transport errors (NetworkRetryable, ProxyRetryable, ProxyError) on the
main call propagate to the caller. A repair call that fails for any
reason counts as a failed repair and the ladder moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from easyread.config.settings import Settings
from easyread.core.errors import EasyReadError, MalformedOutput
from easyread.core.models import ExplainResult, VocabularyEntry
from easyread.llm import prompts
from easyread.llm.config import ModelRouting
from easyread.llm.gateway import ModelGateway
from easyread.llm.models import ModelInvocation, is_token_truncation, outcome_text
from easyread.llm.schema import (
    SCHEMA_NAMES,
    VOCABULARY_ONLY_SCHEMA,
    parse_explain_result,
    parse_vocabulary,
)
from easyread.logging.context import set_stage
from easyread.text.copy_guard import CopyGuard
from easyread.text.simplifier import LanguageSanitizer

logger = logging.getLogger(__name__)

NOTE_CUT_OFF = "EasyRead used fallback mode because the model response was cut off."
NOTE_BAD_JSON = "EasyRead used fallback mode because model JSON formatting failed."
NOTE_EMPTY = "EasyRead used fallback mode because the model returned empty explanation text."
NOTE_COPIED = "EasyRead used fallback mode because the model repeated the original text."
NOTE_TOO_MANY = "EasyRead stopped after multiple retries to keep response fast."


@dataclass(frozen=True)
class ExplainJob:
    """Everything one laddered call needs, fixed for all its rounds."""

    selected_text: str
    mode: str
    model: str
    user_prompt: str
    max_output_tokens: int
    output_schema: dict[str, Any]
    purpose: str = "explain"


@dataclass(frozen=True)
class LadderOutcome:
    result: ExplainResult
    fell_back: bool = False
    rounds: int = 1


class ExplainCaller:
    """Runs explain calls through the repair ladder, and vocabulary calls."""

    def __init__(
        self,
        gateway: ModelGateway,
        routing: ModelRouting,
        sanitizer: LanguageSanitizer,
        copy_guard: CopyGuard,
        settings: Settings,
    ) -> None:
        self._gateway = gateway
        self._routing = routing
        self._sanitizer = sanitizer
        self._copy_guard = copy_guard
        self._retry_budget = settings.max_output_tokens_retry
        self._repair_budget = settings.repair_max_output_tokens
        self._vocabulary_budget = settings.max_output_tokens
        self._max_rounds = settings.max_ladder_steps

    async def explain(self, job: ExplainJob) -> LadderOutcome:
        hint = ""
        used_hints: set[str] = set()
        rounds = 0

        while rounds < self._max_rounds:
            rounds += 1
            set_stage(f"{job.purpose}:round{rounds}")
            base = self._invocation(job, prompts.with_hint(job.user_prompt, hint))
            text = await self._fetch_text(base, job)
            if not text:
                if self._can_retry(prompts.HINT_NO_TEXT, used_hints, rounds):
                    hint = self._use(prompts.HINT_NO_TEXT, used_hints)
                    continue
                return self._fallback(job, NOTE_CUT_OFF, rounds)

            try:
                parsed = parse_explain_result(text)
            except MalformedOutput:
                logger.info("Unparseable %s output, trying repair call", job.purpose)
                parsed = await self._repair(text, job)
                if parsed is None:
                    if self._can_retry(prompts.HINT_INVALID_JSON, used_hints, rounds):
                        hint = self._use(prompts.HINT_INVALID_JSON, used_hints)
                        continue
                    return self._fallback(job, NOTE_BAD_JSON, rounds)

            if not parsed.is_usable:
                if self._can_retry(prompts.HINT_EMPTY_EXPLANATION, used_hints, rounds):
                    hint = self._use(prompts.HINT_EMPTY_EXPLANATION, used_hints)
                    continue
                return self._fallback(job, NOTE_EMPTY, rounds)

            if self._copy_guard.is_too_close(parsed.explanation, job.selected_text):
                logger.info("Explanation repeats the selection, asking for a paraphrase")
                if self._can_retry(prompts.HINT_NO_COPY, used_hints, rounds):
                    hint = self._use(prompts.HINT_NO_COPY, used_hints)
                    continue
                return self._fallback(job, NOTE_COPIED, rounds)

            return LadderOutcome(result=parsed, rounds=rounds)

        return self._fallback(job, NOTE_TOO_MANY, rounds)

    async def vocabulary(
        self, selected_text: str, candidates: list[str], model: str, word_limit: int,
    ) -> list[VocabularyEntry]:
        """Vocabulary-only call. Empty or unparseable output yields []."""
        set_stage("vocabulary")
        invocation = ModelInvocation(
            model=model,
            system_prompt=prompts.VOCABULARY_SYSTEM_PROMPT,
            user_prompt=prompts.build_vocabulary_prompt(selected_text, candidates, word_limit),
            max_output_tokens=self._vocabulary_budget,
            schema_name=SCHEMA_NAMES["vocabulary"],
            output_schema=VOCABULARY_ONLY_SCHEMA,
            purpose="vocabulary",
        )
        text = outcome_text(await self._gateway.invoke(invocation))
        if not text:
            return []
        try:
            return parse_vocabulary(text)
        except MalformedOutput:
            logger.info("Unparseable vocabulary output, ignoring")
            return []

    # --- Ladder steps ---

    def _invocation(self, job: ExplainJob, user_prompt: str) -> ModelInvocation:
        return ModelInvocation(
            model=job.model,
            system_prompt=prompts.CORE_SYSTEM_PROMPT,
            user_prompt=user_prompt,
            max_output_tokens=job.max_output_tokens,
            schema_name=SCHEMA_NAMES.get(job.purpose, SCHEMA_NAMES["explain"]),
            output_schema=job.output_schema,
            purpose=job.purpose,
        )

    async def _fetch_text(self, base: ModelInvocation, job: ExplainJob) -> str:
        """Steps 1 to 3: first call, budget retry, large-model retry."""
        outcome = await self._gateway.invoke(base)
        text = outcome_text(outcome)
        if text:
            return text

        enlarged = max(job.max_output_tokens, self._retry_budget)
        budget = enlarged if is_token_truncation(outcome) else job.max_output_tokens
        logger.info("Empty %s output, retrying without schema (budget=%d)", job.purpose, budget)
        retry = base.without_schema().model_copy(update={"max_output_tokens": budget})
        text = outcome_text(await self._gateway.invoke(retry))
        if text or not self._routing.is_fast(job.model):
            return text

        logger.info("Still empty on %s, escalating to %s", job.model, self._routing.large)
        escalated = retry.model_copy(
            update={"model": self._routing.large, "max_output_tokens": enlarged},
        )
        return outcome_text(await self._gateway.invoke(escalated))

    async def _repair(self, raw_text: str, job: ExplainJob) -> ExplainResult | None:
        """Step 4: ask the large model to rewrite `raw_text` as valid JSON."""
        invocation = ModelInvocation(
            model=self._routing.escalate(job.model),
            system_prompt=prompts.REPAIR_SYSTEM_PROMPT,
            user_prompt=prompts.build_repair_prompt(raw_text),
            max_output_tokens=self._repair_budget,
            schema_name=SCHEMA_NAMES.get(job.purpose, SCHEMA_NAMES["explain"]),
            output_schema=job.output_schema,
            purpose="repair",
        )
        try:
            return await self._gateway.call_structured(invocation)
        except EasyReadError as e:
            logger.info("Repair call failed: %s", e)
            return None

    def _can_retry(self, hint: str, used_hints: set[str], rounds: int) -> bool:
        return hint not in used_hints and rounds < self._max_rounds

    @staticmethod
    def _use(hint: str, used_hints: set[str]) -> str:
        used_hints.add(hint)
        return hint

    def _fallback(self, job: ExplainJob, note: str, rounds: int) -> LadderOutcome:
        logger.warning("Using local fallback for %s: %s", job.purpose, note)
        return LadderOutcome(
            result=self._sanitizer.build_local_fallback_result(job.selected_text, note),
            fell_back=True,
            rounds=rounds,
        )
