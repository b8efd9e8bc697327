# src/pipeline/merge.py — v1
"""Vocabulary merging, level filtering and chunk-result merging."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TypeVar

from easyread.core.models import ExplainResult, VocabularyEntry

T = TypeVar("T")
R = TypeVar("R")

CHUNK_FALLBACK_EXPLANATION = "We could not explain all of this long text."
DEFAULT_CHUNK_CONFIDENCE = 0.45
SUPPLEMENTAL_MIN_CHARS = 40
UNDER_EXTRACTION_CANDIDATES = 10


def merge_word_entries(*groups: Iterable[VocabularyEntry]) -> list[VocabularyEntry]:
    """Union of entry groups, deduplicated by key; first occurrence wins."""
    merged: list[VocabularyEntry] = []
    seen: set[str] = set()
    for group in groups:
        for entry in group:
            key = entry.key
            if not key or key in seen:
                continue
            seen.add(key)
            merged.append(entry)
    return merged


def keep_learnable(entries: Iterable[VocabularyEntry]) -> list[VocabularyEntry]:
    """Keep B2/C1/C2 entries that have a definition and an example."""
    return [e for e in entries if e.is_learnable]


def should_run_supplemental(
    current_words: Sequence[VocabularyEntry], candidate_count: int, text_length: int,
) -> bool:
    """Under-extraction check for the primary vocabulary pass."""
    if candidate_count <= 0 or text_length < SUPPLEMENTAL_MIN_CHARS:
        return False
    if not current_words:
        return True
    return candidate_count >= UNDER_EXTRACTION_CANDIDATES and len(current_words) <= 1


def merge_chunk_results(results: Sequence[ExplainResult], chunk_count: int) -> ExplainResult:
    """Join per-chunk results in chunk order."""
    explanations = [r.explanation.strip() for r in results if r.explanation.strip()]
    notes: dict[str, None] = {}
    for r in results:
        if r.notes.strip():
            notes.setdefault(r.notes.strip(), None)
    notes.setdefault(f"Large text mode: analyzed in {chunk_count} parts.", None)

    confidences = [r.confidence for r in results]
    return ExplainResult(
        explanation="\n\n".join(explanations) or CHUNK_FALLBACK_EXPLANATION,
        vocabulary=keep_learnable(merge_word_entries(*(r.vocabulary for r in results))),
        notes=" ".join(notes),
        confidence=sum(confidences) / len(confidences) if confidences else DEFAULT_CHUNK_CONFIDENCE,
    )


async def map_with_concurrency(
    items: Sequence[T], limit: int, mapper: Callable[[T, int], Awaitable[R]],
) -> list[R]:
    """Map `items` with at most `limit` mappers running at once.

    Workers pull the next index from a shared cursor, so item N+limit
    never starts before one of the earlier items finished. Results keep
    input order. The first failure cancels the other workers and
    propagates.
    """
    if not items:
        return []
    results: list[R | None] = [None] * len(items)
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await mapper(items[index], index)

    workers = [asyncio.ensure_future(worker()) for _ in range(max(1, min(limit, len(items))))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise
    return results  # type: ignore[return-value]
