# src/chunking/word_chunker.py — v1
"""Word-aligned chunking for long selections.

Whitespace is normalized to single spaces, then words are packed greedily
until the next word would push a chunk past the target size. Once the
chunk list is one short of the cap, the rest of the text is folded into
the final chunk, so no word is ever dropped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from easyread.config.settings import Settings


def normalize_whitespace(text: str) -> str:
    return " ".join((text or "").split())


def split_text_into_chunks(text: str, target_chars: int, max_chunks: int) -> list[str]:
    """Split `text` into at most `max_chunks` word-aligned chunks.

    A single word longer than `target_chars` becomes its own chunk.
    """
    words = normalize_whitespace(text).split(" ") if text and text.strip() else []
    if not words:
        return []
    max_chunks = max(1, max_chunks)

    chunks: list[str] = []
    current = ""
    for index, word in enumerate(words):
        candidate = f"{current} {word}" if current else word
        if len(candidate) > target_chars and current:
            if len(chunks) >= max_chunks - 1:
                chunks.append(" ".join([current, *words[index:]]))
                return chunks
            chunks.append(current)
            current = word
            continue
        current = candidate

    if current:
        chunks.append(current)
    return chunks


class WordChunker:
    """Settings-bound wrapper around split_text_into_chunks."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._target = 1600 if settings is None else settings.chunk_size_chars
        self._max_chunks = 8 if settings is None else settings.max_chunks

    def chunk(self, text: str) -> list[str]:
        return split_text_into_chunks(text, self._target, self._max_chunks)
