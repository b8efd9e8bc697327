# src/pipeline/deferred.py — v1
"""Deferred vocabulary tasks and their delivery.

Each UI context has at most one "current" request id. A deferred task
is tied to the request id it was started for; when it finishes, its
update is pushed only if that request is still current for the
context. Superseded results are dropped, the work is never cancelled.
A context stays tracked only while its current request is running or
has words pending.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from easyread.core.models import WordsUpdate

logger = logging.getLogger(__name__)


class UpdateSink(Protocol):
    """Receives pushed words-updates for a UI context."""

    async def __call__(self, context_id: str | None, update: WordsUpdate) -> None: ...


class DeferredRegistry:
    """Tracks current request per context and owns deferred task handles."""

    def __init__(self, sink: UpdateSink | None = None) -> None:
        self._sink = sink
        self._current: dict[str, str] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def mark_current(self, context_id: str | None, request_id: str) -> None:
        """Record `request_id` as the request now shown in `context_id`."""
        if context_id is not None:
            self._current[context_id] = request_id

    def is_current(self, context_id: str | None, request_id: str) -> bool:
        if context_id is None:
            return True
        return self._current.get(context_id) == request_id

    def settle(self, context_id: str | None, request_id: str) -> None:
        """`request_id` has nothing left to deliver; stop tracking its context.

        Once untracked, late updates for older requests of the context are
        no longer current and get dropped.
        """
        if context_id is not None and self._current.get(context_id) == request_id:
            del self._current[context_id]

    def __len__(self) -> int:
        return len(self._current)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
        self,
        context_id: str | None,
        request_id: str,
        work: Callable[[], Awaitable[WordsUpdate]],
    ) -> asyncio.Task[None]:
        """Start `work` in the background and deliver its update when done.

        `work` must not raise; it reports failures inside the WordsUpdate.
        """
        task = asyncio.ensure_future(self._run(context_id, request_id, work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled task (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(
        self,
        context_id: str | None,
        request_id: str,
        work: Callable[[], Awaitable[WordsUpdate]],
    ) -> None:
        update = await work()
        if not self.is_current(context_id, request_id):
            logger.info("Dropping stale words-update for request %s", request_id)
            return
        self.settle(context_id, request_id)
        if self._sink is None:
            logger.debug("No update sink, words-update for %s dropped", request_id)
            return
        try:
            await self._sink(context_id, update)
        except Exception:
            logger.warning("Words-update push failed for %s", request_id, exc_info=True)
