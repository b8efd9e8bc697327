# src/pipeline/inflight.py — v1
"""In-flight registry: concurrent identical requests share one computation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlightRegistry(Generic[T]):
    """Fingerprint -> running task. Entries leave when the task settles."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[T]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, key: str) -> asyncio.Task[T] | None:
        return self._tasks.get(key)

    def start(self, key: str, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Run `factory()` as the shared computation for `key`."""
        if key in self._tasks:
            raise RuntimeError(f"computation already in flight for {key[:12]}")

        async def run() -> T:
            try:
                return await factory()
            finally:
                self._tasks.pop(key, None)

        task = asyncio.ensure_future(run())
        self._tasks[key] = task
        return task

    async def join(self, key: str) -> T | None:
        """Await the running computation for `key`, if any.

        A joined caller that gets cancelled does not cancel the shared work.
        """
        task = self._tasks.get(key)
        if task is None:
            return None
        logger.debug("Joining in-flight computation %s", key[:12])
        return await asyncio.shield(task)
