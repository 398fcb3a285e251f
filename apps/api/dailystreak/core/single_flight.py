from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

T = TypeVar("T")


class RefreshGate:
    """Coalesces concurrent calls that share a key onto one in-flight task.

    Only in-flight work is shared; once a call finishes the next one with the
    same key runs fresh. Each app instance owns its own gate.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._inflight: dict[Hashable, asyncio.Future[Any]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    def _forget(self, key: Hashable, task: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Marks the outcome retrieved when every waiter has gone away.
        if not task.cancelled():
            task.exception()

    async def run(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(fn())
                self._inflight[key] = task
                # Cleared when the work ends, even if the first caller was cancelled.
                task.add_done_callback(lambda done: self._forget(key, done))

        # shield: a cancelled waiter must not cancel the shared computation
        return await asyncio.shield(task)
