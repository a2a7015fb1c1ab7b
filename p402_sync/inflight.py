"""At-most-one-concurrent-operation bookkeeping, keyed by fetch kind or entity id."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlight:
    """Runs at most one operation per key; concurrent callers join it.

    The key is registered before the caller's first suspension and removed
    in the same step the operation settles, so there is no window in which
    a duplicate could start. Joiners await through :func:`asyncio.shield`:
    a cancelled caller never cancels the shared operation.
    """

    def __init__(self, on_change: Callable[[], None] | None = None) -> None:
        self._tasks: dict[Hashable, asyncio.Task[Any]] = {}
        self._on_change = on_change

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def keys(self) -> set[Hashable]:
        return set(self._tasks)

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._settle(key, factory))
            task.add_done_callback(functools.partial(self._on_done, key))
            self._tasks[key] = task
            self._notify()
        else:
            logger.debug("Joining in-flight operation %r", key)
        return await asyncio.shield(task)

    async def _settle(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            self._tasks.pop(key, None)
            self._notify()

    @staticmethod
    def _on_done(key: Hashable, task: asyncio.Task[Any]) -> None:
        # Retrieves the exception even when every caller was cancelled
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("In-flight operation %r failed", key, exc_info=exc)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


async def settle_all(*aws: Awaitable[Any]) -> list[Any]:
    """Await every operation, even after one fails, then re-raise the first failure.

    Store operations already turn remote failures into state, so anything
    raised here is a programming error and must not be hidden.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results
