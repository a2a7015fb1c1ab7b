"""
Change-notification bus for the p402 sync stores.

Stores emit a :class:`StoreEvent` after every observable state change;
UI code subscribes here instead of polling store attributes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine

from p402_sync.types import StoreEvent

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[[StoreEvent], Coroutine[Any, Any, None] | None]


class EventBus:
    """Dispatches store events to subscribed handlers.

    Sync handlers run inline. Coroutine handlers are scheduled on the
    running loop, so emitting never suspends the store that emits.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._wildcard_handlers: list[EventHandler] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for a specific event type."""
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register a handler for all event types."""
        self._wildcard_handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler | None = None) -> None:
        """Remove a handler (or all handlers) for an event type."""
        if handler is None:
            self._handlers.pop(event_type, None)
        else:
            handlers = self._handlers.get(event_type, [])
            self._handlers[event_type] = [h for h in handlers if h is not handler]

    def unsubscribe_all(self, handler: EventHandler | None = None) -> None:
        """Remove a wildcard handler (or all of them)."""
        if handler is None:
            self._wildcard_handlers.clear()
        else:
            self._wildcard_handlers = [h for h in self._wildcard_handlers if h is not handler]

    def emit(self, event_type: str, **data: Any) -> StoreEvent:
        """Build an event and dispatch it to all matching handlers."""
        event = StoreEvent(
            type=event_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
            data=data,
        )
        handlers = list(self._handlers.get(event_type, []))
        handlers.extend(self._wildcard_handlers)

        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    self._schedule(result, event_type)
            except Exception:
                logger.exception("Error in event handler for %s", event_type)
        return event

    def _schedule(self, coro: Coroutine[Any, Any, None], event_type: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, async handler for %s dropped", event_type)
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Error in async event handler", exc_info=exc)

    async def drain(self) -> None:
        """Wait for every scheduled async handler to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
