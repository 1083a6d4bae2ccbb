from __future__ import annotations
import asyncio
import inspect
from typing import Any, Callable, Dict, List, Set

from shared.log import get_logger
from shared.message_types import EventKind

logger = get_logger(__name__)


Handler = Callable[..., Any]


class EventDispatcher:
    """
    Ordered subscribers per connection lifecycle event.

    Handlers run in registration order. Plain callables run inline; coroutine
    functions are scheduled on the running loop in the same order. A failing
    handler is logged and never stops the rest.
    """

    def __init__(self) -> None:
        self._handlers: Dict[EventKind, List[Handler]] = {kind: [] for kind in EventKind}
        self._pending: Set[asyncio.Task] = set()

    def on(self, kind: EventKind, handler: Handler) -> Handler:
        self._handlers[EventKind(kind)].append(handler)
        return handler

    def off(self, kind: EventKind, handler: Handler) -> None:
        handlers = self._handlers[EventKind(kind)]
        if handler in handlers:
            handlers.remove(handler)

    def handlers(self, kind: EventKind) -> List[Handler]:
        return list(self._handlers[EventKind(kind)])

    # Convenience registration, usable as decorators
    def on_open(self, handler: Handler) -> Handler:
        return self.on(EventKind.OPEN, handler)

    def on_message(self, handler: Handler) -> Handler:
        return self.on(EventKind.MESSAGE, handler)

    def on_close(self, handler: Handler) -> Handler:
        return self.on(EventKind.CLOSE, handler)

    def on_error(self, handler: Handler) -> Handler:
        return self.on(EventKind.ERROR, handler)

    def on_connection_change(self, handler: Handler) -> Handler:
        return self.on(EventKind.CONNECTION_CHANGE, handler)

    def emit(self, kind: EventKind, *args: Any) -> None:
        kind = EventKind(kind)
        for handler in self.handlers(kind):
            try:
                result = handler(*args)
            except Exception as e:
                logger.error("%s handler %r failed: %s", kind.value, handler, e)
                continue
            if inspect.isawaitable(result):
                self._schedule(kind, result)

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, kind: EventKind, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("Cannot run async %s handler without a running event loop", kind.value)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        async def _guarded() -> None:
            try:
                await awaitable
            except Exception as e:
                logger.error("async %s handler failed: %s", kind.value, e)

        task = loop.create_task(_guarded())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
