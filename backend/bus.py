"""
In-process event bus.

Handlers run synchronously, in the order they were registered. A handler
that raises is logged and skipped; it never reaches the emitter and never
stops the handlers registered after it.
"""

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventBus:
    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a callable that unregisters it."""
        self._handlers[name].append(handler)
        return lambda: self.off(name, handler)

    def off(self, name: str, handler: Handler) -> None:
        handlers = self._handlers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, name: str, *args: Any) -> int:
        """Dispatch to every handler of `name`. Returns how many ran cleanly."""
        delivered = 0
        # Copy so a handler can unregister itself mid-dispatch
        for handler in list(self._handlers.get(name, ())):
            try:
                handler(*args)
                delivered += 1
            except Exception:
                logger.exception("Handler for %r failed", name)
        return delivered

    def listener_count(self, name: str) -> int:
        return len(self._handlers.get(name, ()))

    def clear(self) -> None:
        self._handlers.clear()
