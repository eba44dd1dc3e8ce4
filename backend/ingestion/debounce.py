"""Per-key trailing-edge debouncer built on loop.call_later handles."""

import asyncio
import logging
from typing import Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

DEBOUNCE_DELAY = 2.0   # seconds


class Debouncer:
    def __init__(self, delay: float = DEBOUNCE_DELAY):
        self.delay = delay
        self._handles: dict[Hashable, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Task] = set()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def schedule(self, key: Hashable, callback: Callable[[], Awaitable[None]]) -> None:
        """(Re)start the timer for `key`; only the last callback scheduled before it fires runs."""
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self.delay, self._fire, key, callback)

    def cancel(self, key: Hashable) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    async def wait_idle(self) -> None:
        """Wait for callbacks that already fired to finish."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    def _fire(self, key: Hashable, callback: Callable[[], Awaitable[None]]) -> None:
        self._handles.pop(key, None)
        task = asyncio.ensure_future(self._run(key, callback))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, key: Hashable, callback: Callable[[], Awaitable[None]]) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("Debounced callback for %r failed", key)
