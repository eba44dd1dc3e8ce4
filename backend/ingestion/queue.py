"""
Ingestion queue.

Producers call enqueue() at any rate; a ticker drains up to batch_size
tasks every interval and writes them concurrently. Delivery is
at-most-once: a task whose write raises is logged and dropped. Tasks still
buffered when stop() is called stay buffered; anything left at process
exit is lost unless flush() ran first.
"""

import asyncio
import logging
from collections import deque
from typing import Optional

from models.tasks import ActionTask, EventTask, IngestionTask, describe_task
from storage.base import VectorStorage

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
FLUSH_INTERVAL = 0.5   # seconds


class IngestionQueue:
    def __init__(self, storage: VectorStorage, batch_size: int = BATCH_SIZE, interval: float = FLUSH_INTERVAL):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._storage = storage
        self._batch_size = batch_size
        self._interval = interval
        self._buffer: deque = deque()
        self._is_processing = False
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()
        self.stats = {"processed": 0, "failed": 0}

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    def enqueue(self, task: IngestionTask) -> None:
        self._buffer.append(task)

    def start(self) -> None:
        if self.running:
            return
        self._ticker = asyncio.create_task(self._tick_loop())
        logger.info("Ingestion queue started (batch=%d, interval=%.2fs)", self._batch_size, self._interval)

    async def stop(self) -> None:
        if self._ticker is None:
            return
        self._ticker.cancel()
        try:
            await self._ticker
        except asyncio.CancelledError:
            pass
        self._ticker = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("Ingestion queue stopped with %d task(s) buffered", len(self._buffer))

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self._is_processing or not self._buffer:
                continue
            # The flush runs beside the ticker so a slow batch never delays the next tick
            flush = asyncio.create_task(self.process_queue())
            self._inflight.add(flush)
            flush.add_done_callback(self._inflight.discard)

    async def process_queue(self) -> int:
        """Write one batch. Returns how many tasks succeeded; skipped if a flush is in flight."""
        if self._is_processing or not self._buffer:
            return 0
        self._is_processing = True
        try:
            batch = [self._buffer.popleft() for _ in range(min(self._batch_size, len(self._buffer)))]
            results = await asyncio.gather(*(self._process_task(task) for task in batch))
            return sum(results)
        finally:
            self._is_processing = False

    async def flush(self) -> int:
        """Drain the whole buffer, batch by batch."""
        written = 0
        while self._buffer:
            if self._is_processing:
                await asyncio.sleep(0)
                continue
            written += await self.process_queue()
        return written

    async def _process_task(self, task: IngestionTask) -> bool:
        try:
            if isinstance(task, EventTask):
                await self._storage.log_event(task.data)
            elif isinstance(task, ActionTask):
                await self._storage.add_action(task.data)
            else:
                raise TypeError(f"Unknown ingestion task {type(task).__name__}")
        except Exception as exc:
            self.stats["failed"] += 1
            logger.error("Failed to process %s task (%s): %s", getattr(task, "type", "?"), describe_task(task), exc)
            return False
        self.stats["processed"] += 1
        return True
