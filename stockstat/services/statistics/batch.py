"""
Ingestion batch tracking.

One UpdateBatch spans all ingestion calls of a single feed update. Each call
is a task; the batch completes when a task reports the final chunk and no
other task is still in flight.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

CompletionCallback = Callable[["UpdateBatch"], Awaitable[None]]


class UpdateBatch:
    """
    In-flight counter with a single completion callback.

    Usage:
        batch = UpdateBatch(on_complete=record_history)
        async with batch.task(finished=True):
            ...ingest...
    """

    def __init__(self, on_complete: Optional[CompletionCallback] = None):
        self.batch_id = uuid.uuid4().hex[:8]
        self._on_complete = on_complete
        self._lock = asyncio.Lock()
        self._in_flight = 0
        self._finished = False
        self._completed = False
        self._failed_tasks = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def finished(self) -> bool:
        """The task carrying the final chunk has ended."""
        return self._finished

    @property
    def completed(self) -> bool:
        """The completion callback has run."""
        return self._completed

    @property
    def failed(self) -> bool:
        return self._failed_tasks > 0

    async def start_task(self) -> None:
        async with self._lock:
            if self._completed:
                raise RuntimeError(f"Batch {self.batch_id} already completed")
            self._in_flight += 1

    async def finish_task(self, finished: bool = False, failed: bool = False) -> None:
        """Decrement the counter; run the callback once the batch is done."""
        async with self._lock:
            self._in_flight -= 1
            if failed:
                self._failed_tasks += 1
            if finished:
                self._finished = True
            run_callback = self._finished and self._in_flight == 0 and not self._completed
            if run_callback:
                self._completed = True

        if run_callback:
            logger.info(
                f"Batch {self.batch_id} complete "
                f"({'with failures' if self.failed else 'success'})"
            )
            if self._on_complete is not None:
                await self._on_complete(self)

    @asynccontextmanager
    async def task(self, finished: bool = False) -> AsyncIterator["UpdateBatch"]:
        """Track one ingestion call; the counter is released even on error."""
        await self.start_task()
        try:
            yield self
        except BaseException:
            await self.finish_task(finished=finished, failed=True)
            raise
        await self.finish_task(finished=finished)
