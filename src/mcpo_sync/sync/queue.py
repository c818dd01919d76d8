"""Single-consumer queue that serializes reconciliation passes.

Every pass (user edit, load-time, startup) is submitted here and run by one
worker, strictly in submission order, each awaited to completion before the
next starts. A failing pass resolves its own future with the exception and
the worker moves on.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

PassFactory = Callable[[], Awaitable[Any]]


@dataclass
class _QueuedPass:
    name: str
    factory: PassFactory
    future: "asyncio.Future[Any]"


class PassQueue:
    """FIFO of pending passes drained by one background worker."""

    def __init__(self):
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._stopping = False
        self._pending = 0
        self.completed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        """Passes submitted but not finished (including the running one)."""
        return self._pending

    def start(self):
        """Start the worker on the running loop. Idempotent."""
        if self.running:
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._stopping = False
        self._worker = asyncio.create_task(self._run(), name="mcpo-sync-pass-queue")
        logger.debug("Pass queue worker started")

    def submit(self, factory: PassFactory, name: str = "pass") -> "asyncio.Future[Any]":
        """Append a pass; the returned future settles when it has run.

        Args:
            factory: Zero-argument callable returning the pass coroutine.
                Called only when the pass starts, so it sees state as of then.
            name: Label for logs
        """
        if self._stopping:
            raise RuntimeError("Pass queue is shutting down")
        self.start()
        future = asyncio.get_running_loop().create_future()
        self._pending += 1
        self._queue.put_nowait(_QueuedPass(name=name, factory=factory, future=future))
        logger.debug("Queued %s (%d pending)", name, self.pending)
        return future

    async def _run(self):
        while True:
            item: _QueuedPass = await self._queue.get()
            try:
                if item.future.cancelled():
                    continue
                logger.debug("Running %s", item.name)
                result = await item.factory()
            except asyncio.CancelledError:
                if not item.future.done():
                    item.future.cancel()
                raise
            except Exception as e:
                self.failed += 1
                logger.warning("%s failed: %s", item.name, e)
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                self.completed += 1
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                self._pending -= 1
                self._queue.task_done()

    async def join(self):
        """Wait until every submitted pass has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, drain: bool = True):
        """Stop the worker, by default after the queued passes have run."""
        self._stopping = True
        if self._worker is None:
            return
        if drain and self.running:
            await self.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

        while not self._queue.empty():
            item = self._queue.get_nowait()
            item.future.cancel()
            self._pending -= 1
            self._queue.task_done()
        logger.debug("Pass queue worker stopped")
