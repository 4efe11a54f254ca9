"""De-duplicating work queue processed by a bounded pool of asyncio workers.

A request is never processed by two workers at once. Adding a request that
is already waiting is a no-op and adding a request that is being processed
marks it dirty so that it is processed once more after the current run.
"""

import asyncio
from collections.abc import Awaitable, Callable
import logging

from .request import Request, Result

__all__ = [
    "WorkQueue",
]

_LOGGER = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Result]]


class WorkQueue:
    """Queue of reconcile requests processed by a pool of workers."""

    def __init__(self, handler: Handler, workers: int = 4, requeue_delay: float = 5.0) -> None:
        """Initialize WorkQueue."""
        self._handler = handler
        self._num_workers = workers
        self._requeue_delay = requeue_delay
        self._queue: asyncio.Queue[Request] = asyncio.Queue()
        self._pending: set[Request] = set()
        self._processing: set[Request] = set()
        self._dirty: set[Request] = set()
        self._timers: dict[Request, asyncio.TimerHandle] = {}
        self._workers: list[asyncio.Task[None]] = []

    def add(self, request: Request) -> None:
        """Add a request to the queue unless it is already waiting."""
        if request in self._processing:
            _LOGGER.debug("Request %s is being processed, marking dirty", request)
            self._dirty.add(request)
            return
        if request in self._pending:
            return
        self._pending.add(request)
        self._queue.put_nowait(request)

    def add_after(self, request: Request, delay: float) -> None:
        """Add a request to the queue once the delay has elapsed."""
        if request in self._timers:
            return
        loop = asyncio.get_running_loop()
        self._timers[request] = loop.call_later(delay, self._timer_fired, request)

    def _timer_fired(self, request: Request) -> None:
        self._timers.pop(request, None)
        self.add(request)

    def __len__(self) -> int:
        """Return the number of requests waiting to be processed."""
        return len(self._pending)

    def start(self) -> None:
        """Start the worker pool."""
        if self._workers:
            return
        _LOGGER.debug("Starting %d workers", self._num_workers)
        self._workers = [
            asyncio.create_task(self._worker(), name=f"worker-{i}")
            for i in range(self._num_workers)
        ]

    async def stop(self) -> None:
        """Cancel the workers and any scheduled requeue."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def block_till_done(self) -> None:
        """Wait until every queued request has been processed.

        Requests scheduled for a delayed requeue are not waited for.
        """
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            request = await self._queue.get()
            self._pending.discard(request)
            self._processing.add(request)
            try:
                result = await self._handler(request)
            except Exception as err:
                _LOGGER.error("Reconcile of %s failed, requeueing: %s", request, err)
                self.add_after(request, self._requeue_delay)
            else:
                if result.requeue_after is not None:
                    self.add_after(request, result.requeue_after)
                elif result.requeue:
                    self.add_after(request, self._requeue_delay)
            finally:
                self._processing.discard(request)
                if request in self._dirty:
                    self._dirty.discard(request)
                    self.add(request)
                self._queue.task_done()
