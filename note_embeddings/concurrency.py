"""
Bounded-concurrency execution of async work items with progress reporting.
"""

from __future__ import annotations

import asyncio
from abc import ABC
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Generic, Iterable, Optional, Set, TypeVar

from .logging_utils import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


class ProgressListener(ABC):
    """Receives completion events from a ConcurrencyManager."""

    def task_completed(self, completed: int, total: int) -> None:
        """Called once per finished item with the cumulative completed count."""

    def task_failed(self, item: Any, error: BaseException) -> None:
        """Called before ``task_completed`` when an item raised."""


class CallbackListener(ProgressListener):
    def __init__(self, notify: Callable[[int], None]) -> None:
        self._notify = notify

    def task_completed(self, completed: int, total: int) -> None:
        self._notify(completed)


class ConcurrencyManager(Generic[T]):
    """
    Run ``task(item)`` for every queued item with at most ``limit`` in flight.

    Failures are logged and counted as completed; they never stop the rest
    of the queue. ``done()`` resolves once, after the queue is drained and
    nothing is running, including items added with ``add`` after start.

    Must be constructed inside a running event loop.
    """

    def __init__(
        self,
        limit: int,
        items: Iterable[T],
        task: Callable[[T], Awaitable[Any]],
        listener: Optional[ProgressListener] = None,
    ) -> None:
        if limit < 1:
            raise ValueError(f"Concurrency limit must be at least 1, got {limit}")

        self.limit = limit
        self._task = task
        self._listener = listener
        self._loop = asyncio.get_running_loop()
        self._queue: Deque[T] = deque(items)
        self._running: Set[asyncio.Task] = set()
        self._active = 0
        self._completed = 0
        self._failed = 0
        self._total = len(self._queue)
        self._done: asyncio.Future[None] = self._loop.create_future()

        logger.debug("Starting %d tasks with concurrency %d", self._total, limit)
        self._start_available()
        self._settle_if_idle()

    @property
    def active(self) -> int:
        return self._active

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def total(self) -> int:
        return self._total

    def add(self, item: T) -> None:
        if self._done.done():
            raise RuntimeError("ConcurrencyManager has already settled; start a new one")
        self._queue.append(item)
        self._total += 1
        self._start_available()

    def done(self) -> "asyncio.Future[None]":
        return self._done

    def _start_available(self) -> None:
        while self._queue and self._active < self.limit:
            item = self._queue.popleft()
            self._active += 1
            running = self._loop.create_task(self._run(item))
            self._running.add(running)
            running.add_done_callback(self._running.discard)

    async def _run(self, item: T) -> None:
        try:
            await self._task(item)
        except Exception as exc:
            self._failed += 1
            logger.error("Task for %r failed: %s", item, exc)
            self._publish_failure(item, exc)
        finally:
            self._active -= 1
            self._completed += 1
            self._publish_progress()
            self._start_available()
            self._settle_if_idle()

    def _publish_failure(self, item: T, exc: BaseException) -> None:
        if self._listener is None:
            return
        try:
            self._listener.task_failed(item, exc)
        except Exception:
            logger.exception("Progress listener raised in task_failed")

    def _publish_progress(self) -> None:
        if self._listener is None:
            return
        try:
            self._listener.task_completed(self._completed, self._total)
        except Exception:
            logger.exception("Progress listener raised in task_completed")

    def _settle_if_idle(self) -> None:
        if not self._queue and self._active == 0 and not self._done.done():
            logger.debug(
                "All %d tasks finished (%d failed)", self._completed, self._failed
            )
            self._done.set_result(None)
