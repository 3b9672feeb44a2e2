"""Fixed-interval timers for the poll and liveness loops."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from core.errors import ConflictingInstanceError

LOGGER = logging.getLogger(__name__)


class PeriodicTimer:
    """Launch ``job`` every ``interval`` seconds without waiting for it.

    A slow job does not delay the next launch; the job itself decides what
    to do about overlap. A ``ConflictingInstanceError`` stops the timer and
    is kept in ``failed`` for the owner to act on.
    """

    def __init__(self, interval: float, job: Callable[[], Awaitable[Any]], name: str) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._job = job
        self._name = name
        self._loop_task: Optional[asyncio.Task] = None
        self._jobs: set[asyncio.Task] = set()
        self.failed: Optional[BaseException] = None
        self.stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run(), name=f"{self._name}-timer")

    async def stop(self) -> None:
        tasks = list(self._jobs)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self.stopped.set()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            task = asyncio.create_task(self._job(), name=self._name)
            self._jobs.add(task)
            task.add_done_callback(self._job_done)

    def _job_done(self, task: asyncio.Task) -> None:
        self._jobs.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, ConflictingInstanceError):
            LOGGER.critical("%s stopped: %s", self._name, exc)
            self.failed = exc
            if self._loop_task is not None:
                self._loop_task.cancel()
            self.stopped.set()
            return
        LOGGER.error("%s job failed: %s", self._name, exc)
