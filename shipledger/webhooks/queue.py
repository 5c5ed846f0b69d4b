"""Bounded-concurrency work queue for post-acknowledgment webhook processing.

Jobs are admitted FIFO and at most ``concurrency`` run at once on the current
event loop. A failing job is logged and dropped; nothing is redelivered.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class WorkQueue:
    def __init__(self, concurrency: int = 4):
        self._concurrency = max(1, concurrency)
        self._pending: deque[tuple[Job, str]] = deque()
        self._active = 0
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._pending)

    def push(self, job: Job, label: str = "") -> None:
        """Enqueue a job; must be called from within the running event loop."""
        self._pending.append((job, label))
        self._drain()

    def _drain(self) -> None:
        while self._active < self._concurrency and self._pending:
            job, label = self._pending.popleft()
            self._active += 1
            task = asyncio.get_running_loop().create_task(self._run(job, label))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, job: Job, label: str) -> None:
        try:
            await job()
        except Exception:
            logger.exception("Work queue job failed: %s", label or "unlabelled")
        finally:
            self._active -= 1
            self._drain()

    async def join(self) -> None:
        """Wait until every queued and running job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
