"""
Cooperative work queue for the map renderer.

A bounded FIFO of zero-argument callables drained by a single consumer. The
renderer puts one batch on the queue at a time and each batch enqueues the
next, so the consumer (a request handler, a CLI loop) decides when control
goes back to the event loop.
"""
import asyncio
import logging
from collections import deque
from typing import Callable, Deque

logger = logging.getLogger(__name__)

Task = Callable[[], None]


class CooperativeScheduler:
    def __init__(self, max_pending: int = 1024):
        if max_pending < 1:
            raise ValueError("max_pending must be positive")
        self.max_pending = max_pending
        self._queue: Deque[Task] = deque()
        self.scheduled_count = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    def schedule(self, task: Task) -> None:
        if len(self._queue) >= self.max_pending:
            raise RuntimeError(f"Render queue is full ({self.max_pending} pending tasks)")
        self._queue.append(task)
        self.scheduled_count += 1

    def run_next(self) -> bool:
        """Run the oldest pending task. Returns False when the queue was empty."""
        if not self._queue:
            return False
        task = self._queue.popleft()
        try:
            task()
        except Exception:
            logger.exception("Scheduled render task failed")
        return True

    def run_until_idle(self) -> int:
        ran = 0
        while self.run_next():
            ran += 1
        return ran

    async def drain(self) -> int:
        """Run tasks until idle, yielding to the event loop after each one."""
        ran = 0
        while self.run_next():
            ran += 1
            await asyncio.sleep(0)
        return ran

    def clear(self) -> None:
        self._queue.clear()
