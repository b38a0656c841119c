"""Explicit queue of cancellable deferred tasks.

Retries and debounced sync attempts are entries in this queue rather than
hidden ``loop.call_later`` handles, so ordering and cancellation can be
driven step by step.  In the daemon :class:`~fitsync.sync.scheduler.SyncScheduler`
sleeps until :meth:`TimerQueue.next_due_in` and then calls
:meth:`TimerQueue.run_due`; tests do the same with a fake clock.
"""

from __future__ import annotations

import heapq
import inspect
import itertools
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

log = structlog.get_logger(__name__)

Clock = Callable[[], float]
TaskCallback = Callable[[], Awaitable[None] | None]


@dataclass(order=True)
class ScheduledTask:
    due_at: float
    seq: int
    name: str = field(compare=False)
    callback: TaskCallback = field(compare=False, repr=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class TimerQueue:
    """Min-heap of :class:`ScheduledTask` ordered by due time, then insertion."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._heap: list[ScheduledTask] = []
        self._seq = itertools.count()
        self._listeners: list[Callable[[], None]] = []

    def now(self) -> float:
        return self._clock()

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Call *callback* whenever a task is scheduled (used to wake the scheduler)."""
        self._listeners.append(callback)

    def schedule(self, delay_ms: int, callback: TaskCallback, *, name: str = "") -> ScheduledTask:
        task = ScheduledTask(
            due_at=self._clock() + max(delay_ms, 0) / 1000,
            seq=next(self._seq),
            name=name,
            callback=callback,
        )
        heapq.heappush(self._heap, task)
        for listener in self._listeners:
            listener()
        return task

    def cancel_all(self) -> int:
        count = 0
        for task in self._heap:
            if not task.cancelled:
                task.cancel()
                count += 1
        self._heap.clear()
        return count

    def pending(self) -> list[ScheduledTask]:
        return sorted(t for t in self._heap if not t.cancelled)

    def __len__(self) -> int:
        return sum(1 for t in self._heap if not t.cancelled)

    def next_due_in(self) -> float | None:
        """Seconds until the earliest live task is due (0 if overdue), or None when empty."""
        self._drop_cancelled_head()
        if not self._heap:
            return None
        return max(self._heap[0].due_at - self._clock(), 0.0)

    async def run_due(self) -> int:
        """Run every task due now, in order; return how many ran.

        Tasks scheduled by a callback wait for the next call even when their
        delay is zero.
        """
        now = self._clock()
        due: list[ScheduledTask] = []
        while self._heap and self._heap[0].due_at <= now:
            task = heapq.heappop(self._heap)
            if not task.cancelled:
                due.append(task)

        ran = 0
        for task in due:
            # An earlier callback in this batch may have cancelled it.
            if task.cancelled:
                continue
            ran += 1
            try:
                result = task.callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("timer_task_failed", task=task.name)
        return ran

    def _drop_cancelled_head(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
