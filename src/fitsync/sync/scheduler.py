"""Sync scheduler — drives the timer queue, periodic sweeps and connectivity probes."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from fitsync.sync.status import SyncStatus

if TYPE_CHECKING:
    from fitsync.sync.engine import SyncEngine
    from fitsync.sync.timers import TimerQueue

log = structlog.get_logger(__name__)


class SyncScheduler:
    """Runs due timer tasks for the engine, with pause/resume and manual trigger.

    Besides the engine's own deferred tasks (retries, debounced pushes) the
    loop sweeps for pending changes every *interval_minutes* and, while the
    engine reports offline, probes connectivity every *probe_seconds*.
    """

    def __init__(
        self,
        engine: SyncEngine,
        timers: TimerQueue,
        interval_minutes: int = 5,
        probe_seconds: int = 30,
    ) -> None:
        self._engine = engine
        self._timers = timers
        self._interval = interval_minutes * 60  # seconds
        self._probe_interval = probe_seconds
        self._paused = False
        self._stop_event = asyncio.Event()
        self._trigger_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_sweep_at: datetime | None = None
        self._next_sweep_at: datetime | None = None
        self._last_probe_at: datetime | None = None

        timers.add_listener(self._wake_event.set)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        log.info("scheduler_started", interval_minutes=self._interval // 60)

    async def stop(self) -> None:
        """Stop the scheduler, waiting for any in-progress sync to complete."""
        if not self.is_running:
            return
        self._stop_event.set()
        self._wake_event.set()
        if self._task:
            await self._task
            self._task = None
        dropped = self._timers.cancel_all()
        log.info("scheduler_stopped", dropped_tasks=dropped)

    def trigger_now(self) -> None:
        """Request an immediate manual sync."""
        self._trigger_event.set()
        self._wake_event.set()

    def pause(self) -> None:
        self._paused = True
        log.info("scheduler_paused")

    def resume(self) -> None:
        self._paused = False
        self._wake_event.set()
        log.info("scheduler_resumed")

    def get_status(self) -> dict:
        due_in = self._timers.next_due_in()
        return {
            "running": self.is_running,
            "paused": self._paused,
            "interval_minutes": self._interval // 60,
            "queued_tasks": [t.name for t in self._timers.pending()],
            "next_task_in_seconds": round(due_in, 3) if due_in is not None else None,
            "last_sweep_at": self._last_sweep_at.isoformat() if self._last_sweep_at else None,
            "next_sweep_at": self._next_sweep_at.isoformat() if self._next_sweep_at else None,
        }

    async def _loop(self) -> None:
        # First sweep runs immediately so changes left over from the last
        # session are pushed on startup.
        self._next_sweep_at = datetime.now(UTC)
        while not self._stop_event.is_set():
            try:
                await self._tick()
            except Exception as exc:
                log.error("scheduler_tick_failed", error=str(exc))

            if self._stop_event.is_set():
                break

            self._wake_event.clear()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wake_event.wait(), timeout=self._sleep_seconds())

    async def _tick(self) -> None:
        if self._trigger_event.is_set():
            self._trigger_event.clear()
            if not self._paused:
                await self._engine.sync_now()

        if self._paused:
            return

        await self._timers.run_due()

        now = datetime.now(UTC)
        if self._next_sweep_at is not None and now >= self._next_sweep_at:
            self._last_sweep_at = now
            self._next_sweep_at = now + timedelta(seconds=self._interval)
            if self._engine.schedule_pending_sync("sweep"):
                log.info("sweep_scheduled_sync", pending=self._engine.get_status().pending_change_count)

        if self._engine.status == SyncStatus.OFFLINE and self._probe_due(now):
            self._last_probe_at = now
            await self._engine.check_connectivity()

    def _probe_due(self, now: datetime) -> bool:
        return self._last_probe_at is None or (now - self._last_probe_at).total_seconds() >= self._probe_interval

    def _sleep_seconds(self) -> float:
        candidates: list[float] = []
        if not self._paused:
            due_in = self._timers.next_due_in()
            if due_in is not None:
                candidates.append(due_in)
        if self._next_sweep_at is not None:
            candidates.append((self._next_sweep_at - datetime.now(UTC)).total_seconds())
        if self._engine.status == SyncStatus.OFFLINE:
            candidates.append(float(self._probe_interval))
        return max(min(candidates, default=float(self._interval)), 0.0)
