"""Offline-first sync engine: local writes first, full-document pushes to JSONBin with backoff."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from fitsync.storage.local import LocalStoreError
from fitsync.storage.models import FitnessDataset, Mutation, SyncAttemptRecord
from fitsync.sync.errors import AuthenticationError, MalformedDataError, SyncError
from fitsync.sync.retry import RetryAttempt, RetryPolicy
from fitsync.sync.status import StatusBroadcaster, SyncState, SyncStatus

if TYPE_CHECKING:
    from fitsync.config import AppConfig, JsonBinConfig
    from fitsync.storage.history import SyncHistory
    from fitsync.storage.local import LocalStore
    from fitsync.sync.jsonbin import JsonBinClient
    from fitsync.sync.timers import ScheduledTask, TimerQueue

log = structlog.get_logger(__name__)

_SECTIONS = ("profile", "daily_logs", "streaks", "custom_rewards", "achievements", "settings")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncEngine:
    """Keeps the bin in step with the local store.

    Only one attempt runs at a time.  Retries, debounced pushes and
    reconnect pushes are entries in the shared :class:`TimerQueue`; whoever
    drives that queue (the scheduler in the daemon, the test itself in
    tests) decides when they run.
    """

    def __init__(
        self,
        config: AppConfig,
        store: LocalStore,
        timers: TimerQueue,
        *,
        history: SyncHistory | None = None,
        client_factory: Callable[[JsonBinConfig], JsonBinClient] | None = None,
        broadcaster: StatusBroadcaster | None = None,
        now: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._timers = timers
        self._history = history
        self._client_factory = client_factory
        self.broadcaster = broadcaster or StatusBroadcaster()
        self._now = now
        self._rng = rng
        self._policy = RetryPolicy.from_config(config.sync)
        self._lock = asyncio.Lock()

        self._status = SyncStatus.IDLE
        self._pending = store.pending_count()
        self._last_synced_at = store.get_last_synced_at()
        self._attempt = 0
        self._retry: RetryAttempt | None = None
        self._retry_task: ScheduledTask | None = None
        self._sync_task: ScheduledTask | None = None
        self._last_error: str | None = None
        # Set once retries are exhausted or a non-retriable error occurs;
        # cleared only by a new local change or a manual sync.
        self._halted = False
        self._online = True
        self._resync_requested = False
        self._closed = False

    # -- queries ------------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def halted(self) -> bool:
        return self._halted

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def get_status(self) -> SyncState:
        return SyncState(
            status=self._status,
            last_synced_at=self._last_synced_at,
            pending_change_count=self._pending,
            attempt=self._attempt,
            retry=self._retry,
            last_error=self._last_error,
        )

    def get_dataset(self) -> FitnessDataset:
        return self._store.load_dataset()

    # -- local changes ------------------------------------------------------

    def record_local_change(self, mutation: Mutation) -> SyncState:
        """Apply *mutation* locally right away and queue it for the bin.

        Raises :class:`LocalStoreError` only if the local store itself is
        broken; remote problems never surface here.
        """
        change = self._store.apply(mutation)
        self._pending = self._store.pending_count()
        log.info("local_change_recorded", action=change.action, change_id=change.id, pending=self._pending)

        if self._closed or not self._config.sync.auto_sync:
            self._publish()
            return self.get_status()

        # A fresh change restarts the retry cycle.
        self._halted = False
        self._attempt = 0
        self._cancel_retry()

        if self._status != SyncStatus.OFFLINE:
            self._status = SyncStatus.SYNCING
        if self._online:
            self._schedule_attempt(self._config.sync.debounce_ms, trigger="change")

        self._publish()
        return self.get_status()

    # -- sync ---------------------------------------------------------------

    async def attempt_sync(self, *, force: bool = False, trigger: str = "auto") -> bool:
        """Push the whole local dataset to the bin.

        Returns True when the bin reflects the local data afterwards (including
        the no-op case of nothing pending).  A call made while another attempt
        is in flight is queued behind it rather than run concurrently.
        """
        if self._closed:
            return False
        if self._lock.locked():
            self._resync_requested = True
            log.debug("sync_queued_behind_in_flight", trigger=trigger)
            return False

        async with self._lock:
            result = await self._do_attempt(force=force, trigger=trigger)

        if self._resync_requested:
            self._resync_requested = False
            self._schedule_follow_up()
        return result

    async def sync_now(self) -> bool:
        """Manual trigger: clears exhaustion and pushes even with nothing pending."""
        self._halted = False
        self._attempt = 0
        self._cancel_retry()
        return await self.attempt_sync(force=True, trigger="manual")

    def schedule_retry(self, attempt_number: int) -> RetryAttempt | None:
        """Schedule retry number *attempt_number*, or give up if the bound is passed."""
        self._cancel_retry()

        if self._policy.is_exhausted(attempt_number):
            self._halted = True
            self._status = SyncStatus.ERROR
            log.error(
                "retries_exhausted",
                attempts=attempt_number - 1,
                max_attempts=self._policy.max_attempts,
                pending=self._pending,
            )
            self._publish()
            return None

        delay = self._policy.backoff_ms(attempt_number, rng=self._rng)
        self._retry = RetryAttempt(
            attempt_number=attempt_number,
            scheduled_at=self._now() + timedelta(milliseconds=delay),
            backoff_ms=delay,
        )
        self._retry_task = self._timers.schedule(delay, self._run_retry, name=f"retry-{attempt_number}")
        log.info("retry_scheduled", attempt=attempt_number, backoff_ms=delay)
        self._publish()
        return self._retry

    def schedule_pending_sync(self, trigger: str = "sweep") -> bool:
        """Queue an attempt if changes are waiting and nothing else will push them."""
        if (
            self._closed
            or self._halted
            or not self._online
            or not self._config.sync.auto_sync
            or self._pending == 0
            or self._retry_task is not None
            or self._sync_task is not None
            or self._lock.locked()
        ):
            return False
        self._schedule_attempt(0, trigger=trigger)
        return True

    # -- connectivity -------------------------------------------------------

    def set_connectivity(self, online: bool) -> None:
        """React to the network going away or coming back."""
        was_online = self._online
        if online != was_online:
            log.info("connectivity_changed", online=online)
        self._online = online

        if not online:
            self._cancel_retry()
            self._cancel_scheduled_attempt()
            self._status = SyncStatus.OFFLINE
            self._publish()
            return

        # Offline can also be inferred from a network error while the
        # connectivity flag stayed up.
        if was_online and self._status != SyncStatus.OFFLINE:
            return

        if self._pending > 0 and not self._halted:
            self._attempt = 0
            self._cancel_retry()
            self._status = SyncStatus.SYNCING
            self._schedule_attempt(self._config.sync.reconnect_delay_ms, trigger="reconnect")
        else:
            self._status = SyncStatus.ERROR if self._halted else SyncStatus.IDLE
        self._publish()

    async def check_connectivity(self) -> bool:
        """Probe the remote host and feed the result into :meth:`set_connectivity`."""
        async with self._create_client() as client:
            online = await client.ping()
        self.set_connectivity(online)
        return online

    # -- remote → local -----------------------------------------------------

    async def restore_from_remote(self, *, force: bool = False) -> bool:
        """Overwrite local sections with the bin's non-empty ones.

        Skipped while local changes are pending unless *force* is set.  A
        remote document that fails validation raises
        :class:`MalformedDataError` and leaves the local store untouched.
        """
        async with self._lock:
            if self._pending > 0 and not force:
                log.info("restore_skipped", pending=self._pending)
                return False

            async with self._create_client() as client:
                raw = await client.read_bin()

            try:
                remote = FitnessDataset.model_validate(raw)
            except ValidationError as exc:
                raise MalformedDataError(f"Remote document is malformed: {exc.error_count()} error(s)") from exc

            local = self._store.load_dataset()
            updates = {name: getattr(remote, name) for name in _SECTIONS if getattr(remote, name)}
            self._store.save_dataset(local.model_copy(update=updates))
            log.info("restored_from_remote", sections=sorted(updates))
            return True

    # -- lifecycle ----------------------------------------------------------

    def close(self) -> None:
        self._closed = True
        self._cancel_retry()
        self._cancel_scheduled_attempt()
        log.info("sync_engine_closed", pending=self._pending)

    # -- internals ----------------------------------------------------------

    async def _do_attempt(self, *, force: bool, trigger: str) -> bool:
        try:
            pending = self._store.pending_count()
        except LocalStoreError as exc:
            return self._fail_local(exc)
        self._pending = pending

        if pending == 0 and not force:
            if self._status == SyncStatus.SYNCING:
                self._status = SyncStatus.IDLE
                self._publish()
            return True

        started_at = self._now()
        try:
            snapshot_id = self._store.last_pending_id()
            dataset = self._store.load_dataset()
        except LocalStoreError as exc:
            return self._fail_local(exc)

        self._status = SyncStatus.SYNCING
        self._publish()
        log.info("sync_started", trigger=trigger, pending=pending, attempt=self._attempt)

        try:
            if not self._config.is_cloud_configured():
                raise AuthenticationError("JSONBin is not configured. Run: fitsync cloud init")
            document = dataset.model_copy(update={"last_sync": started_at}).model_dump(mode="json")
            async with self._create_client() as client:
                await client.update_bin(document)
        except SyncError as exc:
            await self._handle_failure(exc, trigger=trigger, pending=pending, started_at=started_at)
            return False

        finished_at = self._now()
        try:
            self._store.clear_pending(snapshot_id)
            self._store.set_last_synced_at(finished_at)
            self._pending = self._store.pending_count()
        except LocalStoreError as exc:
            return self._fail_local(exc)

        self._last_synced_at = finished_at
        self._attempt = 0
        self._halted = False
        self._last_error = None
        self._cancel_retry()
        if not self._online:
            # Connectivity dropped while the push was in flight.
            self._status = SyncStatus.OFFLINE
        else:
            self._status = SyncStatus.SYNCING if self._pending > 0 else SyncStatus.IDLE
        log.info("sync_succeeded", trigger=trigger, pushed=pending, pending=self._pending)

        await self._record(
            SyncAttemptRecord(
                started_at=started_at,
                finished_at=finished_at,
                attempt_number=0,
                trigger=trigger,
                outcome="succeeded",
                pending_changes=pending,
            )
        )
        self._publish()

        if self._pending > 0:
            # Changes recorded while the push was in flight.
            self._schedule_follow_up()
        return True

    async def _handle_failure(
        self,
        exc: SyncError,
        *,
        trigger: str,
        pending: int,
        started_at: datetime,
    ) -> None:
        self._last_error = str(exc)
        attempt_number = self._attempt + 1

        await self._record(
            SyncAttemptRecord(
                started_at=started_at,
                finished_at=self._now(),
                attempt_number=attempt_number,
                trigger=trigger,
                outcome="failed",
                pending_changes=pending,
                error_kind=exc.kind,
                error_message=str(exc),
            )
        )

        if not exc.retriable:
            self._halted = True
            self._cancel_retry()
            self._status = SyncStatus.ERROR
            log.error("sync_failed", error_kind=exc.kind, error=str(exc), retriable=False, trigger=trigger)
            self._publish()
            return

        self._attempt = attempt_number
        if not self._online:
            # Reconnect schedules the next push; no retries while offline.
            self._status = SyncStatus.OFFLINE
            log.warning("sync_failed_offline", error_kind=exc.kind, error=str(exc), trigger=trigger)
            self._publish()
            return

        self._status = exc.status
        log.warning(
            "sync_failed",
            error_kind=exc.kind,
            error=str(exc),
            retriable=True,
            attempt=attempt_number,
            trigger=trigger,
        )
        self.schedule_retry(attempt_number)

    def _fail_local(self, exc: LocalStoreError) -> bool:
        self._halted = True
        self._last_error = str(exc)
        self._status = SyncStatus.ERROR
        log.error("local_store_failed", error=str(exc))
        self._publish()
        return False

    async def _record(self, record: SyncAttemptRecord) -> None:
        if self._history is None:
            return
        try:
            await self._history.record_attempt(record)
        except Exception:
            log.exception("history_write_failed", outcome=record.outcome)

    def _schedule_attempt(self, delay_ms: int, *, trigger: str) -> None:
        if self._sync_task is not None and not self._sync_task.cancelled:
            return

        async def _run() -> None:
            self._sync_task = None
            await self.attempt_sync(trigger=trigger)

        self._sync_task = self._timers.schedule(delay_ms, _run, name=f"sync-{trigger}")

    def _schedule_follow_up(self) -> None:
        if self._closed or self._halted or not self._online or self._retry_task is not None:
            return
        if self._store.pending_count() > 0:
            self._schedule_attempt(0, trigger="resync")

    async def _run_retry(self) -> None:
        self._retry_task = None
        self._retry = None
        await self.attempt_sync(trigger="retry")

    def _cancel_retry(self) -> None:
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None
        self._retry = None

    def _cancel_scheduled_attempt(self) -> None:
        if self._sync_task is not None:
            self._sync_task.cancel()
            self._sync_task = None

    def _create_client(self) -> JsonBinClient:
        if self._client_factory:
            return self._client_factory(self._config.jsonbin)
        from fitsync.sync.jsonbin import JsonBinClient

        return JsonBinClient(self._config.jsonbin)

    def _publish(self) -> None:
        self.broadcaster.notify(self.get_status())
