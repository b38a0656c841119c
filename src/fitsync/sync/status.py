"""Sync status snapshot and the observable that publishes it."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

import structlog

from fitsync.sync.retry import RetryAttempt

log = structlog.get_logger(__name__)


class SyncStatus(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    OFFLINE = "offline"
    ERROR = "error"


@dataclass(frozen=True)
class SyncState:
    """Immutable view of the engine, handed to observers and the UI."""

    status: SyncStatus = SyncStatus.IDLE
    last_synced_at: datetime | None = None
    pending_change_count: int = 0
    attempt: int = 0
    retry: RetryAttempt | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "pending_change_count": self.pending_change_count,
            "attempt": self.attempt,
            "retry": self.retry.to_dict() if self.retry else None,
            "last_error": self.last_error,
        }


Subscriber = Callable[[SyncState], None]


class StatusBroadcaster:
    """Subscribe/notify hub for :class:`SyncState` changes."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def notify(self, state: SyncState) -> None:
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                log.exception("status_subscriber_failed", subscriber=repr(callback))
