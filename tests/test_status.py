"""Tests for SyncState, StatusBroadcaster and the error taxonomy."""

from __future__ import annotations

from datetime import UTC, datetime

from fitsync.sync.errors import (
    AuthenticationError,
    MalformedDataError,
    NetworkUnavailableError,
    RemoteServerError,
)
from fitsync.sync.retry import RetryAttempt
from fitsync.sync.status import StatusBroadcaster, SyncState, SyncStatus


def test_state_defaults_to_idle():
    state = SyncState()
    assert state.status == SyncStatus.IDLE
    assert state.to_dict() == {
        "status": "idle",
        "last_synced_at": None,
        "pending_change_count": 0,
        "attempt": 0,
        "retry": None,
        "last_error": None,
    }


def test_state_to_dict_with_retry():
    when = datetime(2026, 10, 1, tzinfo=UTC)
    state = SyncState(
        status=SyncStatus.OFFLINE,
        last_synced_at=when,
        pending_change_count=3,
        attempt=1,
        retry=RetryAttempt(attempt_number=1, scheduled_at=when, backoff_ms=1000),
        last_error="JSONBin unreachable",
    )
    data = state.to_dict()
    assert data["status"] == "offline"
    assert data["last_synced_at"] == when.isoformat()
    assert data["retry"]["backoff_ms"] == 1000


def test_subscribe_and_unsubscribe():
    hub = StatusBroadcaster()
    seen: list[SyncStatus] = []
    unsubscribe = hub.subscribe(lambda s: seen.append(s.status))
    assert hub.subscriber_count == 1

    hub.notify(SyncState(status=SyncStatus.SYNCING))
    unsubscribe()
    hub.notify(SyncState(status=SyncStatus.IDLE))

    assert seen == [SyncStatus.SYNCING]
    assert hub.subscriber_count == 0
    unsubscribe()


def test_failing_subscriber_does_not_block_others():
    hub = StatusBroadcaster()
    seen: list[str] = []

    def _bad(_state: SyncState) -> None:
        raise RuntimeError("ui crashed")

    hub.subscribe(_bad)
    hub.subscribe(lambda s: seen.append(s.status.value))
    hub.notify(SyncState(status=SyncStatus.ERROR))

    assert seen == ["error"]


def test_error_taxonomy():
    assert NetworkUnavailableError("x").retriable
    assert NetworkUnavailableError("x").status == SyncStatus.OFFLINE
    assert RemoteServerError("x", status_code=503).retriable
    assert RemoteServerError("x", status_code=503).status == SyncStatus.ERROR
    assert RemoteServerError("x", status_code=503).status_code == 503
    assert not AuthenticationError("x").retriable
    assert not MalformedDataError("x").retriable
    assert AuthenticationError("x").kind == "AuthenticationError"
