"""Sync module — engine, scheduler, timer queue, and the JSONBin client."""

from fitsync.sync.engine import SyncEngine
from fitsync.sync.scheduler import SyncScheduler
from fitsync.sync.status import StatusBroadcaster, SyncState, SyncStatus
from fitsync.sync.timers import TimerQueue

__all__ = [
    "StatusBroadcaster",
    "SyncEngine",
    "SyncScheduler",
    "SyncState",
    "SyncStatus",
    "TimerQueue",
]
