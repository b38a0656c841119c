"""fitsync storage layer — local key-value store, models, and sync history."""

from fitsync.storage.history import SyncHistory
from fitsync.storage.local import LocalStore, LocalStoreError
from fitsync.storage.models import (
    FitnessDataset,
    Mutation,
    PendingChange,
    SyncAttemptRecord,
)

__all__ = [
    "FitnessDataset",
    "LocalStore",
    "LocalStoreError",
    "Mutation",
    "PendingChange",
    "SyncAttemptRecord",
    "SyncHistory",
]
