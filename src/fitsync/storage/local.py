"""Synchronous on-device key-value store for the dataset and pending-change queue.

Writes never wait on the network: the sync engine calls into this store
from the event loop and expects every call to complete immediately.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from fitsync.storage.models import FitnessDataset, Mutation, PendingChange

log = structlog.get_logger(__name__)

DATASET_KEY = "dataset"
LAST_SYNCED_KEY = "last_synced_at"

_LARGE_QUEUE_WARNING = 100

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pending_change (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    action TEXT NOT NULL,
    mutation TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


class LocalStoreError(Exception):
    """Raised when the local store is unreadable or corrupt."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LocalStore:
    """SQLite-backed key-value store that outlives a single session."""

    def __init__(self, path: Path | str) -> None:
        self.path = path
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            msg = "Local store not open. Call open() first."
            raise RuntimeError(msg)
        return self._conn

    def open(self) -> None:
        try:
            # Only the event loop touches the store, but that loop may live
            # in a worker thread (TestClient, the API server).
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Cannot open local store at {self.path}: {exc}") from exc

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> LocalStore:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- key/value --------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        try:
            row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to read {key!r}: {exc}") from exc
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as exc:
            raise LocalStoreError(f"Corrupt value stored under {key!r}") from exc

    def set(self, key: str, value: Any) -> None:
        try:
            with self.conn:
                self._put(key, value)
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to write {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            with self.conn:
                self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to delete {key!r}: {exc}") from exc

    def _put(self, key: str, value: Any) -> None:
        self.conn.execute(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), _now_iso()),
        )

    # -- dataset ----------------------------------------------------------

    def load_dataset(self) -> FitnessDataset:
        raw = self.get(DATASET_KEY)
        if raw is None:
            return FitnessDataset()
        try:
            return FitnessDataset.model_validate(raw)
        except ValidationError as exc:
            raise LocalStoreError("Stored dataset does not match the expected schema") from exc

    def save_dataset(self, dataset: FitnessDataset) -> None:
        self.set(DATASET_KEY, dataset.model_dump(mode="json"))

    def apply(self, mutation: Mutation) -> PendingChange:
        """Apply *mutation* to the dataset and queue it, in one transaction."""
        dataset = mutation.apply(self.load_dataset())
        created_at = _now_iso()
        try:
            with self.conn:
                self._put(DATASET_KEY, dataset.model_dump(mode="json"))
                cur = self.conn.execute(
                    "INSERT INTO pending_change (action, mutation, created_at) VALUES (?, ?, ?)",
                    (mutation.action, mutation.model_dump_json(), created_at),
                )
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to record change: {exc}") from exc

        count = self.pending_count()
        if count > _LARGE_QUEUE_WARNING:
            log.warning("large_pending_queue", pending=count)

        return PendingChange(
            id=cur.lastrowid,
            action=mutation.action,
            mutation=mutation,
            created_at=datetime.fromisoformat(created_at),
        )

    # -- pending queue ----------------------------------------------------

    def pending_count(self) -> int:
        try:
            row = self.conn.execute("SELECT COUNT(*) AS cnt FROM pending_change").fetchone()
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to count pending changes: {exc}") from exc
        return row["cnt"]

    def last_pending_id(self) -> int:
        """Return the id of the newest pending change, or 0 if the queue is empty."""
        try:
            row = self.conn.execute("SELECT MAX(id) AS max_id FROM pending_change").fetchone()
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to read pending queue: {exc}") from exc
        return row["max_id"] or 0

    def pending_changes(self, *, limit: int = 100) -> list[PendingChange]:
        try:
            rows = self.conn.execute(
                "SELECT * FROM pending_change ORDER BY id LIMIT ?",
                (limit,),
            ).fetchall()
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to read pending queue: {exc}") from exc
        return [
            PendingChange(
                id=row["id"],
                action=row["action"],
                mutation=Mutation.model_validate_json(row["mutation"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def clear_pending(self, up_to_id: int) -> int:
        """Drop pending changes with ``id <= up_to_id``; return how many were removed."""
        try:
            with self.conn:
                cur = self.conn.execute("DELETE FROM pending_change WHERE id <= ?", (up_to_id,))
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to clear pending changes: {exc}") from exc
        return cur.rowcount

    def reset(self) -> int:
        """Drop the dataset, the pending queue and sync bookkeeping.

        Returns the number of unsynced changes that were discarded.
        """
        try:
            with self.conn:
                cur = self.conn.execute("DELETE FROM pending_change")
                self.conn.execute("DELETE FROM kv WHERE key IN (?, ?)", (DATASET_KEY, LAST_SYNCED_KEY))
        except sqlite3.DatabaseError as exc:
            raise LocalStoreError(f"Failed to reset local store: {exc}") from exc
        log.info("local_store_reset", dropped_changes=cur.rowcount)
        return cur.rowcount

    # -- sync bookkeeping -------------------------------------------------

    def get_last_synced_at(self) -> datetime | None:
        raw = self.get(LAST_SYNCED_KEY)
        return datetime.fromisoformat(raw) if raw else None

    def set_last_synced_at(self, when: datetime) -> None:
        self.set(LAST_SYNCED_KEY, when.isoformat())
