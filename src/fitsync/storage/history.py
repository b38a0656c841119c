"""Async SQLite log of sync attempts."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from fitsync.storage.models import SyncAttemptRecord

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS sync_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    attempt_number INTEGER NOT NULL DEFAULT 0,
    reason TEXT NOT NULL,
    outcome TEXT NOT NULL CHECK(outcome IN ('succeeded', 'failed')),
    pending_changes INTEGER NOT NULL DEFAULT 0,
    error_kind TEXT,
    error_message TEXT
);
"""


class SyncHistory:
    """Append-only record of sync attempts, used by ``fitsync history`` and the status API."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn: aiosqlite.Connection | None = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "History not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._conn

    async def connect(self) -> None:
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def record_attempt(self, record: SyncAttemptRecord) -> SyncAttemptRecord:
        cur = await self.conn.execute(
            """
            INSERT INTO sync_attempts (
                started_at, finished_at, attempt_number, reason, outcome,
                pending_changes, error_kind, error_message
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                record.started_at.isoformat(),
                record.finished_at.isoformat() if record.finished_at else None,
                record.attempt_number,
                record.trigger,
                record.outcome,
                record.pending_changes,
                record.error_kind,
                record.error_message,
            ),
        )
        row = await cur.fetchone()
        await self.conn.commit()
        return self._row_to_record(row)

    async def list_attempts(self, *, limit: int = 20, offset: int = 0) -> list[SyncAttemptRecord]:
        cur = await self.conn.execute(
            "SELECT * FROM sync_attempts ORDER BY id DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        rows = await cur.fetchall()
        return [self._row_to_record(r) for r in rows]

    async def count_attempts(self, outcome: str | None = None) -> int:
        if outcome is None:
            cur = await self.conn.execute("SELECT COUNT(*) FROM sync_attempts")
        else:
            cur = await self.conn.execute("SELECT COUNT(*) FROM sync_attempts WHERE outcome = ?", (outcome,))
        row = await cur.fetchone()
        return row[0]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> SyncAttemptRecord:
        return SyncAttemptRecord(
            id=row["id"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            attempt_number=row["attempt_number"],
            trigger=row["reason"],
            outcome=row["outcome"],
            pending_changes=row["pending_changes"],
            error_kind=row["error_kind"],
            error_message=row["error_message"],
        )
