"""Tests for the on-device LocalStore."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from fitsync.storage import FitnessDataset, LocalStore, LocalStoreError, Mutation


@pytest.fixture()
def store(tmp_path: Path):
    s = LocalStore(tmp_path / "local.db")
    s.open()
    yield s
    s.close()


def _log(day: str, **values) -> Mutation:
    return Mutation(section="daily_logs", key=day, value=values)


# ---------------------------------------------------------------------------
# Key/value
# ---------------------------------------------------------------------------


def test_get_missing_returns_default(store: LocalStore):
    assert store.get("nope") is None
    assert store.get("nope", 5) == 5


def test_set_get_delete(store: LocalStore):
    store.set("theme", {"dark": True})
    assert store.get("theme") == {"dark": True}
    store.set("theme", {"dark": False})
    assert store.get("theme") == {"dark": False}
    store.delete("theme")
    assert store.get("theme") is None


def test_not_open_raises(tmp_path: Path):
    s = LocalStore(tmp_path / "x.db")
    with pytest.raises(RuntimeError, match="not open"):
        s.get("k")


def test_values_survive_reopen(tmp_path: Path):
    path = tmp_path / "local.db"
    with LocalStore(path) as s:
        s.apply(_log("2026-10-01", steps=1000))
    with LocalStore(path) as s:
        assert s.load_dataset().daily_logs["2026-10-01"] == {"steps": 1000}
        assert s.pending_count() == 1


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------


def test_load_dataset_empty_store(store: LocalStore):
    assert store.load_dataset() == FitnessDataset()


def test_save_and_load_dataset(store: LocalStore):
    ds = FitnessDataset(profile={"name": "Ana"}, achievements=["first-log"])
    store.save_dataset(ds)
    assert store.load_dataset() == ds
    assert store.pending_count() == 0


def test_corrupt_json_raises_local_store_error(store: LocalStore):
    store.conn.execute("INSERT INTO kv (key, value, updated_at) VALUES ('dataset', '{broken', 'now')")
    store.conn.commit()
    with pytest.raises(LocalStoreError, match="Corrupt"):
        store.load_dataset()


def test_schema_mismatch_raises_local_store_error(store: LocalStore):
    store.set("dataset", {"daily_logs": "not-a-mapping"})
    with pytest.raises(LocalStoreError, match="schema"):
        store.load_dataset()


def test_unopenable_file_raises_local_store_error(tmp_path: Path):
    bogus = tmp_path / "not-a-db"
    bogus.write_bytes(b"this is definitely not sqlite" * 100)
    with pytest.raises(LocalStoreError):
        LocalStore(bogus).open()


# ---------------------------------------------------------------------------
# apply + pending queue
# ---------------------------------------------------------------------------


def test_apply_updates_dataset_and_queues(store: LocalStore):
    change = store.apply(_log("2026-10-01", weight=70.1))

    assert change.id >= 1
    assert change.action == "set:daily_logs"
    assert store.load_dataset().daily_logs == {"2026-10-01": {"weight": 70.1}}
    assert store.pending_count() == 1
    assert store.last_pending_id() == change.id


def test_pending_changes_in_order(store: LocalStore):
    store.apply(_log("2026-10-01", steps=1))
    store.apply(Mutation(op="append", section="achievements", value="streak-3"))
    changes = store.pending_changes()

    assert [c.action for c in changes] == ["set:daily_logs", "append:achievements"]
    assert changes[1].mutation.value == "streak-3"
    assert changes[0].id < changes[1].id


def test_clear_pending_up_to_snapshot(store: LocalStore):
    first = store.apply(_log("2026-10-01", steps=1))
    store.apply(_log("2026-10-02", steps=2))
    later = store.apply(_log("2026-10-03", steps=3))

    removed = store.clear_pending(later.id - 1)

    assert removed == 2
    assert store.pending_count() == 1
    assert store.pending_changes()[0].id == later.id
    assert first.id < later.id


def test_last_pending_id_empty_queue(store: LocalStore):
    assert store.last_pending_id() == 0


def test_large_queue_still_records(store: LocalStore):
    for i in range(105):
        store.apply(Mutation(op="append", section="achievements", value=f"a{i}"))
    assert store.pending_count() == 105
    assert len(store.load_dataset().achievements) == 105


# ---------------------------------------------------------------------------
# last_synced_at
# ---------------------------------------------------------------------------


def test_last_synced_at_round_trip(store: LocalStore):
    assert store.get_last_synced_at() is None
    when = datetime(2026, 10, 1, 12, 30, tzinfo=UTC)
    store.set_last_synced_at(when)
    assert store.get_last_synced_at() == when


def test_reset_drops_dataset_and_queue(store: LocalStore):
    store.apply(_log("2026-10-01", steps=100))
    store.apply(_log("2026-10-02", steps=200))
    store.set_last_synced_at(datetime(2026, 10, 1, 9, 0, tzinfo=UTC))
    store.set("theme", "dark")

    assert store.reset() == 2

    assert store.load_dataset().is_empty()
    assert store.pending_count() == 0
    assert store.get_last_synced_at() is None
    assert store.get("theme") == "dark"
