"""Tests for the dataset and mutation models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from fitsync.storage.models import DATASET_VERSION, FitnessDataset, Mutation


def _dataset() -> FitnessDataset:
    return FitnessDataset(
        profile={"name": "Ana"},
        daily_logs={"2026-10-01": {"weight": 70.5}},
        custom_rewards=["new shoes"],
    )


# ---------------------------------------------------------------------------
# FitnessDataset
# ---------------------------------------------------------------------------


def test_dataset_defaults():
    ds = FitnessDataset()
    assert ds.is_empty()
    assert ds.version == DATASET_VERSION
    assert ds.last_sync is None
    assert ds.daily_logs == {}
    assert ds.achievements == []


def test_dataset_not_empty_with_any_section():
    assert not FitnessDataset(settings={"units": "metric"}).is_empty()
    assert not FitnessDataset(achievements=["first-week"]).is_empty()


def test_dataset_ignores_unknown_fields():
    ds = FitnessDataset.model_validate({"profile": {"age": 31}, "theme": "dark"})
    assert ds.profile == {"age": 31}
    assert not hasattr(ds, "theme")


def test_dataset_rejects_wrong_section_type():
    with pytest.raises(ValidationError):
        FitnessDataset.model_validate({"daily_logs": ["not", "a", "mapping"]})


# ---------------------------------------------------------------------------
# Mutation validation
# ---------------------------------------------------------------------------


def test_mutation_action_label():
    m = Mutation(section="daily_logs", key="2026-10-02", value={"steps": 9000})
    assert m.op == "set"
    assert m.action == "set:daily_logs"


@pytest.mark.parametrize(
    "payload",
    [
        {"op": "append", "section": "profile", "value": 1},
        {"op": "append", "section": "achievements", "key": "x", "value": 1},
        {"op": "set", "section": "settings", "value": "not-a-dict"},
        {"op": "set", "section": "custom_rewards", "value": {"a": 1}},
        {"op": "set", "section": "custom_rewards", "key": "0", "value": "x"},
        {"op": "set", "section": "daily_logs", "key": "2026-10-02", "value": 5},
        {"op": "set", "section": "daily_logs", "value": {"2026-10-01": 5}},
        {"op": "delete", "section": "achievements", "key": "x"},
        {"op": "rename", "section": "profile"},
        {"section": "unknown", "value": {}},
    ],
)
def test_mutation_rejects_invalid_shapes(payload):
    with pytest.raises(ValidationError):
        Mutation.model_validate(payload)


# ---------------------------------------------------------------------------
# Mutation.apply
# ---------------------------------------------------------------------------


def test_apply_keyed_set():
    result = Mutation(section="daily_logs", key="2026-10-02", value={"steps": 9000}).apply(_dataset())
    assert result.daily_logs["2026-10-02"] == {"steps": 9000}
    assert result.daily_logs["2026-10-01"] == {"weight": 70.5}


def test_apply_section_replace():
    result = Mutation(section="profile", value={"name": "Bea"}).apply(_dataset())
    assert result.profile == {"name": "Bea"}


def test_apply_append():
    result = Mutation(op="append", section="custom_rewards", value="massage").apply(_dataset())
    assert result.custom_rewards == ["new shoes", "massage"]


def test_apply_keyed_delete_missing_key_is_noop():
    result = Mutation(op="delete", section="daily_logs", key="1999-01-01").apply(_dataset())
    assert result.daily_logs == _dataset().daily_logs


def test_apply_section_clear():
    result = Mutation(op="delete", section="custom_rewards").apply(_dataset())
    assert result.custom_rewards == []


def test_apply_does_not_mutate_input():
    original = _dataset()
    Mutation(section="profile", key="name", value="Bea").apply(original)
    assert original.profile == {"name": "Ana"}
