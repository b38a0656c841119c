"""Pydantic models for the fitsync storage layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

DATASET_VERSION = "1.1.0-jsonbin"

SectionName = Literal["profile", "daily_logs", "streaks", "custom_rewards", "achievements", "settings"]
MutationOp = Literal["set", "delete", "append"]
AttemptOutcome = Literal["succeeded", "failed"]

MAPPING_SECTIONS: frozenset[str] = frozenset({"profile", "daily_logs", "streaks", "settings"})
LIST_SECTIONS: frozenset[str] = frozenset({"custom_rewards", "achievements"})


class FitnessDataset(BaseModel):
    """The whole user dataset; stored locally and pushed to the bin as one document."""

    model_config = ConfigDict(extra="ignore")

    profile: dict[str, Any] = Field(default_factory=dict)
    daily_logs: dict[str, dict[str, Any]] = Field(default_factory=dict)
    streaks: dict[str, Any] = Field(default_factory=dict)
    custom_rewards: list[Any] = Field(default_factory=list)
    achievements: list[Any] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)
    last_sync: datetime | None = None
    version: str = DATASET_VERSION

    def is_empty(self) -> bool:
        return not any(
            (self.profile, self.daily_logs, self.streaks, self.custom_rewards, self.achievements, self.settings)
        )


class Mutation(BaseModel):
    """A single local edit to one section of the dataset."""

    op: MutationOp = "set"
    section: SectionName
    key: str | None = None
    value: Any = None

    @model_validator(mode="after")
    def _check_shape(self) -> Mutation:
        if self.op == "append":
            if self.section not in LIST_SECTIONS:
                msg = f"append is only valid for list sections, not {self.section!r}"
                raise ValueError(msg)
            if self.key is not None:
                msg = "append does not take a key"
                raise ValueError(msg)
        elif self.op == "set":
            if self.key is None and self.section in MAPPING_SECTIONS and not isinstance(self.value, dict):
                msg = f"replacing section {self.section!r} requires an object value"
                raise ValueError(msg)
            if self.key is None and self.section in LIST_SECTIONS and not isinstance(self.value, list):
                msg = f"replacing section {self.section!r} requires a list value"
                raise ValueError(msg)
            if self.key is not None and self.section in LIST_SECTIONS:
                msg = f"keyed set is not valid for list section {self.section!r}"
                raise ValueError(msg)
            if self.section == "daily_logs":
                entries = [self.value] if self.key is not None else list(self.value.values())
                if not all(isinstance(entry, dict) for entry in entries):
                    msg = "daily log entries must be objects"
                    raise ValueError(msg)
        elif self.op == "delete" and self.key is not None and self.section in LIST_SECTIONS:
            msg = f"keyed delete is not valid for list section {self.section!r}"
            raise ValueError(msg)
        return self

    @property
    def action(self) -> str:
        """Short label used in the pending queue, e.g. ``set:daily_logs``."""
        return f"{self.op}:{self.section}"

    def apply(self, dataset: FitnessDataset) -> FitnessDataset:
        """Return a copy of *dataset* with this mutation applied."""
        data = dataset.model_dump(mode="python")
        section = data[self.section]

        if self.op == "append":
            section.append(self.value)
        elif self.op == "delete":
            if self.key is None:
                section.clear()
            else:
                section.pop(self.key, None)
        elif self.key is None:
            data[self.section] = self.value
        else:
            section[self.key] = self.value

        return FitnessDataset.model_validate(data)


class PendingChange(BaseModel):
    """A recorded mutation not yet covered by a successful sync."""

    id: int
    action: str
    mutation: Mutation
    created_at: datetime


class SyncAttemptRecord(BaseModel):
    """Record of a single sync attempt."""

    id: int | None = None
    started_at: datetime
    finished_at: datetime | None = None
    attempt_number: int = 0
    trigger: str = "auto"
    outcome: AttemptOutcome
    pending_changes: int = 0
    error_kind: str | None = None
    error_message: str | None = None
