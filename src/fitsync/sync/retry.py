"""Exponential backoff policy for failed sync attempts."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fitsync.config import SyncConfig


@dataclass(frozen=True)
class RetryAttempt:
    """A retry that has been scheduled but not yet run."""

    attempt_number: int
    scheduled_at: datetime
    backoff_ms: int

    def to_dict(self) -> dict:
        return {
            "attempt_number": self.attempt_number,
            "scheduled_at": self.scheduled_at.isoformat(),
            "backoff_ms": self.backoff_ms,
        }


@dataclass(frozen=True)
class RetryPolicy:
    """``delay(n) = min(base * 2**(n - 1), ceiling)``, plus optional jitter.

    Without jitter the delay is monotonically non-decreasing in *n*.  With
    jitter a random extra of up to ``jitter_ratio * delay`` is added, still
    capped at the ceiling.
    """

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    max_attempts: int = 3
    jitter_ratio: float = 0.0

    @classmethod
    def from_config(cls, config: SyncConfig) -> RetryPolicy:
        return cls(
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
            max_attempts=config.max_attempts,
            jitter_ratio=config.jitter_ratio,
        )

    def is_exhausted(self, attempt_number: int) -> bool:
        return attempt_number > self.max_attempts

    def backoff_ms(self, attempt_number: int, *, rng: random.Random | None = None) -> int:
        if attempt_number < 1:
            msg = f"attempt_number must be >= 1, got {attempt_number}"
            raise ValueError(msg)
        # Past ~2**40 the cap always wins; avoid building huge ints.
        exponent = min(attempt_number - 1, 40)
        delay = min(self.base_delay_ms * 2**exponent, self.max_delay_ms)
        if self.jitter_ratio > 0:
            extra = (rng or random).uniform(0, delay * self.jitter_ratio)
            delay = min(int(delay + extra), self.max_delay_ms)
        return int(delay)
