"""Tests for the exponential backoff policy."""

from __future__ import annotations

import random
from datetime import UTC, datetime

import pytest

from fitsync.config import SyncConfig
from fitsync.sync.retry import RetryAttempt, RetryPolicy


def test_default_schedule_doubles():
    policy = RetryPolicy()
    assert [policy.backoff_ms(n) for n in (1, 2, 3)] == [1000, 2000, 4000]


def test_delay_capped_at_ceiling():
    policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=5000)
    assert policy.backoff_ms(3) == 4000
    assert policy.backoff_ms(4) == 5000
    assert policy.backoff_ms(10) == 5000


def test_huge_attempt_number_stays_capped():
    assert RetryPolicy().backoff_ms(10_000) == 30000


def test_monotonic_without_jitter():
    policy = RetryPolicy(base_delay_ms=300, max_delay_ms=20000)
    delays = [policy.backoff_ms(n) for n in range(1, 20)]
    assert delays == sorted(delays)
    assert max(delays) == 20000


def test_attempt_number_below_one_rejected():
    with pytest.raises(ValueError, match=">= 1"):
        RetryPolicy().backoff_ms(0)


def test_jitter_bounded():
    policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=30000, jitter_ratio=0.5)
    rng = random.Random(42)
    for n in (1, 2, 3):
        base = 1000 * 2 ** (n - 1)
        delay = policy.backoff_ms(n, rng=rng)
        assert base <= delay <= base * 1.5


def test_jitter_never_exceeds_ceiling():
    policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=4000, jitter_ratio=1.0)
    rng = random.Random(7)
    assert all(policy.backoff_ms(3, rng=rng) <= 4000 for _ in range(50))


def test_is_exhausted():
    policy = RetryPolicy(max_attempts=3)
    assert not policy.is_exhausted(3)
    assert policy.is_exhausted(4)
    assert RetryPolicy(max_attempts=0).is_exhausted(1)


def test_from_config():
    policy = RetryPolicy.from_config(SyncConfig(base_delay_ms=250, max_delay_ms=900, max_attempts=6, jitter_ratio=0.1))
    assert policy == RetryPolicy(base_delay_ms=250, max_delay_ms=900, max_attempts=6, jitter_ratio=0.1)


def test_retry_attempt_to_dict():
    when = datetime(2026, 10, 1, 9, 0, 2, tzinfo=UTC)
    assert RetryAttempt(attempt_number=2, scheduled_at=when, backoff_ms=2000).to_dict() == {
        "attempt_number": 2,
        "scheduled_at": "2026-10-01T09:00:02+00:00",
        "backoff_ms": 2000,
    }
