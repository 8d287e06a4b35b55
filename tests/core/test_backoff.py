from __future__ import annotations

import pytest

from apcacli.core.backoff import (
    DISPATCH_BACKOFF,
    STREAM_BACKOFF,
    BackoffPolicy,
    backoff_delay,
    jittered,
)


def test_backoff_delay_doubles_until_cap() -> None:
    delays = [backoff_delay(attempt, base=1.0, cap=30.0) for attempt in range(7)]

    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_backoff_delay_handles_huge_and_negative_attempts() -> None:
    assert backoff_delay(10_000, base=0.5, cap=4.0) == 4.0
    assert backoff_delay(-3, base=0.5, cap=4.0) == 0.5


@pytest.mark.parametrize("sample", [0.0, 0.25, 0.999])
def test_jitter_stays_within_half_bound_and_bound(sample: float) -> None:
    value = jittered(8.0, lambda: sample)

    assert 4.0 <= value <= 8.0


def test_policy_is_pure_function_of_attempt_and_rng() -> None:
    policy = BackoffPolicy(base=1.0, cap=30.0)

    assert policy.delay(3, lambda: 0.5) == policy.delay(3, lambda: 0.5) == 6.0
    assert BackoffPolicy(base=1.0, cap=30.0, jitter=False).delay(3) == 8.0


def test_default_policies() -> None:
    assert DISPATCH_BACKOFF.base == 0.5
    assert DISPATCH_BACKOFF.cap == 4.0
    assert STREAM_BACKOFF.base == 1.0
    assert STREAM_BACKOFF.cap == 30.0
