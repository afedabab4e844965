"""Unit tests for BackoffPolicy."""

from __future__ import annotations

import math

from oase_control.transport.retry_policy import BackoffPolicy


def assert_close(actual: float, expected: float, rel_tol: float = 1e-6) -> None:
    """Assert that two floats are approximately equal."""
    assert math.isclose(actual, expected, rel_tol=rel_tol)


INITIAL_DELAY = 60.0
MULTIPLIER = 4.0
MAX_DELAY = 7200.0


class TestBackoffPolicy:
    def test_sequence_until_cap(self):
        policy = BackoffPolicy(INITIAL_DELAY, MULTIPLIER, MAX_DELAY)
        delays = [policy.next_delay() for _ in range(6)]
        assert delays == [60.0, 240.0, 960.0, 3840.0, 7200.0, 7200.0]
        assert policy.attempt == 6

    def test_reset_returns_to_initial_delay(self):
        policy = BackoffPolicy(INITIAL_DELAY, MULTIPLIER, MAX_DELAY)
        for _ in range(3):
            policy.next_delay()
        policy.reset()
        assert policy.attempt == 0
        assert_close(policy.next_delay(), INITIAL_DELAY)

    def test_get_delay_does_not_advance(self):
        policy = BackoffPolicy(INITIAL_DELAY, MULTIPLIER, MAX_DELAY)
        assert_close(policy.get_delay(2), 960.0)
        assert policy.attempt == 0

    def test_large_attempt_stays_capped(self):
        policy = BackoffPolicy(INITIAL_DELAY, MULTIPLIER, MAX_DELAY)
        assert_close(policy.get_delay(10_000), MAX_DELAY)

    def test_jitter_bounds(self):
        policy = BackoffPolicy(INITIAL_DELAY, MULTIPLIER, MAX_DELAY, jitter_factor=0.1)
        for _ in range(50):
            delay = policy.get_delay(0)
            assert INITIAL_DELAY <= delay <= INITIAL_DELAY * 1.1

    def test_repr(self):
        repr_str = repr(BackoffPolicy())
        assert "BackoffPolicy" in repr_str
        assert "initial=60.0s" in repr_str
