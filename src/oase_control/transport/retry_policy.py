"""Backoff policy for discovery and handoff retries."""

from __future__ import annotations

import random


class BackoffPolicy:
    """Exponential backoff with a persistent attempt counter.

    Delay for attempt n is ``initial * multiplier ** n`` capped at ``max_delay``.
    ``next_delay`` returns the delay for the current attempt and advances the
    counter; ``reset`` returns to attempt 0 after a successful discovery.
    """

    def __init__(
        self,
        initial_delay_seconds: float = 60.0,
        multiplier: float = 4.0,
        max_delay_seconds: float = 7200.0,
        jitter_factor: float = 0.0,
    ):
        """Initialize backoff policy.

        Args:
            initial_delay_seconds: Delay before the first retry (default: 60s)
            multiplier: Growth factor per failed attempt (default: 4)
            max_delay_seconds: Delay ceiling (default: 7200s)
            jitter_factor: Jitter as fraction of delay (default: 0, deterministic)
        """
        self.initial_delay_seconds = initial_delay_seconds
        self.multiplier = multiplier
        self.max_delay_seconds = max_delay_seconds
        self.jitter_factor = jitter_factor
        self.attempt = 0

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a retry attempt (0-indexed), capped at max_delay_seconds."""
        # Cap the exponent too; 4 ** 1000 overflows float
        exponent = min(attempt, 64)
        delay = min(self.initial_delay_seconds * (self.multiplier**exponent), self.max_delay_seconds)

        if self.jitter_factor:
            delay += random.uniform(0, delay * self.jitter_factor)
        return delay

    def next_delay(self) -> float:
        """Delay for the current attempt; records one more failure."""
        delay = self.get_delay(self.attempt)
        self.attempt += 1
        return delay

    def reset(self) -> None:
        self.attempt = 0

    def __repr__(self) -> str:
        return (
            f"BackoffPolicy(initial={self.initial_delay_seconds}s, "
            f"multiplier={self.multiplier}, "
            f"max_delay={self.max_delay_seconds}s, "
            f"attempt={self.attempt})"
        )
