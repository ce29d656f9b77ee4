"""Exponential backoff with jitter for transient failures.

Only transport failures and busy responses are retried by this policy; token
and session failures have their own single-shot recovery in the pipeline.
"""

import random
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .config import RetryConfig


@dataclass
class RetryPolicy:
    """Bounded retry schedule.

    Delays grow exponentially from ``base_delay`` up to ``max_delay``. Jitter
    scales each step by a factor in [0.75, 1.25] but a step is never shorter
    than the one before it, so the schedule stays non-decreasing. The sum of
    all delays plus time spent in attempts never exceeds ``deadline``.
    """
    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 5.0
    multiplier: float = 2.0
    jitter: bool = True
    deadline: float = 15.0
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            multiplier=config.multiplier,
            jitter=config.jitter,
            deadline=config.deadline,
        )

    def next_delay(self, attempt: int, previous: float = 0.0) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay = min(delay * self.rng.uniform(0.75, 1.25), self.max_delay)
        return max(delay, previous)

    def delays(self) -> Iterator[float]:
        """Full schedule of delays between attempts, ignoring the deadline."""
        previous = 0.0
        for attempt in range(1, self.max_attempts):
            previous = self.next_delay(attempt, previous)
            yield previous

    def should_retry(self, attempt: int, delay: float, elapsed: float) -> bool:
        """Whether another attempt fits into the attempt and time budgets."""
        if attempt >= self.max_attempts:
            return False
        return elapsed + delay < self.deadline

    def remaining(self, elapsed: float) -> Optional[float]:
        """Time left in the budget, or None once it is spent."""
        left = self.deadline - elapsed
        return left if left > 0 else None
