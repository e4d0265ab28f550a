"""Backoff schedules for the commit loop.

Example:
    >>> from labelsync.retry import LinearBackoff
    >>>
    >>> strategy = LinearBackoff(base_delay=0.1, increment=0.1)
    >>> [strategy.next_delay(attempt) for attempt in range(3)]
    [0.1, 0.2, 0.30000000000000004]
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass


class RetryStrategy(ABC):
    """Abstract base for backoff schedules."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before next retry attempt.

        Args:
            attempt: Zero-based retry number (0 = first retry)

        Returns:
            Delay in seconds before next attempt
        """
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) + jitter

    Attributes:
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness so colliding writers spread out
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 0.1
    max_delay: float = 2.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        delay = min(
            self.base_delay * (self.multiplier ** attempt),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0, delay)

        return delay


@dataclass
class LinearBackoff(RetryStrategy):
    """Linear backoff strategy.

    Delay = base_delay + (increment * attempt)
    """

    base_delay: float = 0.1
    increment: float = 0.1
    max_delay: float = 2.0

    def next_delay(self, attempt: int) -> float:
        """Calculate linear backoff delay."""
        return min(
            self.base_delay + (self.increment * attempt),
            self.max_delay,
        )


@dataclass
class ConstantBackoff(RetryStrategy):
    """Constant delay between retries."""

    delay: float = 0.1

    def next_delay(self, attempt: int) -> float:
        """Return constant delay."""
        return self.delay


def strategy_from_settings(settings) -> RetryStrategy:
    """Build the configured backoff schedule."""
    if settings.save_backoff_strategy == "exponential":
        return ExponentialBackoff(
            base_delay=settings.save_backoff_base_delay,
            max_delay=settings.save_backoff_max_delay,
        )
    if settings.save_backoff_strategy == "constant":
        return ConstantBackoff(delay=settings.save_backoff_base_delay)
    return LinearBackoff(
        base_delay=settings.save_backoff_base_delay,
        increment=settings.save_backoff_base_delay,
        max_delay=settings.save_backoff_max_delay,
    )
