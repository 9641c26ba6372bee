"""Retry policy: how many attempts, how long each may wait, how far apart.

``RetryPolicy`` is a passive value shared by the lock and redelivery
coordinators. Spacing between attempts defaults to a fixed interval; any
``BackoffStrategy`` can be plugged in without touching the coordinators.

Example:
    >>> from retryguard.execution.policy import RetryPolicy
    >>>
    >>> policy = RetryPolicy(max_attempts=3, per_attempt_timeout=0.05, inter_attempt_delay=0.2)
    >>> [policy.delay_before(n) for n in (2, 3)]
    [0.2, 0.2]
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from retryguard.core.errors import PolicyValidationError

if TYPE_CHECKING:
    from retryguard.core.settings import RetryGuardSettings


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_PER_ATTEMPT_TIMEOUT = 0.5
DEFAULT_INTER_ATTEMPT_DELAY = 0.2


class BackoffStrategy(ABC):
    """Spacing function between bounded attempts."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempt: Zero-based retry number (0 = wait before the second attempt)

        Returns:
            Delay in seconds
        """
        ...


@dataclass(frozen=True)
class FixedInterval(BackoffStrategy):
    """Constant delay between attempts."""

    delay: float = DEFAULT_INTER_ATTEMPT_DELAY

    def next_delay(self, attempt: int) -> float:
        return self.delay


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded-retry budget.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        per_attempt_timeout: Seconds a single bounded attempt may wait
        inter_attempt_delay: Seconds to wait after a failed attempt
        backoff: Spacing override; ``None`` means ``FixedInterval(inter_attempt_delay)``

    Raises:
        PolicyValidationError: On construction with out-of-range values
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    per_attempt_timeout: float = DEFAULT_PER_ATTEMPT_TIMEOUT
    inter_attempt_delay: float = DEFAULT_INTER_ATTEMPT_DELAY
    backoff: BackoffStrategy | None = None

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise PolicyValidationError(
                f"max_attempts must be an integer, got {self.max_attempts!r}",
                field="max_attempts",
                value=self.max_attempts,
            )
        if self.max_attempts < 1:
            raise PolicyValidationError(
                f"max_attempts must be >= 1, got {self.max_attempts}",
                field="max_attempts",
                value=self.max_attempts,
            )
        for name in ("per_attempt_timeout", "inter_attempt_delay"):
            value = getattr(self, name)
            if value < 0:
                raise PolicyValidationError(
                    f"{name} must be non-negative, got {value}",
                    field=name,
                    value=value,
                )

    @property
    def strategy(self) -> BackoffStrategy:
        return self.backoff or FixedInterval(self.inter_attempt_delay)

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (1-based; the first attempt never waits)."""
        if attempt <= 1:
            return 0.0
        return max(0.0, self.strategy.next_delay(attempt - 2))

    def allows(self, attempts_made: int) -> bool:
        """True if another attempt fits in the budget."""
        return attempts_made < self.max_attempts

    @classmethod
    def from_settings(cls, settings: RetryGuardSettings) -> RetryPolicy:
        """Build the lock-acquisition policy from environment settings."""
        return cls(
            max_attempts=settings.lock_max_attempts,
            per_attempt_timeout=settings.lock_attempt_timeout,
            inter_attempt_delay=settings.lock_retry_delay,
        )


DEFAULT_POLICY = RetryPolicy()


__all__ = [
    "BackoffStrategy",
    "FixedInterval",
    "RetryPolicy",
    "DEFAULT_POLICY",
    "DEFAULT_MAX_ATTEMPTS",
]
