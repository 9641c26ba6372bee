"""
Tagged outcome envelope for bounded-retry calls.

A bounded retry can end three ways: the work ran and produced a value, the
attempt budget ran out before the work could start, or the work itself
failed. ``Outcome`` makes all three explicit values so that exhaustion is
inspectable without matching on exception types.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                     Outcome[T]                            │
        ├────────────────┬──────────────────┬──────────────────────┤
        │     Ok[T]      │    Exhausted     │      Err[T]          │
        │  value: T      │  attempts: int   │  error: Exception    │
        │                │  max_attempts    │                      │
        └────────────────┴──────────────────┴──────────────────────┘

Examples:
    >>> outcome = Ok(42)
    >>> outcome.unwrap()
    42
    >>> Exhausted(attempts=3, max_attempts=3).unwrap_or(0)
    0
    >>> match Err(ValueError("boom")):
    ...     case Ok(value):
    ...         print(value)
    ...     case Exhausted():
    ...         print("backing off")
    ...     case Err(error):
    ...         print(f"failed: {error}")
    failed: boom

Guardrails:
    ❌ DON'T: Call unwrap() on an outcome you have not inspected
    ✅ DO: Use pattern matching or unwrap_or()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from retryguard.core.errors import RetryExhausted


T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def is_exhausted(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Outcome[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def to_dict(self) -> dict[str, Any]:
        return {"outcome": "ok", "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Exhausted:
    """
    The attempt budget ran out before the work could run.

    Nothing was acquired, so nothing was released.
    """

    attempts: int
    max_attempts: int

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return False

    def is_exhausted(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raise the equivalent ``RetryExhausted``."""
        raise RetryExhausted(attempts=self.attempts, max_attempts=self.max_attempts)

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[Any], U]) -> Outcome[U]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": "exhausted",
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
        }


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed outcome containing the error raised by the work or its disposal."""

    error: BaseException

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def is_exhausted(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Raise the contained error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Outcome[U]:
        return self  # type: ignore[return-value]

    def to_dict(self) -> dict[str, Any]:
        error_dict = (
            self.error.to_dict()
            if hasattr(self.error, "to_dict")
            else {"error_type": type(self.error).__name__, "message": str(self.error)}
        )
        return {"outcome": "err", "error": error_dict}

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Outcome = Union[Ok[T], Exhausted, Err[T]]


__all__ = ["Ok", "Err", "Exhausted", "Outcome"]
