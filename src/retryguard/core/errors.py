"""
Structured error types for retryguard.

Every failure the coordinators surface is a ``RetryGuardError`` subclass
carrying a category, a retryable flag, structured context and an optional
chained cause. Callers can tell "the lock was never acquired" apart from
"the protected operation blew up" without string matching.

Manifesto:
    - **Exhaustion is not failure:** ``RetryExhausted`` is a named condition
      distinct from an operation error so callers can back off quietly
      instead of alerting.
    - **Disposal errors are loud:** a failed release/ack/reject may leave a
      resource in an inconsistent state, so ``DisposalFailure`` is never
      folded into another error.
    - **Error chaining:** the underlying broker/lock exception is kept as
      ``cause`` and ``__cause__``.

Architecture:
    ::

        RetryGuardError(message, category, retryable, context, cause)
          ├── RetryExhausted            LOCK       retryable   attempts, max_attempts
          ├── InterruptedDuringAcquire  LOCK       retryable
          ├── OperationFailure          OPERATION
          ├── DisposalFailure           DISPOSAL               action
          ├── RedeliveryPublishFailure  MESSAGING  retryable   destination, routing_key
          └── ConfigError               CONFIG
                └── PolicyValidationError                      field, value

Examples:
    >>> err = RetryExhausted(attempts=3, max_attempts=3)
    >>> err.retryable
    True
    >>> err.to_dict()["category"]
    'LOCK'

    >>> err = DisposalFailure("ack failed", action="ack").with_context(delivery_tag=7)
    >>> err.context.delivery_tag
    7

Guardrails:
    ❌ DON'T: Catch ``RetryGuardError`` to treat exhaustion and disposal alike
    ✅ DO: Handle ``RetryExhausted`` and ``DisposalFailure`` separately

    ❌ DON'T: Swallow the original broker exception
    ✅ DO: Pass it as ``cause=``

Tags:
    error-handling, exception-hierarchy, retry, locks, messaging
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Which part of a bounded-retry call failed."""

    LOCK = "LOCK"                 # Acquisition exhausted or interrupted
    OPERATION = "OPERATION"       # The protected operation raised
    DISPOSAL = "DISPOSAL"         # release / ack / reject failed
    MESSAGING = "MESSAGING"       # Broker publish failures
    CONFIG = "CONFIG"             # Invalid policy or settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    What the coordinator knew when the error was raised.

    Attributes:
        lock: ``repr`` of the lock handle
        attempt: Attempt number at failure time
        delivery_tag: Broker delivery tag of the message being resolved
        destination: Exchange a re-publish was aimed at
        routing_key: Routing key used for the re-publish
        metadata: Anything else, flattened into ``to_dict()``
    """

    lock: str | None = None
    attempt: int | None = None
    delivery_tag: Any = None
    destination: str | None = None
    routing_key: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def known_keys(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls) if f.name != "metadata")

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, metadata merged in."""
        data = {
            name: getattr(self, name)
            for name in sorted(self.known_keys())
            if getattr(self, name) is not None
        }
        return {**data, **self.metadata}


class RetryGuardError(Exception):
    """
    Root of every error retryguard raises.

    Subclasses pick ``default_category`` and ``default_retryable``; callers
    may override either per instance.

    Examples:
        >>> RetryGuardError("unexpected state").category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = self.default_category if category is None else category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = ErrorContext() if context is None else context
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RetryGuardError:
        """
        Attach context and return ``self`` so it can be chained onto ``raise``.

        Usage:
            raise DisposalFailure("reject failed", action="reject").with_context(
                delivery_tag=tag,
            )
        """
        known = ErrorContext.known_keys()
        for key, value in kwargs.items():
            if key in known:
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Flat dict suitable for ``logger.error(event, **err.to_dict())``."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if context := self.context.to_dict():
            data["context"] = context
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# LOCK ACQUISITION
# =============================================================================


class RetryExhausted(RetryGuardError):
    """
    The lock was never acquired within the policy's attempt budget.

    Recoverable: nothing was acquired and nothing is owed. The caller decides
    whether to back off, reschedule, or fail the unit of work.
    """

    default_category = ErrorCategory.LOCK
    default_retryable = True

    def __init__(
        self,
        message: str | None = None,
        *,
        attempts: int,
        max_attempts: int,
        **kwargs: Any,
    ):
        super().__init__(
            message or f"Retry over max times [{max_attempts}], lock not acquired",
            **kwargs,
        )
        self.attempts = attempts
        self.max_attempts = max_attempts

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["attempts"] = self.attempts
        result["max_attempts"] = self.max_attempts
        return result


class InterruptedDuringAcquire(RetryGuardError):
    """The waiting caller was cancelled before the lock was granted."""

    default_category = ErrorCategory.LOCK
    default_retryable = True


# =============================================================================
# OPERATION & DISPOSAL
# =============================================================================


class OperationFailure(RetryGuardError):
    """
    The protected operation raised after the lock was acquired.

    The raising APIs re-raise the operation's own exception unchanged; this
    wrapper is what ``try_run_exclusive`` puts in its ``Err`` outcome so the
    original error stays reachable via ``cause``.
    """

    default_category = ErrorCategory.OPERATION


class DisposalFailure(RetryGuardError):
    """
    A terminal disposal action (release, ack or reject) failed.

    Always surfaced, never swallowed: the lock or delivery may now be in an
    inconsistent state.
    """

    default_category = ErrorCategory.DISPOSAL

    def __init__(self, message: str, *, action: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.action = action

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["action"] = self.action
        return result


# =============================================================================
# MESSAGING
# =============================================================================


class RedeliveryPublishFailure(RetryGuardError):
    """Re-publishing a message to the delay/dead-letter destination failed."""

    default_category = ErrorCategory.MESSAGING
    default_retryable = True

    def __init__(
        self,
        message: str,
        *,
        destination: str,
        routing_key: str,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.destination = destination
        self.routing_key = routing_key
        self.context.destination = destination
        self.context.routing_key = routing_key


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigError(RetryGuardError):
    """Invalid configuration. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class PolicyValidationError(ConfigError):
    """A RetryPolicy was constructed with out-of-range values."""

    def __init__(self, message: str, *, field: str, value: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RetryGuardError",
    "RetryExhausted",
    "InterruptedDuringAcquire",
    "OperationFailure",
    "DisposalFailure",
    "RedeliveryPublishFailure",
    "ConfigError",
    "PolicyValidationError",
]
