"""retryguard.core -- shared primitives with no knowledge of locks or brokers.

Architecture::

    errors.py      RetryGuardError hierarchy (RetryExhausted, DisposalFailure, ...)
    result.py      Outcome envelope (Ok / Exhausted / Err)
    protocols.py   MutexHandle, MessageMetadata, RedeliveryPublisher, DeliveryChannel
    settings.py    RetryGuardSettings (pydantic-settings, RETRYGUARD_ prefix)
    logging.py     structlog configuration and LogContext
"""

from retryguard.core.errors import (
    ConfigError,
    DisposalFailure,
    ErrorCategory,
    ErrorContext,
    InterruptedDuringAcquire,
    OperationFailure,
    PolicyValidationError,
    RedeliveryPublishFailure,
    RetryExhausted,
    RetryGuardError,
)
from retryguard.core.logging import LogContext, configure_logging, get_logger
from retryguard.core.protocols import (
    DeliveryChannel,
    MessageMetadata,
    MutexHandle,
    RedeliveryPublisher,
)
from retryguard.core.result import Err, Exhausted, Ok, Outcome
from retryguard.core.settings import RetryGuardSettings, get_settings

__all__ = [
    "ConfigError",
    "DeliveryChannel",
    "DisposalFailure",
    "Err",
    "ErrorCategory",
    "ErrorContext",
    "Exhausted",
    "InterruptedDuringAcquire",
    "LogContext",
    "MessageMetadata",
    "MutexHandle",
    "Ok",
    "OperationFailure",
    "Outcome",
    "PolicyValidationError",
    "RedeliveryPublishFailure",
    "RedeliveryPublisher",
    "RetryExhausted",
    "RetryGuardError",
    "RetryGuardSettings",
    "configure_logging",
    "get_logger",
    "get_settings",
]
