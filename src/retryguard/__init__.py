"""
retryguard - bounded-retry coordination for locks and broker redelivery.

- retryguard.core: errors, outcomes, protocols, settings, logging
- retryguard.execution: RetryPolicy, bounded waits, LockCoordinator
- retryguard.messaging: RedeliveryCoordinator and the aio_pika adapter
"""

__version__ = "0.1.0"

from retryguard.core.errors import (
    DisposalFailure,
    InterruptedDuringAcquire,
    OperationFailure,
    RedeliveryPublishFailure,
    RetryExhausted,
    RetryGuardError,
)
from retryguard.core.result import Err, Exhausted, Ok, Outcome
from retryguard.execution import (
    BoundedExecutor,
    LockCoordinator,
    RetryPolicy,
    ThreadingLockHandle,
    run_bounded,
    run_exclusive,
    run_exclusive_blocking,
    submit_exclusive,
    try_run_exclusive,
)
from retryguard.messaging import (
    AioPikaBroker,
    MessageRetrier,
    RedeliveryCoordinator,
    retry,
    simple_retry,
)

__all__ = [
    "__version__",
    "AioPikaBroker",
    "BoundedExecutor",
    "DisposalFailure",
    "Err",
    "Exhausted",
    "InterruptedDuringAcquire",
    "LockCoordinator",
    "MessageRetrier",
    "Ok",
    "OperationFailure",
    "Outcome",
    "RedeliveryCoordinator",
    "RedeliveryPublishFailure",
    "RetryExhausted",
    "RetryGuardError",
    "RetryPolicy",
    "ThreadingLockHandle",
    "retry",
    "run_bounded",
    "run_exclusive",
    "run_exclusive_blocking",
    "simple_retry",
    "submit_exclusive",
    "try_run_exclusive",
]
