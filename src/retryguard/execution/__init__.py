"""retryguard.execution -- bounded attempts against a shared lock.

WHY
───
"Try the lock a few times, a little apart, then give up" is easy to get
subtly wrong: the last attempt leaks ownership, the release is skipped on an
exception, or the caller blocks forever. This package keeps the attempt
budget in one value (RetryPolicy), the bounded wait in one helper
(run_bounded), and the acquire/run/release sequence in one coordinator.

ARCHITECTURE
────────────
::

    RetryPolicy (max_attempts, per_attempt_timeout, inter_attempt_delay)
      │
      ▼
    LockCoordinator
      ├── run_exclusive           ─ bounded retry → RetryExhausted
      ├── run_exclusive_blocking  ─ interruptible wait
      ├── try_run_exclusive       ─ Ok | Exhausted | Err
      └── submit_exclusive        ─ held until background work finishes
      │
      ▼
    run_bounded / BoundedExecutor ─ wait on a worker with a deadline

MODULE MAP
──────────
  1. policy.py    ─ RetryPolicy, BackoffStrategy, FixedInterval
  2. timeout.py   ─ run_bounded, execute, BoundedExecutor, NO_RESULT
  3. locks.py     ─ LockCoordinator, ThreadingLockHandle, exclusive
"""

from retryguard.execution.locks import (
    LockAttemptState,
    LockCoordinator,
    ThreadingLockHandle,
    exclusive,
    run_exclusive,
    run_exclusive_blocking,
    submit_exclusive,
    try_run_exclusive,
)
from retryguard.execution.policy import (
    DEFAULT_POLICY,
    BackoffStrategy,
    FixedInterval,
    RetryPolicy,
)
from retryguard.execution.timeout import NO_RESULT, BoundedExecutor, execute, run_bounded

__all__ = [
    "DEFAULT_POLICY",
    "NO_RESULT",
    "BackoffStrategy",
    "BoundedExecutor",
    "FixedInterval",
    "LockAttemptState",
    "LockCoordinator",
    "RetryPolicy",
    "ThreadingLockHandle",
    "exclusive",
    "execute",
    "run_bounded",
    "run_exclusive",
    "run_exclusive_blocking",
    "submit_exclusive",
    "try_run_exclusive",
]
