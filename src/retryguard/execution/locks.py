"""Lock coordination — bounded-retry acquisition with guaranteed release.

WHY
───
Code that must run under a shared lock usually wants "try for a little
while, then give up" rather than "block forever". LockCoordinator turns a
caller-supplied mutex handle plus a RetryPolicy into exactly that, and makes
sure that whatever the protected operation does, a lock that was acquired is
released exactly once and a lock that was never acquired is never released.

ARCHITECTURE
────────────
::

    LockCoordinator(policy)
      ├── .run_exclusive(lock, op)          ─ bounded retry, RetryExhausted on budget
      ├── .run_exclusive_blocking(lock, op) ─ wait (interruptibly) until granted
      ├── .try_run_exclusive(lock, op)      ─ Ok | Exhausted | Err, never raises
      └── .submit_exclusive(lock, op, cb)   ─ acquire here, run in background,
                                              release, then call back

    Acquisition (run_exclusive):
      1. try_acquire()                      ─ non-blocking fast path
      2. try_acquire(per_attempt_timeout)   ─ attempt 1
      3. scheduler.submit(delay → try_acquire(per_attempt_timeout))
                                            ─ attempts 2..max_attempts, one at a
                                              time on a per-call worker thread
      4. RetryExhausted(attempts=max_attempts)

    ThreadingLockHandle ─ MutexHandle adapter for threading.Lock / Semaphore

BEST PRACTICES
──────────────
- Scheduled attempts acquire on a worker thread and the caller releases, so
  the handle must not be owner-bound (``threading.RLock`` is rejected).
- Pass ``cancel=threading.Event()`` when the caller may be shut down while
  waiting; setting it raises ``InterruptedDuringAcquire`` and releases nothing.
- Errors raised by the operation propagate unchanged, after release.

Example::

    lock = threading.Lock()
    policy = RetryPolicy(max_attempts=3, per_attempt_timeout=0.05, inter_attempt_delay=0.2)
    try:
        total = run_exclusive(lock, lambda: ledger.apply(batch), policy)
    except RetryExhausted:
        reschedule(batch)
"""

from __future__ import annotations

import concurrent.futures
import functools
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from retryguard.core.errors import (
    DisposalFailure,
    InterruptedDuringAcquire,
    OperationFailure,
    RetryExhausted,
)
from retryguard.core.logging import get_logger
from retryguard.core.protocols import MutexHandle
from retryguard.core.result import Err, Exhausted, Ok, Outcome
from retryguard.core.settings import get_settings
from retryguard.execution.policy import RetryPolicy
from retryguard.execution.timeout import NO_RESULT, BoundedExecutor, wait_bounded

T = TypeVar("T")

logger = get_logger(__name__)

_RLOCK_TYPE = type(threading.RLock())
_CANCELLED = object()


@dataclass
class LockAttemptState:
    """Per-invocation acquisition state. Never shared between calls."""

    attempt_count: int = 0
    acquired: bool = False
    released: bool = False


class ThreadingLockHandle:
    """MutexHandle over a stdlib ``threading.Lock``, ``Semaphore`` or ``BoundedSemaphore``.

    ``acquire_interruptibly`` polls the underlying lock so a cancel event can
    break the wait.
    """

    def __init__(self, lock: Any | None = None, *, poll_interval: float = 0.05):
        lock = threading.Lock() if lock is None else lock
        if isinstance(lock, _RLOCK_TYPE):
            raise TypeError(
                "RLock is owner-bound and cannot be released by the caller after a "
                "scheduled attempt acquired it; use threading.Lock or a Semaphore"
            )
        self._lock = lock
        self._poll_interval = poll_interval

    def try_acquire(self, timeout: float | None = None) -> bool:
        if timeout is None:
            return self._lock.acquire(blocking=False)
        return self._lock.acquire(timeout=max(0.0, timeout))

    def acquire_interruptibly(self, cancel: threading.Event | None = None) -> None:
        if cancel is None:
            self._lock.acquire()
            return
        while True:
            if cancel.is_set():
                raise InterruptedDuringAcquire("Cancelled while waiting for lock")
            if self._lock.acquire(timeout=self._poll_interval):
                return

    def release(self) -> None:
        self._lock.release()

    def __repr__(self) -> str:
        return f"ThreadingLockHandle({self._lock!r})"


def as_mutex_handle(lock: Any) -> MutexHandle:
    """Accept either a MutexHandle or a bare ``threading`` primitive."""
    if isinstance(lock, MutexHandle):
        return lock
    if callable(getattr(lock, "acquire", None)) and callable(getattr(lock, "release", None)):
        return ThreadingLockHandle(lock)
    raise TypeError(f"Expected a MutexHandle or threading lock, got {type(lock).__name__}")


class LockCoordinator:
    """Stateless, reentrant coordinator; all mutable state lives in LockAttemptState.

    Args:
        policy: Default policy for ``run_exclusive`` when none is passed;
            ``None`` reads ``RETRYGUARD_LOCK_*`` settings on every call
        grace: Extra seconds the caller waits on a scheduled attempt beyond
            its delay and timeout before counting it as failed
    """

    def __init__(self, policy: RetryPolicy | None = None, *, grace: float = 0.5):
        self._policy = policy
        self._grace = grace

    @property
    def policy(self) -> RetryPolicy:
        if self._policy is not None:
            return self._policy
        return RetryPolicy.from_settings(get_settings())

    # ── Public API ──────────────────────────────────────────────

    def run_exclusive(
        self,
        lock: Any,
        operation: Callable[[], T],
        policy: RetryPolicy | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> T:
        """Acquire per policy, run ``operation``, release.

        Raises:
            RetryExhausted: The lock was not granted within ``max_attempts``
            InterruptedDuringAcquire: ``cancel`` was set while waiting
            DisposalFailure: Release failed after a successful operation
            BaseExceptionGroup: Both the operation and the release failed
            Exception: Whatever ``operation`` raised, after release
        """
        handle = as_mutex_handle(lock)
        state = LockAttemptState()
        self._acquire(handle, policy or self.policy, state, cancel)
        return self._run_and_release(handle, operation, state)

    def run_exclusive_blocking(
        self,
        lock: Any,
        operation: Callable[[], T],
        *,
        cancel: threading.Event | None = None,
    ) -> T:
        """Wait (interruptibly) until the lock is granted, then run and release."""
        handle = as_mutex_handle(lock)
        state = LockAttemptState()
        _check_cancel(cancel, state)
        handle.acquire_interruptibly(cancel)
        state.attempt_count = 1
        state.acquired = True
        logger.debug("lock.acquired", lock=repr(handle), mode="blocking")
        return self._run_and_release(handle, operation, state)

    def try_run_exclusive(
        self,
        lock: Any,
        operation: Callable[[], T],
        policy: RetryPolicy | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> Outcome[T]:
        """Like ``run_exclusive`` but returns ``Ok | Exhausted | Err`` instead of raising."""
        handle = as_mutex_handle(lock)
        state = LockAttemptState()
        try:
            self._acquire(handle, policy or self.policy, state, cancel)
        except RetryExhausted as exc:
            return Exhausted(attempts=exc.attempts, max_attempts=exc.max_attempts)
        except InterruptedDuringAcquire as exc:
            return Err(exc)

        try:
            return Ok(self._run_and_release(handle, operation, state))
        except BaseExceptionGroup as group:
            return Err(group)
        except DisposalFailure as exc:
            return Err(exc)
        except Exception as exc:
            failure = OperationFailure(f"Protected operation failed: {exc}", cause=exc)
            failure.with_context(lock=repr(handle), attempt=state.attempt_count)
            return Err(failure)

    def submit_exclusive(
        self,
        lock: Any,
        work: Callable[[], T],
        on_result: Callable[[T], Any],
        on_error: Callable[[BaseException], Any] | None = None,
        policy: RetryPolicy | None = None,
        *,
        executor: concurrent.futures.Executor | None = None,
        cancel: threading.Event | None = None,
    ) -> concurrent.futures.Future[T]:
        """Acquire per policy, then run ``work`` in the background under the lock.

        Acquisition happens on the calling thread, so ``RetryExhausted`` and
        ``InterruptedDuringAcquire`` are raised here. The lock stays held
        until ``work`` returns or raises and is released on the worker thread
        before ``on_result`` / ``on_error`` runs. Handing the work off does
        not end the critical section.

        Returns:
            Future of the work's result (already released when it completes)
        """
        handle = as_mutex_handle(lock)
        state = LockAttemptState()
        self._acquire(handle, policy or self.policy, state, cancel)

        bounded = BoundedExecutor(executor=executor)
        try:
            future = bounded.execute(
                functools.partial(self._run_and_release, handle, work, state),
                on_result,
                on_error,
            )
        except BaseException as submit_error:
            release_error = self._release(handle, state)
            if release_error is not None:
                raise BaseExceptionGroup(
                    "Background submit failed and lock release failed",
                    [submit_error, release_error],
                ) from None
            raise

        # Cancelled before it started: the work never ran, so release here
        future.add_done_callback(functools.partial(self._release_if_cancelled, handle, state))
        return future

    # ── Acquisition ─────────────────────────────────────────────

    def _acquire(
        self,
        lock: MutexHandle,
        policy: RetryPolicy,
        state: LockAttemptState,
        cancel: threading.Event | None,
    ) -> None:
        started = time.monotonic()
        _check_cancel(cancel, state)

        state.attempt_count = 1
        if lock.try_acquire() or lock.try_acquire(timeout=policy.per_attempt_timeout):
            self._granted(lock, policy, state, started)
            return

        if policy.allows(state.attempt_count):
            scheduler = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="retryguard-lock"
            )
            try:
                while policy.allows(state.attempt_count):
                    _check_cancel(cancel, state)
                    if self._scheduled_try(scheduler, lock, policy, state, cancel):
                        self._granted(lock, policy, state, started)
                        return
            finally:
                scheduler.shutdown(wait=False)

        logger.warning(
            "lock.exhausted",
            lock=repr(lock),
            attempts=state.attempt_count,
            max_attempts=policy.max_attempts,
            elapsed=round(time.monotonic() - started, 4),
        )
        raise RetryExhausted(
            attempts=state.attempt_count, max_attempts=policy.max_attempts
        ).with_context(lock=repr(lock), attempt=state.attempt_count)

    def _scheduled_try(
        self,
        scheduler: concurrent.futures.Executor,
        lock: MutexHandle,
        policy: RetryPolicy,
        state: LockAttemptState,
        cancel: threading.Event | None,
    ) -> bool:
        """Run one delayed bounded attempt on the scheduler; True if granted."""
        state.attempt_count += 1
        delay = policy.delay_before(state.attempt_count)
        logger.debug(
            "lock.retry_scheduled",
            lock=repr(lock),
            attempt=state.attempt_count,
            max_attempts=policy.max_attempts,
            delay=delay,
        )
        future = scheduler.submit(
            _delayed_try_acquire, lock, delay, policy.per_attempt_timeout, cancel
        )
        outcome = wait_bounded(future, delay + policy.per_attempt_timeout + self._grace)

        if outcome is NO_RESULT:
            # A late grant must not leak ownership
            future.add_done_callback(functools.partial(_release_late_grant, lock))
            return False
        if outcome is _CANCELLED:
            _check_cancel(cancel, state)
        if outcome is True and cancel is not None and cancel.is_set():
            lock.release()
            logger.info("lock.released_after_cancel", lock=repr(lock), attempt=state.attempt_count)
            _check_cancel(cancel, state)
        return outcome is True

    def _granted(
        self,
        lock: MutexHandle,
        policy: RetryPolicy,
        state: LockAttemptState,
        started: float,
    ) -> None:
        state.acquired = True
        logger.debug(
            "lock.acquired",
            lock=repr(lock),
            attempt=state.attempt_count,
            max_attempts=policy.max_attempts,
            elapsed=round(time.monotonic() - started, 4),
        )

    # ── Run & release ───────────────────────────────────────────

    def _run_and_release(
        self,
        lock: MutexHandle,
        operation: Callable[[], T],
        state: LockAttemptState,
    ) -> T:
        try:
            result = operation()
        except BaseException as op_error:
            release_error = self._release(lock, state)
            if release_error is not None:
                raise BaseExceptionGroup(
                    "Protected operation failed and lock release failed",
                    [op_error, release_error],
                ) from None
            raise

        release_error = self._release(lock, state)
        if release_error is not None:
            raise release_error
        return result

    def _release_if_cancelled(
        self, lock: MutexHandle, state: LockAttemptState, future: concurrent.futures.Future
    ) -> None:
        if future.cancelled():
            self._release(lock, state)

    def _release(self, lock: MutexHandle, state: LockAttemptState) -> DisposalFailure | None:
        if not state.acquired or state.released:
            return None
        state.released = True
        try:
            lock.release()
        except Exception as exc:
            failure = DisposalFailure(
                f"Lock release failed: {exc}", action="release", cause=exc
            )
            failure.with_context(lock=repr(lock), attempt=state.attempt_count)
            logger.error("lock.disposal_failed", **failure.to_dict())
            return failure
        logger.debug("lock.released", lock=repr(lock), attempts=state.attempt_count)
        return None


def _check_cancel(cancel: threading.Event | None, state: LockAttemptState) -> None:
    if cancel is not None and cancel.is_set():
        logger.info("lock.interrupted", attempt=state.attempt_count)
        raise InterruptedDuringAcquire(
            "Cancelled while waiting for lock"
        ).with_context(attempt=state.attempt_count)


def _delayed_try_acquire(
    lock: MutexHandle,
    delay: float,
    timeout: float,
    cancel: threading.Event | None,
) -> Any:
    if cancel is not None:
        if cancel.wait(delay):
            return _CANCELLED
    elif delay > 0:
        time.sleep(delay)
    return bool(lock.try_acquire(timeout=timeout))


def _release_late_grant(lock: MutexHandle, future: concurrent.futures.Future) -> None:
    if future.cancelled() or future.exception() is not None or future.result() is not True:
        return
    try:
        lock.release()
    except Exception as exc:
        logger.error("lock.disposal_failed", lock=repr(lock), action="release", cause=repr(exc))
        return
    logger.warning("lock.late_grant_released", lock=repr(lock))


# ── Module-level helpers ────────────────────────────────────────

_default_coordinator = LockCoordinator()


def run_exclusive(
    lock: Any,
    operation: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    cancel: threading.Event | None = None,
) -> T:
    """Bounded-retry acquisition; policy defaults to the RETRYGUARD_LOCK_* settings."""
    return _default_coordinator.run_exclusive(lock, operation, policy, cancel=cancel)


def run_exclusive_blocking(
    lock: Any,
    operation: Callable[[], T],
    *,
    cancel: threading.Event | None = None,
) -> T:
    """Acquire-or-wait-forever mode."""
    return _default_coordinator.run_exclusive_blocking(lock, operation, cancel=cancel)


def try_run_exclusive(
    lock: Any,
    operation: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    cancel: threading.Event | None = None,
) -> Outcome[T]:
    return _default_coordinator.try_run_exclusive(lock, operation, policy, cancel=cancel)


def submit_exclusive(
    lock: Any,
    work: Callable[[], T],
    on_result: Callable[[T], Any],
    on_error: Callable[[BaseException], Any] | None = None,
    policy: RetryPolicy | None = None,
    *,
    executor: concurrent.futures.Executor | None = None,
) -> concurrent.futures.Future[T]:
    return _default_coordinator.submit_exclusive(
        lock, work, on_result, on_error, policy, executor=executor
    )


def exclusive(
    lock: Any,
    policy: RetryPolicy | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator factory running the wrapped function under ``run_exclusive``.

    Example:
        >>> @exclusive(ledger_lock, RetryPolicy(max_attempts=5))
        ... def post_entries(entries):
        ...     ...
    """
    handle = as_mutex_handle(lock)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return _default_coordinator.run_exclusive(
                handle, functools.partial(func, *args, **kwargs), policy
            )
        return wrapper

    return decorator


__all__ = [
    "LockAttemptState",
    "LockCoordinator",
    "ThreadingLockHandle",
    "as_mutex_handle",
    "exclusive",
    "run_exclusive",
    "run_exclusive_blocking",
    "submit_exclusive",
    "try_run_exclusive",
]
