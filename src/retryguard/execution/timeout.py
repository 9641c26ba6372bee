"""Bounded-wait execution: run work on a worker, stop waiting at a deadline.

Manifesto:
    A caller that must not hang on a slow unit of work needs a bounded wait,
    not a retry. ``run_bounded`` hands the work to a worker thread (a fresh
    one, or a caller-supplied pool) and waits at most ``deadline`` seconds.
    Past the deadline it returns the ``NO_RESULT`` sentinel instead of
    raising, so "no answer in time" is an ordinary value.

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────────┐
        │ result = run_bounded(0.5, work)                                │
        └────────────────────────────────────────────────────────────────┘
                              │
                              ▼
        ┌────────────────────────────────────────────────────────────────┐
        │   Future on a daemon thread  ─or─  executor.submit(work)        │
        │   - caller waits future.result(timeout=deadline)               │
        │   - timeout  → NO_RESULT (worker keeps running)                │
        │   - work raised → exception propagates to the caller           │
        └────────────────────────────────────────────────────────────────┘

Known limitation:
    The worker is NOT cancelled on timeout. Python cannot kill a thread, and
    a worker that is already running keeps running and may complete in the
    background after the caller stopped waiting. Callers whose work acquires
    resources must attach a done-callback to reclaim them (the lock
    coordinator does exactly this).

    New behavior: pass ``cancel_token`` (a ``threading.Event``) and it is set
    when the deadline passes, so cooperative work can check it and stop early.

Examples:
    >>> from retryguard.execution.timeout import run_bounded, NO_RESULT
    >>> run_bounded(1.0, lambda: 21 * 2)
    42
    >>> import time
    >>> run_bounded(0.01, lambda: time.sleep(0.5)) is NO_RESULT
    True

    Reusing a pool:

    >>> with BoundedExecutor(max_workers=4) as bounded:
    ...     value = bounded.run_bounded(1.0, compute)

    Fire and forget, outcome delivered to a callback:

    >>> execute(compute, on_result=store, on_error=report)

Tags:
    timeout, deadline, threads, bounded-wait
"""

from __future__ import annotations

import concurrent.futures
import functools
import threading
import time
from collections.abc import Callable
from typing import Any, Final, TypeVar

from retryguard.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class _NoResult:
    """Sentinel type for "the deadline passed before the work finished"."""

    _instance: _NoResult | None = None

    def __new__(cls) -> _NoResult:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_RESULT"


NO_RESULT: Final = _NoResult()


def spawn_future(
    func: Callable[..., T],
    *args: Any,
    name: str = "retryguard-worker",
    **kwargs: Any,
) -> concurrent.futures.Future[T]:
    """Run ``func`` on a newly spawned daemon thread and return its Future."""
    future: concurrent.futures.Future[T] = concurrent.futures.Future()

    def runner() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = func(*args, **kwargs)
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    threading.Thread(target=runner, name=name, daemon=True).start()
    return future


def wait_bounded(
    future: concurrent.futures.Future[T],
    deadline: float,
    cancel_token: threading.Event | None = None,
) -> T | _NoResult:
    """Wait up to ``deadline`` seconds for ``future``.

    Returns the future's result, or ``NO_RESULT`` if it is still running.
    Exceptions raised by the work propagate.
    """
    if deadline < 0:
        raise ValueError(f"Deadline must be non-negative, got {deadline}")

    try:
        return future.result(timeout=deadline)
    except concurrent.futures.TimeoutError:
        # Note: the worker keeps running, we only stop waiting for it
        if cancel_token is not None:
            cancel_token.set()
        return NO_RESULT


def run_bounded(
    deadline: float,
    work: Callable[[], T],
    *,
    executor: concurrent.futures.Executor | None = None,
    cancel_token: threading.Event | None = None,
) -> T | _NoResult:
    """Run ``work`` on a worker and wait at most ``deadline`` seconds.

    Args:
        deadline: Maximum seconds to wait for the result
        work: Zero-argument callable
        executor: Optional pool to run on; a new daemon thread is spawned otherwise
        cancel_token: Optional event set on timeout (cooperative cancellation)

    Returns:
        The work's return value, or ``NO_RESULT`` if the deadline passed

    Raises:
        ValueError: If deadline is negative
        Exception: Anything raised by ``work``
    """
    if deadline < 0:
        raise ValueError(f"Deadline must be non-negative, got {deadline}")

    start = time.monotonic()
    if executor is not None:
        future = executor.submit(work)
    else:
        future = spawn_future(work)

    result = wait_bounded(future, deadline, cancel_token)
    if result is NO_RESULT:
        logger.debug(
            "bounded.timeout",
            deadline=deadline,
            elapsed=round(time.monotonic() - start, 4),
            operation=getattr(work, "__name__", "work"),
        )
    return result


def _deliver(
    on_result: Callable[[Any], Any],
    on_error: Callable[[BaseException], Any] | None,
    operation: str,
    future: concurrent.futures.Future,
) -> None:
    if future.cancelled():
        logger.debug("bounded.callback_skipped", operation=operation, reason="cancelled")
        return
    error = future.exception()
    try:
        if error is None:
            on_result(future.result())
        elif on_error is not None:
            on_error(error)
        else:
            logger.error("bounded.work_failed", operation=operation, error=repr(error))
    except Exception:
        # Runs on the worker thread; nobody is left to raise to
        logger.exception("bounded.callback_failed", operation=operation)


def execute(
    work: Callable[[], T],
    on_result: Callable[[T], Any],
    on_error: Callable[[BaseException], Any] | None = None,
    *,
    executor: concurrent.futures.Executor | None = None,
) -> concurrent.futures.Future[T]:
    """Run ``work`` in the background and hand its outcome to a callback.

    ``on_result`` receives the return value; ``on_error`` receives the
    exception ``work`` raised. Without ``on_error`` the failure is logged.
    Callbacks run on the worker thread as soon as the work finishes (or on
    the calling thread if it already has). The caller never waits.

    Returns:
        The Future, for callers that also want to join or cancel
    """
    if executor is not None:
        future = executor.submit(work)
    else:
        future = spawn_future(work)
    future.add_done_callback(
        functools.partial(_deliver, on_result, on_error, getattr(work, "__name__", "work"))
    )
    return future


class BoundedExecutor:
    """Owns an optional worker pool and runs bounded waits on it.

    Without ``max_workers`` every call spawns a fresh daemon thread; with it,
    calls share a ``ThreadPoolExecutor`` that is shut down by ``shutdown()``
    or on leaving the ``with`` block.
    """

    def __init__(
        self,
        max_workers: int | None = None,
        *,
        executor: concurrent.futures.Executor | None = None,
        thread_name_prefix: str = "retryguard",
    ):
        if executor is not None and max_workers is not None:
            raise ValueError("Pass either max_workers or executor, not both")
        self._owns_pool = executor is None and max_workers is not None
        if self._owns_pool:
            executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix=thread_name_prefix,
            )
        self._executor = executor

    def submit(self, work: Callable[[], T]) -> concurrent.futures.Future[T]:
        """Start ``work`` without waiting for it."""
        if self._executor is None:
            return spawn_future(work)
        return self._executor.submit(work)

    def run_bounded(
        self,
        deadline: float,
        work: Callable[[], T],
        *,
        cancel_token: threading.Event | None = None,
    ) -> T | _NoResult:
        """See module-level ``run_bounded``."""
        return run_bounded(deadline, work, executor=self._executor, cancel_token=cancel_token)

    def execute(
        self,
        work: Callable[[], T],
        on_result: Callable[[T], Any],
        on_error: Callable[[BaseException], Any] | None = None,
    ) -> concurrent.futures.Future[T]:
        """See module-level ``execute``."""
        return execute(work, on_result, on_error, executor=self._executor)

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the owned pool; a caller-supplied pool is left alone."""
        if self._owns_pool and self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
            self._owns_pool = False

    def __enter__(self) -> BoundedExecutor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.shutdown()


__all__ = [
    "NO_RESULT",
    "BoundedExecutor",
    "execute",
    "run_bounded",
    "spawn_future",
    "wait_bounded",
]
