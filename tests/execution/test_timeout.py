"""Tests for bounded-wait execution."""

import concurrent.futures
import threading
import time

import pytest

from retryguard.execution.timeout import (
    NO_RESULT,
    BoundedExecutor,
    execute,
    run_bounded,
    spawn_future,
    wait_bounded,
)


class TestNoResult:
    """Tests for the NO_RESULT sentinel."""

    def test_is_falsy_singleton(self):
        assert not NO_RESULT
        assert type(NO_RESULT)() is NO_RESULT
        assert repr(NO_RESULT) == "NO_RESULT"


class TestRunBounded:
    """Tests for run_bounded."""

    def test_returns_result(self):
        """Work finishing in time returns its value."""
        assert run_bounded(1.0, lambda: 21 * 2) == 42

    def test_returns_none_result_distinct_from_timeout(self):
        """A work result of None is not confused with a timeout."""
        assert run_bounded(1.0, lambda: None) is None

    def test_timeout_returns_sentinel(self):
        """Past the deadline the caller gets NO_RESULT, not an exception."""
        start = time.monotonic()
        result = run_bounded(0.05, lambda: time.sleep(1.0))
        assert result is NO_RESULT
        assert time.monotonic() - start < 0.5

    def test_worker_keeps_running_after_timeout(self):
        """The worker is not cancelled; it may finish in the background."""
        finished = threading.Event()

        def slow():
            time.sleep(0.2)
            finished.set()

        assert run_bounded(0.01, slow) is NO_RESULT
        assert finished.wait(2.0) is True

    def test_error_propagates(self):
        def boom():
            raise ValueError("broken")

        with pytest.raises(ValueError, match="broken"):
            run_bounded(1.0, boom)

    def test_cancel_token_set_on_timeout(self):
        """The cooperative cancel token is set when the deadline passes."""
        token = threading.Event()
        assert run_bounded(0.02, lambda: token.wait(2.0), cancel_token=token) is NO_RESULT
        assert token.is_set()

    def test_cancel_token_untouched_on_success(self):
        token = threading.Event()
        run_bounded(1.0, lambda: 1, cancel_token=token)
        assert not token.is_set()

    def test_negative_deadline_rejected(self):
        with pytest.raises(ValueError):
            run_bounded(-1, lambda: 1)

    def test_uses_supplied_executor(self):
        with concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="pool-x") as pool:
            name = run_bounded(1.0, lambda: threading.current_thread().name, executor=pool)
        assert name.startswith("pool-x")


class TestSpawnFuture:
    """Tests for the daemon-thread future helper."""

    def test_runs_on_daemon_thread(self):
        future = spawn_future(lambda: threading.current_thread().daemon)
        assert future.result(timeout=1.0) is True

    def test_passes_arguments(self):
        future = spawn_future(lambda a, b=0: a + b, 1, b=2)
        assert wait_bounded(future, 1.0) == 3


class TestBoundedExecutor:
    """Tests for BoundedExecutor lifecycle."""

    def test_owned_pool_shut_down_on_exit(self):
        with BoundedExecutor(max_workers=2) as bounded:
            assert bounded.run_bounded(1.0, lambda: "pooled") == "pooled"
            pool = bounded._executor
        assert bounded._executor is None
        with pytest.raises(RuntimeError):
            pool.submit(lambda: None)

    def test_supplied_pool_left_open(self):
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        with BoundedExecutor(executor=pool) as bounded:
            assert bounded.run_bounded(1.0, lambda: 3) == 3
        assert pool.submit(lambda: 4).result(timeout=1.0) == 4
        pool.shutdown()

    def test_without_pool_spawns_threads(self):
        bounded = BoundedExecutor()
        assert bounded.submit(lambda: 9).result(timeout=1.0) == 9
        assert bounded.run_bounded(0.01, lambda: time.sleep(0.5)) is NO_RESULT

    def test_rejects_both_pool_arguments(self):
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        with pytest.raises(ValueError):
            BoundedExecutor(max_workers=1, executor=pool)
        pool.shutdown()


class TestExecute:
    """Tests for background work with result and error callbacks."""

    def test_result_goes_to_callback(self):
        done = threading.Event()
        received = []

        def on_result(value):
            received.append(value)
            done.set()

        future = execute(lambda: 21 * 2, on_result)

        assert done.wait(1.0) is True
        assert received == [42]
        assert future.result(timeout=1.0) == 42

    def test_error_goes_to_error_callback(self):
        done = threading.Event()
        errors = []

        def boom():
            raise ValueError("broken")

        def on_error(exc):
            errors.append(exc)
            done.set()

        execute(boom, lambda value: pytest.fail("result callback must not run"), on_error)

        assert done.wait(1.0) is True
        assert isinstance(errors[0], ValueError)

    def test_error_without_error_callback_is_not_raised(self):
        """With no error callback the failure stays on the future."""
        future = execute(lambda: 1 / 0, lambda value: None)
        assert isinstance(future.exception(timeout=1.0), ZeroDivisionError)

    def test_failing_callback_does_not_break_the_worker(self):
        def on_result(value):
            raise RuntimeError("callback broke")

        future = execute(lambda: "ok", on_result)
        assert future.result(timeout=1.0) == "ok"

    def test_does_not_wait_for_work(self):
        release = threading.Event()
        start = time.monotonic()
        future = execute(lambda: release.wait(2.0), lambda value: None)
        assert time.monotonic() - start < 0.5
        release.set()
        assert future.result(timeout=2.0) is True

    def test_cancelled_future_skips_callbacks(self):
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            blocker = threading.Event()
            pool.submit(blocker.wait, 2.0)
            called = []
            future = execute(lambda: 1, called.append, called.append, executor=pool)
            assert future.cancel() is True
            blocker.set()
        assert called == []

    def test_bounded_executor_uses_its_pool(self):
        done = threading.Event()
        names = []

        def on_result(name):
            names.append(name)
            done.set()

        with BoundedExecutor(max_workers=1, thread_name_prefix="cb") as bounded:
            bounded.execute(lambda: threading.current_thread().name, on_result)
            assert done.wait(1.0) is True
        assert names[0].startswith("cb")
