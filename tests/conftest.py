"""
Shared pytest fixtures for retryguard tests.

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.

    def test_something(fast_policy, fake_broker):
        ...
"""

import sys
from pathlib import Path

import pytest

# Ensure retryguard package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from retryguard.core.settings import get_settings
from retryguard.execution.policy import RetryPolicy

from tests._support import FakeBroker, FakeMessage


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three attempts, short timeouts, short delays."""
    return RetryPolicy(max_attempts=3, per_attempt_timeout=0.01, inter_attempt_delay=0.01)


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def message() -> FakeMessage:
    return FakeMessage(delivery_tag=7)


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Settings are cached per process; tests that patch env need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
