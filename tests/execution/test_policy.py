"""Tests for RetryPolicy and backoff strategies."""

import pytest

from retryguard.core.errors import PolicyValidationError
from retryguard.core.settings import RetryGuardSettings
from retryguard.execution.policy import (
    DEFAULT_POLICY,
    BackoffStrategy,
    FixedInterval,
    RetryPolicy,
)


class TestRetryPolicy:
    """Tests for RetryPolicy construction and helpers."""

    def test_defaults(self):
        """Defaults are 3 attempts, 500ms per attempt, 200ms apart."""
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.per_attempt_timeout == 0.5
        assert policy.inter_attempt_delay == 0.2
        assert DEFAULT_POLICY == policy

    def test_frozen(self):
        with pytest.raises(AttributeError):
            RetryPolicy().max_attempts = 5

    @pytest.mark.parametrize("value", [0, -1, 1.5, True, "3"])
    def test_invalid_max_attempts(self, value):
        with pytest.raises(PolicyValidationError) as exc_info:
            RetryPolicy(max_attempts=value)
        assert exc_info.value.field == "max_attempts"

    @pytest.mark.parametrize("field", ["per_attempt_timeout", "inter_attempt_delay"])
    def test_negative_durations_rejected(self, field):
        with pytest.raises(PolicyValidationError) as exc_info:
            RetryPolicy(**{field: -0.1})
        assert exc_info.value.field == field
        assert exc_info.value.retryable is False

    def test_zero_durations_allowed(self):
        policy = RetryPolicy(per_attempt_timeout=0, inter_attempt_delay=0)
        assert policy.delay_before(2) == 0.0

    def test_delay_before(self):
        """The first attempt never waits; later ones wait the fixed interval."""
        policy = RetryPolicy(inter_attempt_delay=0.2)
        assert policy.delay_before(1) == 0.0
        assert policy.delay_before(2) == 0.2
        assert policy.delay_before(3) == 0.2

    def test_allows(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.allows(1) is True
        assert policy.allows(2) is True
        assert policy.allows(3) is False

    def test_custom_backoff(self):
        """A pluggable strategy replaces the fixed interval."""

        class Doubling(BackoffStrategy):
            def next_delay(self, attempt):
                return 0.1 * (2 ** attempt)

        policy = RetryPolicy(max_attempts=4, backoff=Doubling())
        assert [policy.delay_before(n) for n in (2, 3, 4)] == [0.1, 0.2, 0.4]

    def test_strategy_defaults_to_fixed_interval(self):
        assert RetryPolicy(inter_attempt_delay=0.3).strategy == FixedInterval(0.3)

    def test_from_settings(self):
        settings = RetryGuardSettings(
            lock_max_attempts=5, lock_attempt_timeout=0.25, lock_retry_delay=0.1
        )
        policy = RetryPolicy.from_settings(settings)
        assert policy == RetryPolicy(max_attempts=5, per_attempt_timeout=0.25, inter_attempt_delay=0.1)
