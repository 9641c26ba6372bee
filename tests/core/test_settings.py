"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from retryguard.core.settings import RetryGuardSettings, get_settings


class TestRetryGuardSettings:
    """Tests for RetryGuardSettings."""

    def test_defaults(self, monkeypatch):
        for key in ("LOCK_MAX_ATTEMPTS", "LOCK_ATTEMPT_TIMEOUT", "REDELIVERY_MAX_ATTEMPTS"):
            monkeypatch.delenv(f"RETRYGUARD_{key}", raising=False)
        settings = RetryGuardSettings()
        assert settings.lock_max_attempts == 3
        assert settings.lock_attempt_timeout == 0.5
        assert settings.lock_retry_delay == 0.2
        assert settings.redelivery_max_attempts == 3
        assert settings.delay_exchange == "retry.delay"

    def test_reads_prefixed_env(self, monkeypatch):
        """RETRYGUARD_* variables override defaults."""
        monkeypatch.setenv("RETRYGUARD_LOCK_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("RETRYGUARD_LOCK_ATTEMPT_TIMEOUT", "0.25")
        monkeypatch.setenv("RETRYGUARD_LOG_FORMAT", "JSON")
        settings = RetryGuardSettings()
        assert settings.lock_max_attempts == 5
        assert settings.lock_attempt_timeout == 0.25
        assert settings.log_format == "json"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"lock_max_attempts": 0},
            {"redelivery_max_attempts": -2},
            {"lock_attempt_timeout": -0.1},
            {"delay_ttl_ms": -1},
            {"log_format": "xml"},
        ],
    )
    def test_validation(self, overrides):
        with pytest.raises(ValidationError):
            RetryGuardSettings(**overrides)

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()
