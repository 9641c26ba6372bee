"""Environment-driven settings for retryguard.

Retry budgets are operational knobs: the same binary may want 3 lock attempts
in development and 5 behind a slow database in production. ``RetryGuardSettings``
reads them from ``RETRYGUARD_*`` environment variables (or a ``.env`` file) and
validates them at start-up instead of at the first failed acquisition.

Examples:
    >>> from retryguard.core.settings import RetryGuardSettings
    >>> settings = RetryGuardSettings(lock_max_attempts=5)
    >>> settings.lock_max_attempts
    5

    Environment::

        RETRYGUARD_LOCK_MAX_ATTEMPTS=5
        RETRYGUARD_LOCK_ATTEMPT_TIMEOUT=0.25
        RETRYGUARD_REDELIVERY_MAX_ATTEMPTS=3

Tags:
    settings, configuration, pydantic, environment
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryGuardSettings(BaseSettings):
    """Defaults for lock and redelivery coordination.

    Fields
    ──────
    lock_max_attempts       : Total bounded acquisition attempts (>= 1)
    lock_attempt_timeout    : Seconds each bounded try_acquire may wait
    lock_retry_delay        : Seconds between bounded attempts
    redelivery_max_attempts : Dead-letter round trips before on_exhausted runs
    delay_exchange          : Exchange messages are re-published to for delay
    delay_ttl_ms            : TTL of the delay queue declared by the topology helper
    log_level / log_format  : structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="RETRYGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Lock acquisition ─────────────────────────────────────────
    lock_max_attempts: int = Field(3, description="Total bounded attempts, first included")
    lock_attempt_timeout: float = Field(0.5, description="Seconds per bounded try_acquire")
    lock_retry_delay: float = Field(0.2, description="Seconds between bounded attempts")

    # ── Redelivery ───────────────────────────────────────────────
    redelivery_max_attempts: int = Field(3, description="Dead-letter round trips")
    delay_exchange: str = "retry.delay"
    delay_ttl_ms: int = Field(5000, description="Delay queue message TTL")

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = Field("console", description="console | json")

    @field_validator("lock_max_attempts", "redelivery_max_attempts")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"must be >= 1, got {value}")
        return value

    @field_validator("lock_attempt_timeout", "lock_retry_delay", "delay_ttl_ms")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"must be non-negative, got {value}")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {value!r}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> RetryGuardSettings:
    """Process-wide settings instance, read once from the environment."""
    return RetryGuardSettings()


__all__ = ["RetryGuardSettings", "get_settings"]
