"""
Structured logging for retryguard.

Coordinators emit discrete events (``lock.acquired``, ``redelivery.exhausted``,
``delivery.disposal_failed`` ...) with key/value fields, never formatted
sentences, so attempt counts and delivery tags stay filterable downstream.

Examples:
    >>> from retryguard.core.logging import configure_logging, get_logger
    >>> configure_logging("DEBUG", json_format=False)
    >>> get_logger(__name__).info("lock.acquired", attempt=2, max_attempts=3)

    From environment settings:

    >>> configure_logging(settings=get_settings())

    Scoped context for one delivery (restored on exit, nesting-safe):

    >>> with LogContext(delivery_tag=42):
    ...     logger.info("redelivery.republished")

Guardrails:
    ❌ DON'T: Call ``configure_logging()`` from library code
    ✅ DO: Call it once from the host application's entry point

    ❌ DON'T: Interpolate values into the event name
    ✅ DO: Pass them as keyword fields

Tags:
    logging, structlog, observability
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from retryguard.core.errors import ConfigError

if TYPE_CHECKING:
    from retryguard.core.settings import RetryGuardSettings


# JSON output uses ECS names so it lands cleanly in Elasticsearch/OpenSearch
_ECS_RENAMES = {
    "timestamp": "@timestamp",
    "level": "log.level",
    "logger": "log.logger",
}


class _ServiceName:
    """Processor stamping ``service.name`` on every event."""

    def __init__(self, service: str):
        self.service = service

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", self.service)
        return event_dict


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for plain, ecs in _ECS_RENAMES.items():
        if plain in event_dict:
            event_dict[ecs] = event_dict.pop(plain)
    return event_dict


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ConfigError(f"Unknown log level {level!r}")
    return resolved


def configure_logging(
    level: str | None = None,
    *,
    json_format: bool | None = None,
    service: str = "retryguard",
    settings: RetryGuardSettings | None = None,
) -> None:
    """Install the structlog pipeline every retryguard logger uses.

    Args:
        level: DEBUG / INFO / WARNING / ERROR; falls back to ``settings.log_level``, then INFO
        json_format: Force JSON (True) or console (False) output; ``None``
            follows ``settings.log_format``, or JSON when stdout is not a TTY
        service: Value of the ``service.name`` field
        settings: Optional RetryGuardSettings to read defaults from

    Raises:
        ConfigError: Unknown log level
    """
    if settings is not None:
        level = level or settings.log_level
        if json_format is None:
            json_format = settings.log_format == "json"
    level_no = _resolve_level(level or "INFO")
    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _ServiceName(service),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_format:
        processors += [
            _ecs_field_names,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level_no)


def get_logger(name: str | None = None) -> Any:
    """Module logger; use ``get_logger(__name__)``."""
    return structlog.get_logger(name)


class LogContext:
    """Bind context variables for a ``with`` / ``async with`` block.

    Previous values of the same keys are restored on exit, so nested scopes
    (a redelivery inside a consumer scope) do not clobber each other.
    """

    def __init__(self, **values: Any):
        self._values = values
        self._tokens: Any = None

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._values)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


__all__ = ["LogContext", "configure_logging", "get_logger"]
