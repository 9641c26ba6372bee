"""
In-memory fakes for the lock and broker ports.

These record every call so tests can assert exact attempt, release, ack and
reject counts without a real lock contention pattern or a running broker.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any

from retryguard.messaging.aio_pika_broker import AioPikaMetadata


class FakeLock:
    """MutexHandle granting on a chosen bounded attempt.

    Args:
        available_at: Bounded try number that succeeds (None = never)
        immediately: Grant the non-blocking fast-path try
        release_error: Raised from ``release()``
        slow_grant: Seconds a granting bounded try sleeps before returning
    """

    def __init__(
        self,
        available_at: int | None = None,
        *,
        immediately: bool = False,
        release_error: Exception | None = None,
        slow_grant: float = 0.0,
    ):
        self.available_at = available_at
        self.immediately = immediately
        self.release_error = release_error
        self.slow_grant = slow_grant
        self.nonblocking_tries = 0
        self.bounded_tries = 0
        self.releases = 0
        self.held = False
        self._guard = threading.Lock()

    def try_acquire(self, timeout: float | None = None) -> bool:
        with self._guard:
            if timeout is None:
                self.nonblocking_tries += 1
                if self.immediately:
                    self.held = True
                return self.immediately
            self.bounded_tries += 1
            attempt = self.bounded_tries

        if self.available_at is not None and attempt >= self.available_at:
            if self.slow_grant:
                time.sleep(self.slow_grant)
            self.held = True
            return True
        if timeout:
            time.sleep(timeout)
        return False

    def acquire_interruptibly(self, cancel: threading.Event | None = None) -> None:
        self.held = True

    def release(self) -> None:
        self.releases += 1
        self.held = False
        if self.release_error is not None:
            raise self.release_error


@dataclass
class FakeMessage:
    """Shape of ``aio_pika.IncomingMessage`` as far as the adapters read it."""

    delivery_tag: int = 1
    redelivered: bool = False
    routing_key: str = "orders"
    headers: dict[str, Any] = field(default_factory=dict)
    body: bytes = b'{"order_id": 17}'
    content_type: str | None = "application/json"
    content_encoding: str | None = None
    correlation_id: str | None = None
    message_id: str | None = "m-1"
    type: str | None = None
    app_id: str | None = None
    delivery_mode: int | None = 2


def dead_lettered(count: int, **kwargs: Any) -> FakeMessage:
    """A message whose first ``x-death`` entry reports ``count`` round trips."""
    headers = {
        "x-death": [
            {"count": count, "reason": "expired", "queue": "orders.delay"},
            {"count": 99, "reason": "rejected", "queue": "orders"},
        ]
    }
    return FakeMessage(headers=headers, **kwargs)


class FakeBroker(AioPikaMetadata):
    """Publisher + delivery channel recording every call."""

    def __init__(
        self,
        *,
        publish_error: Exception | None = None,
        ack_error: Exception | None = None,
        reject_error: Exception | None = None,
    ):
        self.published: list[tuple[str, str, Any]] = []
        self.acks: list[tuple[Any, bool]] = []
        self.rejects: list[tuple[Any, bool]] = []
        self.publish_error = publish_error
        self.ack_error = ack_error
        self.reject_error = reject_error

    async def publish(self, destination: str, routing_key: str, message: Any) -> None:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((destination, routing_key, message))

    async def acknowledge(self, delivery_tag: Any, multiple: bool = False) -> None:
        self.acks.append((delivery_tag, multiple))
        if self.ack_error is not None:
            raise self.ack_error

    async def reject(self, delivery_tag: Any, requeue: bool = True) -> None:
        self.rejects.append((delivery_tag, requeue))
        if self.reject_error is not None:
            raise self.reject_error

    @property
    def disposals(self) -> int:
        return len(self.acks) + len(self.rejects)


class Recorder:
    """Sync or async ``on_exhausted`` callback counting its calls."""

    def __init__(self, error: Exception | None = None):
        self.calls = 0
        self.error = error

    def __call__(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error

    async def async_call(self) -> None:
        self()
