"""
Structural contracts for the collaborators retryguard coordinates.

retryguard never implements a lock or a broker. It drives whatever the host
application already has through these protocols; adapters for stdlib
``threading`` primitives and aio_pika live next to the coordinators.

Architecture:
    ::

        protocols.py
        ├── MutexHandle          — try_acquire / acquire_interruptibly / release
        ├── MessageMetadata      — read-only accessors over a delivered message
        ├── RedeliveryPublisher  — publish(destination, routing_key, message)
        └── DeliveryChannel      — acknowledge / reject by delivery tag

    Consumers:
        execution/locks.py, messaging/redelivery.py, messaging/models.py

Guardrails:
    ❌ DON'T: Add retry logic to adapters
    ✅ DO: Keep adapters thin; bounded retry lives in the coordinators

    ❌ DON'T: Share one DeliveryChannel across concurrent calls unless the
       client documents it as safe
    ✅ DO: Give each consumer task its own channel

Tags:
    protocol, locks, messaging, contracts
"""

from __future__ import annotations

import threading
from typing import Any, Protocol, runtime_checkable


# ---------------------------------------------------------------------------
# Mutual exclusion
# ---------------------------------------------------------------------------


@runtime_checkable
class MutexHandle(Protocol):
    """A mutual-exclusion handle owned by the host application.

    ``try_acquire()`` with no timeout must not block. With a timeout it waits
    at most that many seconds. ``acquire_interruptibly`` blocks until granted
    or until ``cancel`` is set, in which case it raises
    ``InterruptedDuringAcquire`` without holding the lock.
    """

    def try_acquire(self, timeout: float | None = None) -> bool: ...

    def acquire_interruptibly(self, cancel: threading.Event | None = None) -> None: ...

    def release(self) -> None: ...


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------


@runtime_checkable
class MessageMetadata(Protocol):
    """Read-only accessors over a broker message's delivery metadata."""

    def delivery_tag(self, message: Any) -> Any: ...

    def redelivered(self, message: Any) -> bool: ...

    def retry_history_count(self, message: Any) -> int:
        """Dead-letter round trips recorded by the broker; 0 when absent."""
        ...

    def received_routing_key(self, message: Any) -> str: ...


@runtime_checkable
class RedeliveryPublisher(Protocol):
    """Publishes a message (same payload and headers) to a destination."""

    async def publish(self, destination: str, routing_key: str, message: Any) -> None: ...


@runtime_checkable
class DeliveryChannel(Protocol):
    """Resolves a delivery on the channel it arrived on."""

    async def acknowledge(self, delivery_tag: Any, multiple: bool = False) -> None: ...

    async def reject(self, delivery_tag: Any, requeue: bool = True) -> None: ...


__all__ = [
    "MutexHandle",
    "MessageMetadata",
    "RedeliveryPublisher",
    "DeliveryChannel",
]
