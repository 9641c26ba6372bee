"""Delivery-side value types: the record a decision is made on, and the disposal guard.

``DeliveryRecord`` is a read-only snapshot of broker metadata. The broker owns
the attempt count (``x-death``); nothing here increments it.
``DeliveryDisposal`` wraps a ``DeliveryChannel`` for one delivery and refuses a
second ack/reject, so a coordinator bug can never double-dispose.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from retryguard.core.errors import DisposalFailure
from retryguard.core.logging import get_logger
from retryguard.core.protocols import DeliveryChannel, MessageMetadata

logger = get_logger(__name__)


class RedeliveryDecision(str, Enum):
    """What a coordinator does with a failed delivery."""

    REQUEUE = "requeue"       # reject(requeue=True), broker redelivers
    REPUBLISH = "republish"   # publish to the delay exchange, then ack
    EXHAUSTED = "exhausted"   # run on_exhausted, then ack


@dataclass(frozen=True)
class DeliveryRecord:
    """Per-delivery metadata the redelivery decision is made on.

    Attributes:
        delivery_tag: Broker-opaque identifier used for ack/reject
        attempt_count: Dead-letter round trips recorded by the broker (0 if none)
        was_redelivered: Broker redelivery flag
        received_routing_key: Routing key the message arrived with
    """

    delivery_tag: Any
    attempt_count: int = 0
    was_redelivered: bool = False
    received_routing_key: str = ""

    def __post_init__(self) -> None:
        if self.attempt_count < 0:
            raise ValueError(f"attempt_count must be non-negative, got {self.attempt_count}")

    @classmethod
    def from_message(cls, message: Any, metadata: MessageMetadata) -> DeliveryRecord:
        return cls(
            delivery_tag=metadata.delivery_tag(message),
            attempt_count=metadata.retry_history_count(message),
            was_redelivered=bool(metadata.redelivered(message)),
            received_routing_key=metadata.received_routing_key(message) or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivery_tag": self.delivery_tag,
            "attempt_count": self.attempt_count,
            "was_redelivered": self.was_redelivered,
            "received_routing_key": self.received_routing_key,
        }


class DeliveryDisposal:
    """Exactly-once ack/reject for a single delivery.

    The first call claims the delivery before touching the channel; a second
    call raises ``DisposalFailure`` without reaching the broker. A channel
    error is wrapped in ``DisposalFailure`` and the delivery stays claimed.
    """

    def __init__(self, channel: DeliveryChannel, record: DeliveryRecord):
        self._channel = channel
        self._record = record
        self._action: str | None = None

    @property
    def disposed(self) -> bool:
        return self._action is not None

    @property
    def action(self) -> str | None:
        return self._action

    async def acknowledge(self, multiple: bool = False) -> None:
        self._claim("ack")
        try:
            await self._channel.acknowledge(self._record.delivery_tag, multiple=multiple)
        except Exception as exc:
            raise self._failed("ack", exc) from exc

    async def reject(self, requeue: bool = True) -> None:
        self._claim("reject")
        try:
            await self._channel.reject(self._record.delivery_tag, requeue=requeue)
        except Exception as exc:
            raise self._failed("reject", exc) from exc

    def _claim(self, action: str) -> None:
        if self._action is not None:
            raise DisposalFailure(
                f"Delivery {self._record.delivery_tag!r} already disposed by {self._action}",
                action=action,
            ).with_context(delivery_tag=self._record.delivery_tag)
        self._action = action

    def _failed(self, action: str, exc: Exception) -> DisposalFailure:
        failure = DisposalFailure(
            f"Delivery {action} failed: {exc}", action=action, cause=exc
        )
        failure.with_context(delivery_tag=self._record.delivery_tag)
        logger.error("delivery.disposal_failed", **failure.to_dict())
        return failure


__all__ = ["DeliveryDisposal", "DeliveryRecord", "RedeliveryDecision"]
