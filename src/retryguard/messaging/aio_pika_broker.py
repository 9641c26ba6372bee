"""
aio_pika adapter for the messaging ports.

Architecture:
    ::

        AioPikaMetadata            ─ MessageMetadata over aio_pika.IncomingMessage
        AioPikaBroker(channel)     ─ + RedeliveryPublisher + DeliveryChannel
          ├── publish()            ─ same body/headers to destination exchange
          ├── acknowledge()        ─ basic_ack(tag, multiple) on the underlying channel
          └── reject()             ─ basic_reject(tag, requeue) on the underlying channel

    Ack/reject go through the channel by delivery tag rather than through
    ``IncomingMessage.ack()`` so that the coordinators stay tag-based and the
    same broker instance serves every delivery on the channel.

Guardrails:
    ❌ DON'T: Strip headers on re-publish
    ✅ DO: Carry ``x-death`` forward; the broker increments it on the next expiry

Tags:
    aio_pika, rabbitmq, adapter, dead-letter
"""

from __future__ import annotations

from typing import Any

import aio_pika
from aio_pika import DeliveryMode, Message

from retryguard.core.logging import get_logger

logger = get_logger(__name__)

X_DEATH_HEADER = "x-death"


class AioPikaMetadata:
    """Reads delivery metadata from an ``aio_pika.IncomingMessage``."""

    def delivery_tag(self, message: aio_pika.abc.AbstractIncomingMessage) -> Any:
        return message.delivery_tag

    def redelivered(self, message: aio_pika.abc.AbstractIncomingMessage) -> bool:
        return bool(message.redelivered)

    def retry_history_count(self, message: aio_pika.abc.AbstractIncomingMessage) -> int:
        """``count`` of the first ``x-death`` entry; 0 when the header is absent."""
        deaths = (message.headers or {}).get(X_DEATH_HEADER)
        if not deaths:
            return 0
        first = deaths[0]
        if not isinstance(first, dict):
            return 0
        return int(first.get("count", 0) or 0)

    def received_routing_key(self, message: aio_pika.abc.AbstractIncomingMessage) -> str:
        return message.routing_key or ""


class AioPikaBroker(AioPikaMetadata):
    """All messaging ports over one aio_pika channel.

    Args:
        channel: An open ``aio_pika`` channel; the consumer's own channel is
            required for ack/reject since delivery tags are channel-scoped
        persistent: Force persistent delivery mode on re-published messages
    """

    def __init__(self, channel: aio_pika.abc.AbstractChannel, *, persistent: bool = True):
        self._channel = channel
        self._persistent = persistent
        self._exchanges: dict[str, aio_pika.abc.AbstractExchange] = {}

    async def _exchange(self, destination: str) -> aio_pika.abc.AbstractExchange:
        if not destination:
            return self._channel.default_exchange
        exchange = self._exchanges.get(destination)
        if exchange is None:
            exchange = await self._channel.get_exchange(destination, ensure=False)
            self._exchanges[destination] = exchange
        return exchange

    async def publish(
        self,
        destination: str,
        routing_key: str,
        message: aio_pika.abc.AbstractIncomingMessage,
    ) -> None:
        exchange = await self._exchange(destination)
        outgoing = Message(
            message.body,
            headers=dict(message.headers or {}),
            content_type=message.content_type,
            content_encoding=message.content_encoding,
            correlation_id=message.correlation_id,
            message_id=message.message_id,
            type=message.type,
            app_id=message.app_id,
            delivery_mode=(
                DeliveryMode.PERSISTENT if self._persistent else message.delivery_mode
            ),
        )
        await exchange.publish(outgoing, routing_key=routing_key)
        logger.debug(
            "broker.published",
            destination=destination,
            routing_key=routing_key,
            delivery_tag=message.delivery_tag,
        )

    async def acknowledge(self, delivery_tag: Any, multiple: bool = False) -> None:
        underlay = await self._channel.get_underlay_channel()
        await underlay.basic_ack(delivery_tag, multiple=multiple)

    async def reject(self, delivery_tag: Any, requeue: bool = True) -> None:
        underlay = await self._channel.get_underlay_channel()
        await underlay.basic_reject(delivery_tag, requeue=requeue)


__all__ = ["AioPikaBroker", "AioPikaMetadata", "X_DEATH_HEADER"]
