"""Delay/dead-letter topology for counted redelivery.

::

    work queue ──(consumer fails)──► retry(dlx=delay_exchange)
        ▲                                   │ publish, routing key = queue
        │                                   ▼
        │                       delay_exchange (direct)
        │                                   │ bound with routing key
        │                                   ▼
        └──── dead-letter on TTL ──── <queue>.delay  (x-message-ttl)

Every expiry adds to the ``x-death`` count of the delay queue entry, which is
what ``retry()`` compares with ``max_attempts``.
"""

from __future__ import annotations

from dataclasses import dataclass

import aio_pika
from aio_pika import ExchangeType

from retryguard.core.logging import get_logger
from retryguard.core.settings import get_settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryTopology:
    work_queue: aio_pika.abc.AbstractQueue
    delay_exchange: aio_pika.abc.AbstractExchange
    delay_queue: aio_pika.abc.AbstractQueue


async def declare_retry_topology(
    channel: aio_pika.abc.AbstractChannel,
    queue: str,
    delay_exchange: str | None = None,
    delay_ttl_ms: int | None = None,
    *,
    routing_key: str | None = None,
    work_exchange: str = "",
    durable: bool = True,
) -> RetryTopology:
    """Declare the work queue, the delay exchange and a TTL queue feeding back into it.

    Args:
        channel: Open aio_pika channel
        queue: Work queue name
        delay_exchange: Exchange ``retry()`` re-publishes to
            (default ``RETRYGUARD_DELAY_EXCHANGE``)
        delay_ttl_ms: How long a message waits before coming back
            (default ``RETRYGUARD_DELAY_TTL_MS``)
        routing_key: Binding key on the delay exchange (defaults to ``queue``)
        work_exchange: Exchange expired messages are dead-lettered to ("" = default)
        durable: Declare everything durable
    """
    settings = get_settings()
    if delay_exchange is None:
        delay_exchange = settings.delay_exchange
    if delay_ttl_ms is None:
        delay_ttl_ms = settings.delay_ttl_ms
    if delay_ttl_ms < 0:
        raise ValueError(f"delay_ttl_ms must be non-negative, got {delay_ttl_ms}")
    binding_key = queue if routing_key is None else routing_key

    work_queue = await channel.declare_queue(queue, durable=durable)
    exchange = await channel.declare_exchange(
        delay_exchange, ExchangeType.DIRECT, durable=durable
    )
    delay_queue = await channel.declare_queue(
        f"{queue}.delay",
        durable=durable,
        arguments={
            "x-message-ttl": delay_ttl_ms,
            "x-dead-letter-exchange": work_exchange,
            "x-dead-letter-routing-key": queue,
        },
    )
    await delay_queue.bind(exchange, routing_key=binding_key)

    logger.info(
        "topology.declared",
        queue=queue,
        delay_exchange=delay_exchange,
        delay_queue=f"{queue}.delay",
        delay_ttl_ms=delay_ttl_ms,
    )
    return RetryTopology(work_queue=work_queue, delay_exchange=exchange, delay_queue=delay_queue)


__all__ = ["RetryTopology", "declare_retry_topology"]
