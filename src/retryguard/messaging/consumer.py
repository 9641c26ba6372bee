"""Consumer glue: turn a plain message handler into one that acks or redelivers.

Example::

    broker = AioPikaBroker(channel)
    topology = await declare_retry_topology(channel, "orders")
    await topology.work_queue.consume(
        redelivering_handler(process_order, broker, dlx="retry.delay"),
        no_ack=False,
    )
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from retryguard.core.logging import get_logger
from retryguard.execution.policy import RetryPolicy
from retryguard.messaging.aio_pika_broker import AioPikaBroker
from retryguard.messaging.models import DeliveryDisposal
from retryguard.messaging.redelivery import RedeliveryCoordinator, noop

logger = get_logger(__name__)

MessageHandler = Callable[[Any], Awaitable[Any]]


def redelivering_handler(
    handler: MessageHandler,
    broker: AioPikaBroker,
    dlx: str | None = None,
    *,
    routing_key: str | None = None,
    max_attempts: int | RetryPolicy | None = None,
    on_exhausted: Callable[[Any], Any] | None = None,
    coordinator: RedeliveryCoordinator | None = None,
) -> MessageHandler:
    """Wrap ``handler`` so success acks and a raised exception redelivers.

    With ``dlx`` the failure goes through counted ``retry()``; without it,
    through ``simple_retry()``. ``on_exhausted`` receives the message.
    """
    coordinator = coordinator or RedeliveryCoordinator(broker)

    async def on_message(message: Any) -> None:
        record = coordinator.record_for(message)
        try:
            await handler(message)
        except Exception as exc:
            logger.warning(
                "consumer.handler_failed",
                delivery_tag=record.delivery_tag,
                attempt_count=record.attempt_count,
                error=repr(exc),
            )
            fallback = noop if on_exhausted is None else (lambda: on_exhausted(message))
            if dlx is None:
                await coordinator.simple_retry(broker, message, on_exhausted=fallback)
            else:
                await coordinator.retry(
                    broker,
                    broker,
                    message,
                    dlx,
                    routing_key,
                    max_attempts,
                    on_exhausted=fallback,
                )
            return

        await DeliveryDisposal(broker, record).acknowledge()

    return on_message


__all__ = ["redelivering_handler"]
