"""retryguard.messaging -- bounded redelivery over a message broker.

Architecture::

    models.py           DeliveryRecord, RedeliveryDecision, DeliveryDisposal
    redelivery.py       RedeliveryCoordinator, MessageRetrier, simple_retry, retry
    aio_pika_broker.py  AioPikaBroker / AioPikaMetadata (RabbitMQ via aio_pika)
    topology.py         declare_retry_topology (delay exchange + TTL queue)
    consumer.py         redelivering_handler (ack on success, retry on error)
"""

from retryguard.messaging.aio_pika_broker import AioPikaBroker, AioPikaMetadata
from retryguard.messaging.consumer import redelivering_handler
from retryguard.messaging.models import DeliveryDisposal, DeliveryRecord, RedeliveryDecision
from retryguard.messaging.redelivery import (
    MessageRetrier,
    RedeliveryCoordinator,
    decide,
    noop,
    retry,
    simple_retry,
)
from retryguard.messaging.topology import RetryTopology, declare_retry_topology

__all__ = [
    "AioPikaBroker",
    "AioPikaMetadata",
    "DeliveryDisposal",
    "DeliveryRecord",
    "MessageRetrier",
    "RedeliveryCoordinator",
    "RedeliveryDecision",
    "RetryTopology",
    "decide",
    "declare_retry_topology",
    "noop",
    "redelivering_handler",
    "retry",
    "simple_retry",
]
