"""Redelivery coordination — bounded message retry through the broker.

WHY
───
A consumer that fails to process a message has two cheap ways to try again
without holding the message in memory: reject it back onto the queue, or
re-publish it to a delay exchange whose TTL queue dead-letters it back to the
work queue later. Either way the broker, not the consumer, remembers how many
times the message has come round. RedeliveryCoordinator reads that count,
picks one action, and disposes of the original delivery exactly once.

ARCHITECTURE
────────────
::

    DeliveryRecord.from_message(message, metadata)
      │
      ▼
    decide(record, max_attempts)       ─ pure function
      ├── REQUEUE    (simple, not yet redelivered)  → reject(requeue=True)
      ├── REPUBLISH  (counted, attempt_count < max) → publish(dlx) → ack
      └── EXHAUSTED                                 → on_exhausted() → ack
      │
      ▼
    resolve_delivery(...)              ─ one action, at most one disposal
      └── DeliveryDisposal             ─ refuses a second ack/reject

    simple_retry(channel, message)     ─ broker redelivered flag only
    retry(client, channel, message, dlx)
                                       ─ x-death count vs max_attempts
    MessageRetrier                     ─ the same, bound to one delivery

BEST PRACTICES
──────────────
- The broker's count is trusted as-is; the coordinator keeps no counter.
- ``ack=False`` leaves disposal to the caller (e.g. batched acks); the
  coordinator then never acks. A REQUEUE still rejects.
- A failing or cancelled ``on_exhausted`` or publish still reaches the
  disposal step; if both fail the caller gets an ExceptionGroup with both errors.
- Without an explicit threshold the coordinator reads
  ``RETRYGUARD_REDELIVERY_MAX_ATTEMPTS`` at call time.

Example::

    broker = AioPikaBroker(channel)

    async def on_message(message):
        try:
            await handle(message)
            await message.ack()
        except Exception:
            await retry(broker, broker, message, "retry.delay",
                        on_exhausted=lambda: park(message))
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from retryguard.core.errors import ConfigError, PolicyValidationError, RedeliveryPublishFailure
from retryguard.core.logging import LogContext, get_logger
from retryguard.core.protocols import DeliveryChannel, MessageMetadata, RedeliveryPublisher
from retryguard.core.settings import get_settings
from retryguard.execution.policy import RetryPolicy
from retryguard.messaging.aio_pika_broker import AioPikaMetadata
from retryguard.messaging.models import DeliveryDisposal, DeliveryRecord, RedeliveryDecision

logger = get_logger(__name__)

ExhaustedCallback = Callable[[], Any]


def noop() -> None:
    """Default ``on_exhausted``: give up silently (the delivery is still acked)."""


def decide(
    record: DeliveryRecord, max_attempts: int | RetryPolicy | None = None
) -> RedeliveryDecision:
    """Pick the action for a failed delivery.

    ``max_attempts=None`` selects the simple mode, driven only by the broker's
    redelivered flag. Otherwise the recorded attempt count is compared with
    ``max_attempts`` (an int or a RetryPolicy).
    """
    if max_attempts is None:
        if record.was_redelivered:
            return RedeliveryDecision.EXHAUSTED
        return RedeliveryDecision.REQUEUE
    if record.attempt_count < _threshold(max_attempts):
        return RedeliveryDecision.REPUBLISH
    return RedeliveryDecision.EXHAUSTED


async def _invoke(callback: ExhaustedCallback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


def _threshold(max_attempts: int | RetryPolicy) -> int:
    if isinstance(max_attempts, RetryPolicy):
        return max_attempts.max_attempts
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
        raise PolicyValidationError(
            f"max_attempts must be an integer >= 1, got {max_attempts!r}",
            field="max_attempts",
            value=max_attempts,
        )
    return max_attempts


class RedeliveryCoordinator:
    """Stateless redelivery decisions over pluggable broker ports.

    Args:
        metadata: Reads delivery tag, redelivered flag, x-death count and
            routing key from a message (aio_pika by default)
        max_attempts: Default counted-retry threshold; ``None`` reads
            ``RETRYGUARD_REDELIVERY_MAX_ATTEMPTS`` on every call
    """

    def __init__(
        self,
        metadata: MessageMetadata | None = None,
        *,
        max_attempts: int | RetryPolicy | None = None,
    ):
        self.metadata = metadata or AioPikaMetadata()
        self._max_attempts = None if max_attempts is None else _threshold(max_attempts)

    @property
    def max_attempts(self) -> int:
        if self._max_attempts is not None:
            return self._max_attempts
        return get_settings().redelivery_max_attempts

    def record_for(self, message: Any) -> DeliveryRecord:
        return DeliveryRecord.from_message(message, self.metadata)

    async def resolve_delivery(
        self,
        record: DeliveryRecord,
        max_attempts: int | RetryPolicy | None,
        on_exhausted: ExhaustedCallback = noop,
        *,
        channel: DeliveryChannel,
        publish: Callable[[], Awaitable[None]] | None = None,
        ack: bool = True,
    ) -> RedeliveryDecision:
        """Run exactly one of {requeue, re-publish, on_exhausted}, then dispose once.

        ``max_attempts`` is a threshold or a RetryPolicy; ``None`` selects the
        simple mode driven by the redelivered flag. The ack still runs when
        the action is interrupted by task cancellation, and the
        ``CancelledError`` is re-raised afterwards.

        Returns:
            The decision that was carried out

        Raises:
            RedeliveryPublishFailure: ``publish`` failed (the delivery is still acked)
            DisposalFailure: ack or reject failed
            ExceptionGroup: the action and the ack both failed
            Exception: whatever ``on_exhausted`` raised, after the ack
        """
        if max_attempts is not None:
            max_attempts = _threshold(max_attempts)
        decision = decide(record, max_attempts)
        if decision is RedeliveryDecision.REPUBLISH and publish is None:
            raise ConfigError("Counted retry needs a publish step")

        disposal = DeliveryDisposal(channel, record)
        async with LogContext(delivery_tag=record.delivery_tag):
            if decision is RedeliveryDecision.REQUEUE:
                await disposal.reject(requeue=True)
                logger.info("redelivery.requeued")
                return decision

            failure: BaseException | None = None
            try:
                if decision is RedeliveryDecision.REPUBLISH:
                    await publish()
                    logger.info(
                        "redelivery.republished",
                        attempt_count=record.attempt_count,
                        max_attempts=max_attempts,
                    )
                else:
                    logger.info(
                        "redelivery.exhausted",
                        attempt_count=record.attempt_count,
                        max_attempts=max_attempts,
                        was_redelivered=record.was_redelivered,
                    )
                    await _invoke(on_exhausted)
            except BaseException as exc:
                failure = exc

            if ack:
                try:
                    await disposal.acknowledge(multiple=False)
                except Exception as disposal_error:
                    if failure is not None:
                        raise BaseExceptionGroup(
                            "Redelivery action failed and delivery disposal failed",
                            [failure, disposal_error],
                        ) from None
                    raise

        if failure is not None:
            raise failure
        return decision

    async def simple_retry(
        self,
        channel: DeliveryChannel,
        message: Any,
        ack: bool = True,
        on_exhausted: ExhaustedCallback = noop,
    ) -> RedeliveryDecision:
        """Retry once through broker redelivery, then give up.

        Not yet redelivered: reject with requeue (no ack, no ``on_exhausted``).
        Already redelivered: ``on_exhausted`` once, then ack when ``ack``.
        """
        record = self.record_for(message)
        return await self.resolve_delivery(
            record, None, on_exhausted, channel=channel, ack=ack
        )

    async def retry(
        self,
        client: RedeliveryPublisher,
        channel: DeliveryChannel,
        message: Any,
        dlx: str,
        routing_key: str | None = None,
        max_attempts: int | RetryPolicy | None = None,
        ack: bool = True,
        on_exhausted: ExhaustedCallback = noop,
    ) -> RedeliveryDecision:
        """Re-publish to ``dlx`` until the broker's count reaches ``max_attempts``.

        Args:
            client: Publisher used for the re-publish
            channel: Channel the delivery arrived on
            message: The delivery being retried
            dlx: Delay/dead-letter exchange
            routing_key: Defaults to the message's received routing key
            max_attempts: Threshold, or a RetryPolicy; defaults to the coordinator's
            ack: Acknowledge the original delivery afterwards
            on_exhausted: Runs instead of the re-publish once attempts are used up
        """
        record = self.record_for(message)
        threshold = self.max_attempts if max_attempts is None else _threshold(max_attempts)
        key = record.received_routing_key if routing_key is None else routing_key

        async def publish() -> None:
            await self._republish(client, dlx, key, message, record)

        return await self.resolve_delivery(
            record, threshold, on_exhausted, channel=channel, publish=publish, ack=ack
        )

    async def _republish(
        self,
        client: RedeliveryPublisher,
        destination: str,
        routing_key: str,
        message: Any,
        record: DeliveryRecord,
    ) -> None:
        try:
            await client.publish(destination, routing_key, message)
        except Exception as exc:
            failure = RedeliveryPublishFailure(
                f"Re-publish to {destination!r} failed: {exc}",
                destination=destination,
                routing_key=routing_key,
                cause=exc,
            )
            failure.with_context(delivery_tag=record.delivery_tag, attempt=record.attempt_count)
            logger.error("redelivery.publish_failed", **failure.to_dict())
            raise failure from exc


class MessageRetrier:
    """A RedeliveryCoordinator bound to one delivery.

    Example:
        >>> retrier = MessageRetrier(broker, broker, message, max_attempts=5)
        >>> if retrier.attempt_count == 0:
        ...     log.info("first failure")
        >>> await retrier.retry("retry.delay")
    """

    def __init__(
        self,
        client: RedeliveryPublisher,
        channel: DeliveryChannel,
        message: Any,
        max_attempts: int | RetryPolicy | None = None,
        *,
        metadata: MessageMetadata | None = None,
    ):
        self._client = client
        self._channel = channel
        self._message = message
        self._coordinator = RedeliveryCoordinator(metadata, max_attempts=max_attempts)
        self.record = self._coordinator.record_for(message)

    @property
    def attempt_count(self) -> int:
        return self.record.attempt_count

    @property
    def delivery_tag(self) -> Any:
        return self.record.delivery_tag

    @property
    def redelivered(self) -> bool:
        return self.record.was_redelivered

    @property
    def max_attempts(self) -> int:
        return self._coordinator.max_attempts

    async def simple_retry(
        self, ack: bool = True, on_exhausted: ExhaustedCallback = noop
    ) -> RedeliveryDecision:
        return await self._coordinator.simple_retry(
            self._channel, self._message, ack=ack, on_exhausted=on_exhausted
        )

    async def retry(
        self,
        dlx: str,
        routing_key: str | None = None,
        ack: bool = True,
        on_exhausted: ExhaustedCallback = noop,
    ) -> RedeliveryDecision:
        return await self._coordinator.retry(
            self._client,
            self._channel,
            self._message,
            dlx,
            routing_key,
            ack=ack,
            on_exhausted=on_exhausted,
        )


# ── Module-level helpers (aio_pika metadata) ────────────────────

_default_coordinator = RedeliveryCoordinator()


async def simple_retry(
    channel: DeliveryChannel,
    message: Any,
    ack: bool = True,
    on_exhausted: ExhaustedCallback = noop,
) -> RedeliveryDecision:
    return await _default_coordinator.simple_retry(channel, message, ack, on_exhausted)


async def retry(
    client: RedeliveryPublisher,
    channel: DeliveryChannel,
    message: Any,
    dlx: str,
    routing_key: str | None = None,
    max_attempts: int | RetryPolicy | None = None,
    ack: bool = True,
    on_exhausted: ExhaustedCallback = noop,
) -> RedeliveryDecision:
    return await _default_coordinator.retry(
        client, channel, message, dlx, routing_key, max_attempts, ack, on_exhausted
    )


__all__ = [
    "MessageRetrier",
    "RedeliveryCoordinator",
    "decide",
    "noop",
    "retry",
    "simple_retry",
]
