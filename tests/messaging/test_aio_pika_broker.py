"""Tests for the aio_pika adapter, with the channel mocked out."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aio_pika import DeliveryMode, Message

from retryguard.messaging.aio_pika_broker import AioPikaBroker, AioPikaMetadata

from tests._support import FakeMessage, dead_lettered


def _channel():
    exchange = MagicMock()
    exchange.publish = AsyncMock()
    default_exchange = MagicMock()
    default_exchange.publish = AsyncMock()
    underlay = MagicMock()
    underlay.basic_ack = AsyncMock()
    underlay.basic_reject = AsyncMock()

    channel = MagicMock()
    channel.default_exchange = default_exchange
    channel.get_exchange = AsyncMock(return_value=exchange)
    channel.get_underlay_channel = AsyncMock(return_value=underlay)
    return channel, exchange, underlay


class TestAioPikaMetadata:
    """Tests for reading delivery metadata."""

    def test_reads_fields(self):
        metadata = AioPikaMetadata()
        message = FakeMessage(delivery_tag=12, redelivered=True, routing_key="invoices")
        assert metadata.delivery_tag(message) == 12
        assert metadata.redelivered(message) is True
        assert metadata.received_routing_key(message) == "invoices"

    def test_x_death_first_entry(self):
        assert AioPikaMetadata().retry_history_count(dead_lettered(4)) == 4

    @pytest.mark.parametrize(
        "headers",
        [{}, {"x-death": []}, {"x-death": ["garbage"]}, {"x-death": [{"reason": "expired"}]}],
    )
    def test_x_death_absent_or_malformed(self, headers):
        assert AioPikaMetadata().retry_history_count(FakeMessage(headers=headers)) == 0

    def test_none_headers(self):
        message = FakeMessage()
        message.headers = None
        assert AioPikaMetadata().retry_history_count(message) == 0


class TestAioPikaBroker:
    """Tests for publish / ack / reject over the channel."""

    @pytest.mark.asyncio
    async def test_publish_keeps_body_and_headers(self):
        channel, exchange, _ = _channel()
        broker = AioPikaBroker(channel)
        message = dead_lettered(1)

        await broker.publish("retry.delay", "orders", message)

        channel.get_exchange.assert_awaited_once_with("retry.delay", ensure=False)
        outgoing = exchange.publish.await_args.args[0]
        assert isinstance(outgoing, Message)
        assert outgoing.body == message.body
        assert outgoing.headers["x-death"][0]["count"] == 1
        assert outgoing.delivery_mode == DeliveryMode.PERSISTENT
        assert exchange.publish.await_args.kwargs["routing_key"] == "orders"

    @pytest.mark.asyncio
    async def test_exchange_lookup_cached(self):
        channel, exchange, _ = _channel()
        broker = AioPikaBroker(channel)
        await broker.publish("retry.delay", "a", FakeMessage())
        await broker.publish("retry.delay", "b", FakeMessage())
        assert channel.get_exchange.await_count == 1
        assert exchange.publish.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_destination_uses_default_exchange(self):
        channel, exchange, _ = _channel()
        await AioPikaBroker(channel).publish("", "orders.retry", FakeMessage())
        channel.default_exchange.publish.assert_awaited_once()
        channel.get_exchange.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_acknowledge(self):
        channel, _, underlay = _channel()
        await AioPikaBroker(channel).acknowledge(5)
        underlay.basic_ack.assert_awaited_once_with(5, multiple=False)

    @pytest.mark.asyncio
    async def test_reject(self):
        channel, _, underlay = _channel()
        await AioPikaBroker(channel).reject(5, requeue=True)
        underlay.basic_reject.assert_awaited_once_with(5, requeue=True)
