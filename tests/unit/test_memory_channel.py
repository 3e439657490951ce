"""Tests for the in-process pub/sub transport."""

import asyncio

import pytest

from crypto_pulse.channel.base import PubSubChannel, create_channel
from crypto_pulse.channel.memory import InMemoryBroker, InMemoryChannel
from crypto_pulse.core.config import ChannelConfig
from crypto_pulse.core.exceptions import ChannelConnectionError, ChannelPublishError
from crypto_pulse.core.models import ChannelBackend


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
async def channel(broker):
    ch = InMemoryChannel(broker)
    await ch.connect()
    yield ch
    await ch.close()


class TestInMemoryChannel:
    async def test_satisfies_protocol(self, channel):
        assert isinstance(channel, PubSubChannel)

    async def test_publish_before_connect(self):
        with pytest.raises(ChannelPublishError, match="not connected"):
            await InMemoryChannel().publish("t", b"x")

    async def test_subscribe_before_connect(self):
        async def handler(data):
            pass

        with pytest.raises(ChannelConnectionError):
            await InMemoryChannel().subscribe("t", handler)

    async def test_delivery_across_channels(self, broker, channel):
        received = []

        async def handler(data):
            received.append(data)

        publisher = InMemoryChannel(broker)
        await publisher.connect()
        await channel.subscribe("crypto.update", handler)

        await publisher.publish("crypto.update", b"one")
        await publisher.publish("crypto.update", b"two")
        await broker.drain()

        assert received == [b"one", b"two"]
        await publisher.close()

    async def test_topics_are_isolated(self, broker, channel):
        received = []

        async def handler(data):
            received.append(data)

        await channel.subscribe("a", handler)
        await channel.publish("b", b"elsewhere")
        await broker.drain()
        assert received == []

    async def test_handler_sees_one_message_at_a_time(self, broker, channel):
        active = 0
        peak = 0

        async def slow_handler(data):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await channel.subscribe("t", slow_handler)
        for _ in range(3):
            await channel.publish("t", b"x")
        await broker.drain()
        assert peak == 1

    async def test_handler_error_does_not_stop_delivery(self, broker, channel):
        received = []

        async def handler(data):
            if data == b"bad":
                raise RuntimeError("boom")
            received.append(data)

        await channel.subscribe("t", handler)
        await channel.publish("t", b"bad")
        await channel.publish("t", b"good")
        await broker.drain()
        assert received == [b"good"]

    async def test_unsubscribe_stops_delivery(self, broker, channel):
        received = []

        async def handler(data):
            received.append(data)

        await channel.subscribe("t", handler)
        await channel.unsubscribe("t")
        await channel.publish("t", b"x")
        await broker.drain()
        assert received == []

    async def test_close_disconnects(self, channel):
        await channel.close()
        assert not channel.connected
        with pytest.raises(ChannelPublishError):
            await channel.publish("t", b"x")

    async def test_never_reports_disconnect(self, channel):
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(channel.wait_disconnected(), timeout=0.02)

    def test_private_broker_by_default(self):
        assert InMemoryChannel().broker is not InMemoryChannel().broker


class TestCreateChannel:
    def test_memory_backend(self):
        ch = create_channel(ChannelConfig(backend=ChannelBackend.MEMORY))
        assert isinstance(ch, InMemoryChannel)

    def test_redis_backend(self):
        from crypto_pulse.channel.redis_pubsub import RedisChannel

        ch = create_channel(ChannelConfig(backend=ChannelBackend.REDIS))
        assert isinstance(ch, RedisChannel)
