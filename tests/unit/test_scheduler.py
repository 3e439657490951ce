"""Tests for the periodic trigger scheduler."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from crypto_pulse.channel.memory import InMemoryChannel
from crypto_pulse.core.exceptions import ChannelConnectionError, ChannelPublishError
from crypto_pulse.worker.scheduler import (
    DEFAULT_INTERVAL_SECONDS,
    SchedulerState,
    TriggerScheduler,
)

from tests.conftest import T0

TOPIC = "crypto.update"


@pytest.fixture
def channel() -> AsyncMock:
    """A channel mock that records publishes."""
    ch = AsyncMock()
    ch.published = []

    async def publish(topic, data):
        ch.published.append((topic, data))

    ch.publish.side_effect = publish
    return ch


class TestConstruction:
    def test_default_interval_is_fifteen_minutes(self, channel):
        assert DEFAULT_INTERVAL_SECONDS == 900
        assert TriggerScheduler(channel, TOPIC).state == SchedulerState.IDLE

    @pytest.mark.parametrize("interval", [0, -5])
    def test_non_positive_interval_rejected(self, channel, interval):
        with pytest.raises(ValueError, match="interval_seconds must be > 0"):
            TriggerScheduler(channel, TOPIC, interval_seconds=interval)


class TestStart:
    async def test_publishes_immediately(self, channel):
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=3600, clock=lambda: T0)
        await sched.start()
        try:
            assert sched.state == SchedulerState.RUNNING
            channel.connect.assert_awaited_once()
            assert len(channel.published) == 1
            topic, data = channel.published[0]
            assert topic == TOPIC
            assert json.loads(data) == {"trigger": "update", "timestamp": T0.isoformat()}
        finally:
            await sched.shutdown()

    async def test_publish_on_start_disabled(self, channel):
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=3600, publish_on_start=False)
        await sched.start()
        assert channel.published == []
        await sched.shutdown()

    async def test_connect_failure_is_fatal(self, channel):
        channel.connect.side_effect = ChannelConnectionError("refused")
        sched = TriggerScheduler(channel, TOPIC)
        with pytest.raises(ChannelConnectionError):
            await sched.start()
        assert sched.state == SchedulerState.IDLE
        channel.publish.assert_not_called()

    async def test_cannot_start_twice(self, channel):
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=3600)
        await sched.start()
        with pytest.raises(RuntimeError, match="cannot start"):
            await sched.start()
        await sched.shutdown()


class TestTicks:
    async def test_publishes_every_interval(self, channel):
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=0.02)
        await sched.start()
        await asyncio.sleep(0.11)
        await sched.shutdown()
        # One on start plus several ticks
        assert len(channel.published) >= 3
        assert sched.published == len(channel.published)

    async def test_publish_failure_is_swallowed(self, channel):
        channel.publish.side_effect = ChannelPublishError("gone", context={"topic": TOPIC})
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=0.02)
        await sched.start()
        await asyncio.sleep(0.07)
        assert sched.state == SchedulerState.RUNNING
        assert sched.failed_publishes >= 2
        assert sched.published == 0
        assert await sched.shutdown() == 0

    async def test_publish_trigger_returns_status(self, channel):
        sched = TriggerScheduler(channel, TOPIC)
        assert await sched.publish_trigger() is True
        channel.publish.side_effect = RuntimeError("boom")
        assert await sched.publish_trigger() is False

    async def test_works_with_memory_channel(self):
        channel = InMemoryChannel()
        received = []

        async def handler(data):
            received.append(data)

        sched = TriggerScheduler(channel, TOPIC, interval_seconds=3600)
        await sched.start()
        await channel.subscribe(TOPIC, handler)
        await sched.publish_trigger()
        await channel.broker.drain()
        await sched.shutdown()
        assert len(received) == 1


class TestShutdown:
    async def test_clean_shutdown(self, channel):
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=0.01)
        await sched.start()
        assert await sched.shutdown() == 0
        assert sched.state == SchedulerState.CLOSED
        channel.close.assert_awaited_once()

        count = len(channel.published)
        await asyncio.sleep(0.05)
        assert len(channel.published) == count

    async def test_close_failure_exits_nonzero(self, channel):
        channel.close.side_effect = ChannelConnectionError("close failed")
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=3600)
        await sched.start()
        assert await sched.shutdown() == 1
        assert sched.state == SchedulerState.CLOSED

    async def test_shutdown_is_idempotent(self, channel):
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=3600)
        await sched.start()
        assert await sched.shutdown() == 0
        assert await sched.shutdown() == 0
        channel.close.assert_awaited_once()

    async def test_shutdown_from_idle(self, channel):
        sched = TriggerScheduler(channel, TOPIC)
        assert await sched.shutdown() == 0
        assert sched.state == SchedulerState.CLOSED

    async def test_run_forever(self, channel):
        sched = TriggerScheduler(channel, TOPIC, interval_seconds=3600)
        stop = asyncio.Event()
        task = asyncio.create_task(sched.run_forever(stop))
        await asyncio.sleep(0.01)
        assert sched.state == SchedulerState.RUNNING
        stop.set()
        assert await task == 0
        assert sched.state == SchedulerState.CLOSED
