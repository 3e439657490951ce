"""In-process pub/sub transport for local runs and tests."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from crypto_pulse.channel.base import MessageHandler
from crypto_pulse.core.exceptions import ChannelConnectionError, ChannelPublishError

logger = logging.getLogger(__name__)


@dataclass
class _Subscription:
    """One subscribed handler with its own delivery queue and worker."""

    topic: str
    handler: MessageHandler
    queue: asyncio.Queue[bytes] = field(default_factory=asyncio.Queue)
    worker: asyncio.Task | None = None


class InMemoryBroker:
    """Fan-out message broker shared by InMemoryChannel instances.

    Each subscription is served by a single worker task, so a handler
    never sees two messages concurrently.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = {}

    def add(self, subscription: _Subscription) -> None:
        self._subscriptions.setdefault(subscription.topic, []).append(subscription)
        subscription.worker = asyncio.create_task(self._deliver(subscription))

    async def remove(self, subscription: _Subscription) -> None:
        subs = self._subscriptions.get(subscription.topic, [])
        if subscription in subs:
            subs.remove(subscription)
        if subscription.worker is not None:
            subscription.worker.cancel()
            try:
                await subscription.worker
            except asyncio.CancelledError:
                pass

    def publish(self, topic: str, data: bytes) -> int:
        """Queue ``data`` for every subscriber of ``topic``. Returns receiver count."""
        subs = self._subscriptions.get(topic, [])
        for sub in subs:
            sub.queue.put_nowait(data)
        return len(subs)

    async def drain(self) -> None:
        """Wait until every queued message has been handled."""
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                await sub.queue.join()

    async def _deliver(self, sub: _Subscription) -> None:
        while True:
            data = await sub.queue.get()
            try:
                await sub.handler(data)
            except Exception:
                logger.exception("Handler for %s raised", sub.topic)
            finally:
                sub.queue.task_done()


class InMemoryChannel:
    """PubSubChannel backed by an InMemoryBroker.

    Channels built with the same broker see each other's messages. A
    channel without an explicit broker gets a private one.
    """

    def __init__(self, broker: InMemoryBroker | None = None) -> None:
        self._broker = broker or InMemoryBroker()
        self._connected = False
        self._subscriptions: dict[str, _Subscription] = {}

    @property
    def broker(self) -> InMemoryBroker:
        return self._broker

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def publish(self, topic: str, data: bytes) -> None:
        if not self._connected:
            raise ChannelPublishError(
                "Channel is not connected", context={"topic": topic}
            )
        receivers = self._broker.publish(topic, data)
        logger.debug("Published %d bytes to %s (%d receivers)", len(data), topic, receivers)

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        if not self._connected:
            raise ChannelConnectionError(
                "Cannot subscribe on a closed channel",
                context={"backend": "memory", "topic": topic},
            )
        if topic in self._subscriptions:
            await self.unsubscribe(topic)
        sub = _Subscription(topic=topic, handler=handler)
        self._broker.add(sub)
        self._subscriptions[topic] = sub

    async def unsubscribe(self, topic: str) -> None:
        sub = self._subscriptions.pop(topic, None)
        if sub is not None:
            await self._broker.remove(sub)

    async def wait_disconnected(self) -> None:
        # The in-process broker never drops a subscription
        await asyncio.Event().wait()

    async def close(self) -> None:
        for topic in list(self._subscriptions):
            await self.unsubscribe(topic)
        self._connected = False
