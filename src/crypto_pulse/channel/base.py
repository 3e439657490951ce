"""Publish/subscribe capability shared by the scheduler and the consumer.

The concrete transport is chosen by configuration (``channel.backend``),
never by parallel code paths in the workers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from crypto_pulse.core.config import ChannelConfig
from crypto_pulse.core.exceptions import ChannelConnectionError
from crypto_pulse.core.models import ChannelBackend

MessageHandler = Callable[[bytes], Awaitable[None]]


@runtime_checkable
class PubSubChannel(Protocol):
    """Topic-based publish/subscribe transport.

    Delivery is at-least-once from the subscriber's point of view:
    handlers must tolerate duplicate and out-of-order messages.
    """

    async def connect(self) -> None:
        """Establish the connection. Raises ChannelConnectionError."""
        ...

    async def publish(self, topic: str, data: bytes) -> None:
        """Publish one message. Raises ChannelPublishError."""
        ...

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Deliver every message on ``topic`` to ``handler``.

        Raises ChannelConnectionError if the subscription cannot be set up.
        """
        ...

    async def unsubscribe(self, topic: str) -> None: ...

    async def wait_disconnected(self) -> None:
        """Return once subscriptions have stopped receiving for good.

        Never returns while the channel is healthy. A subscriber treats a
        return as fatal and restarts rather than waiting on a dead topic.
        """
        ...

    async def close(self) -> None:
        """Release the connection. Raises ChannelConnectionError on failure."""
        ...


def create_channel(config: ChannelConfig) -> PubSubChannel:
    """Build an unconnected channel for the configured backend."""
    if config.backend == ChannelBackend.REDIS:
        from crypto_pulse.channel.redis_pubsub import RedisChannel

        return RedisChannel(config.url)
    if config.backend == ChannelBackend.MEMORY:
        from crypto_pulse.channel.memory import InMemoryChannel

        return InMemoryChannel()
    raise ChannelConnectionError(
        f"Unsupported channel backend: {config.backend}",
        context={"backend": str(config.backend)},
    )
