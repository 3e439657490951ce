"""Redis pub/sub transport."""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from crypto_pulse.channel.base import MessageHandler
from crypto_pulse.core.exceptions import ChannelConnectionError, ChannelPublishError

logger = logging.getLogger(__name__)


def _redact(url: str) -> str:
    """Strip credentials from a connection URL for logs and error context."""
    parts = urlsplit(url)
    if parts.password is None and parts.username is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


class RedisChannel:
    """PubSubChannel over Redis ``PUBLISH``/``SUBSCRIBE``.

    One client handles publishes; subscriptions share a single ``PubSub``
    connection read by one listener task that dispatches each ``message``
    event to the handler registered for its channel. If that connection
    fails the listener exits and ``wait_disconnected`` returns; the channel
    does not resubscribe on its own.

    Parameters
    ----------
    url : str
        Redis connection URL, e.g. ``redis://localhost:6379/0``.
    client : redis.asyncio.Redis | None
        Pre-built client (useful for testing). Created from url if None.
    """

    def __init__(self, url: str, client: aioredis.Redis | None = None) -> None:
        self._url = url
        self._client = client
        self._pubsub = None
        self._handlers: dict[str, MessageHandler] = {}
        self._listener: asyncio.Task | None = None
        self._disconnected = asyncio.Event()

    async def connect(self) -> None:
        try:
            if self._client is None:
                self._client = aioredis.from_url(self._url)
            await self._client.ping()
        except (RedisError, OSError) as e:
            raise ChannelConnectionError(
                f"Failed to connect to Redis: {e}",
                context={"backend": "redis", "url": _redact(self._url)},
            ) from e
        logger.info("Connected to Redis at %s", _redact(self._url))

    async def publish(self, topic: str, data: bytes) -> None:
        if self._client is None:
            raise ChannelPublishError(
                "Channel is not connected", context={"topic": topic}
            )
        try:
            receivers = await self._client.publish(topic, data)
        except (RedisError, OSError) as e:
            raise ChannelPublishError(
                f"Failed to publish to {topic}: {e}", context={"topic": topic}
            ) from e
        logger.debug("Published %d bytes to %s (%s receivers)", len(data), topic, receivers)

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        if self._client is None:
            raise ChannelConnectionError(
                "Cannot subscribe before connect()",
                context={"backend": "redis", "url": _redact(self._url)},
            )
        try:
            if self._pubsub is None:
                self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            await self._pubsub.subscribe(topic)
        except (RedisError, OSError) as e:
            raise ChannelConnectionError(
                f"Failed to subscribe to {topic}: {e}",
                context={"backend": "redis", "url": _redact(self._url)},
            ) from e

        self._handlers[topic] = handler
        if self._listener is None or self._listener.done():
            self._disconnected.clear()
            self._listener = asyncio.create_task(self._listen())
        logger.info("Subscribed to Redis channel: %s", topic)

    async def unsubscribe(self, topic: str) -> None:
        self._handlers.pop(topic, None)
        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(topic)
            except (RedisError, OSError) as e:
                logger.warning("Failed to unsubscribe from %s: %s", topic, e)

    async def wait_disconnected(self) -> None:
        await self._disconnected.wait()

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        try:
            if self._pubsub is not None:
                await self._pubsub.aclose()
                self._pubsub = None
            if self._client is not None:
                await self._client.aclose()
                self._client = None
        except (RedisError, OSError) as e:
            raise ChannelConnectionError(
                f"Failed to close Redis connection: {e}",
                context={"backend": "redis", "url": _redact(self._url)},
            ) from e
        logger.info("Redis connection closed")

    async def _listen(self) -> None:
        """Dispatch incoming messages one at a time."""
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                channel = message["channel"]
                if isinstance(channel, bytes):
                    channel = channel.decode("utf-8", errors="replace")
                handler = self._handlers.get(channel)
                if handler is None:
                    continue
                data = message["data"]
                if isinstance(data, str):
                    data = data.encode("utf-8")
                try:
                    await handler(data)
                except Exception:
                    logger.exception("Handler for %s raised", channel)
        except (RedisError, OSError) as e:
            logger.error("Redis listener stopped: %s", e)
            self._disconnected.set()
