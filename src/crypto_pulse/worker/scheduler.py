"""Periodic update-trigger publisher.

Lifecycle::

    IDLE → CONNECTED → RUNNING → SHUTTING_DOWN → CLOSED

On start the scheduler connects to the channel (fatal on failure),
publishes one trigger immediately so a freshly deployed consumer gets data
without waiting a full interval, then publishes one trigger per interval.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import StrEnum

from crypto_pulse.channel.base import PubSubChannel
from crypto_pulse.channel.trigger import encode_trigger, make_trigger

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 15 * 60


class SchedulerState(StrEnum):
    IDLE = "idle"
    CONNECTED = "connected"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


_TRANSITIONS: dict[SchedulerState, set[SchedulerState]] = {
    SchedulerState.IDLE: {SchedulerState.CONNECTED, SchedulerState.SHUTTING_DOWN},
    SchedulerState.CONNECTED: {SchedulerState.RUNNING, SchedulerState.SHUTTING_DOWN},
    SchedulerState.RUNNING: {SchedulerState.SHUTTING_DOWN},
    SchedulerState.SHUTTING_DOWN: {SchedulerState.CLOSED},
    SchedulerState.CLOSED: set(),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TriggerScheduler:
    """Publishes update triggers on a fixed interval.

    Parameters
    ----------
    channel : PubSubChannel
        Unconnected channel; the scheduler owns its lifecycle.
    topic : str
        Channel topic to publish on.
    interval_seconds : float
        Seconds between ticks. Default: 900 (15 minutes).
    publish_on_start : bool
        Publish one trigger right after connecting. Default: True.
    clock : Callable[[], datetime]
        Source of trigger timestamps.
    """

    def __init__(
        self,
        channel: PubSubChannel,
        topic: str,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        publish_on_start: bool = True,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self._channel = channel
        self._topic = topic
        self._interval = interval_seconds
        self._publish_on_start = publish_on_start
        self._clock = clock
        self._state = SchedulerState.IDLE
        self._timer: asyncio.Task | None = None
        self.published = 0
        self.failed_publishes = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _transition(self, new: SchedulerState) -> None:
        if new not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Illegal scheduler transition: {self._state} -> {new}"
            )
        logger.debug("Scheduler state %s -> %s", self._state, new)
        self._state = new

    async def start(self) -> None:
        """Connect, prime the consumer, and arm the recurring timer.

        Raises
        ------
        ChannelConnectionError
            If the channel connection cannot be established.
        """
        if self._state != SchedulerState.IDLE:
            raise RuntimeError(f"Scheduler cannot start from state {self._state}")

        await self._channel.connect()
        self._transition(SchedulerState.CONNECTED)

        if self._publish_on_start:
            await self.publish_trigger()

        self._timer = asyncio.create_task(self._tick_loop())
        self._transition(SchedulerState.RUNNING)
        logger.info(
            "Scheduler running: publishing to %s every %.0fs",
            self._topic,
            self._interval,
        )

    async def publish_trigger(self) -> bool:
        """Publish one trigger. Failures are logged and swallowed."""
        trigger = make_trigger(self._clock())
        try:
            await self._channel.publish(self._topic, encode_trigger(trigger))
        except Exception as e:
            self.failed_publishes += 1
            logger.error("Failed to publish update trigger to %s: %s", self._topic, e)
            return False
        self.published += 1
        logger.info(
            "Published update trigger to %s (issued %s)",
            self._topic,
            trigger.issued_at.isoformat(),
        )
        return True

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self._interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            await self.publish_trigger()
            next_at += self._interval
            # Skip ticks missed while a publish was blocked
            now = loop.time()
            while next_at <= now:
                next_at += self._interval

    async def shutdown(self) -> int:
        """Stop the timer and close the channel.

        Returns the process exit status: 0 on a clean close, 1 if closing
        the channel failed.
        """
        if self._state in (SchedulerState.SHUTTING_DOWN, SchedulerState.CLOSED):
            return 0
        self._transition(SchedulerState.SHUTTING_DOWN)
        logger.info("Scheduler shutting down")

        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        status = 0
        try:
            await self._channel.close()
        except Exception as e:
            logger.error("Error closing channel during shutdown: %s", e)
            status = 1

        self._transition(SchedulerState.CLOSED)
        logger.info("Scheduler closed (exit status %d)", status)
        return status

    async def run_forever(self, stop_event: asyncio.Event) -> int:
        """Start, wait for ``stop_event``, then shut down. Returns exit status."""
        await self.start()
        await stop_event.wait()
        return await self.shutdown()
