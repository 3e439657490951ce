"""Update-trigger consumer: turns channel messages into ingestion runs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from crypto_pulse.channel.base import PubSubChannel
from crypto_pulse.channel.trigger import decode_trigger
from crypto_pulse.core.exceptions import ChannelConnectionError, MalformedTrigger
from crypto_pulse.core.models import IngestionReport, OutcomeStatus

logger = logging.getLogger(__name__)

IngestFn = Callable[[], Awaitable[IngestionReport]]


class TriggerConsumer:
    """Subscribes to the trigger topic and runs ingestion per valid trigger.

    Malformed messages and triggers of unknown kind are dropped without
    error. At most one ingestion run executes at a time; a trigger that
    arrives mid-run waits for the current run and then starts its own.
    An ``IngestionService`` also serializes runs started outside the
    consumer, such as ``POST /api/stats/store``. Failures inside a run are
    logged and never stop the subscription. Losing the subscription itself
    ends ``run_forever`` with a non-zero status.

    Parameters
    ----------
    channel : PubSubChannel
        Unconnected channel; the consumer owns its lifecycle.
    topic : str
        Channel topic to subscribe to.
    ingest : Callable[[], Awaitable[IngestionReport]]
        The ingestion routine, typically an ``IngestionService``.
    """

    def __init__(self, channel: PubSubChannel, topic: str, ingest: IngestFn) -> None:
        self._channel = channel
        self._topic = topic
        self._ingest = ingest
        self._run_lock = asyncio.Lock()
        self.runs = 0
        self.ignored = 0

    @property
    def busy(self) -> bool:
        return self._run_lock.locked() or getattr(self._ingest, "busy", False) is True

    async def start(self) -> None:
        """Connect and subscribe.

        Raises
        ------
        ChannelConnectionError
            If the subscription cannot be established.
        """
        await self._channel.connect()
        await self._channel.subscribe(self._topic, self.handle_message)
        logger.info("Consumer listening on %s", self._topic)

    async def handle_message(self, payload: bytes | str) -> IngestionReport | None:
        """Process one channel message. Returns the report of the run, if any."""
        try:
            trigger = decode_trigger(payload)
        except MalformedTrigger as e:
            self.ignored += 1
            logger.debug("Ignoring malformed message on %s: %s", self._topic, e)
            return None

        if not trigger.is_update:
            self.ignored += 1
            logger.debug("Ignoring trigger of kind %r", trigger.kind)
            return None

        if self.busy:
            logger.info("Ingestion in progress; trigger will run after it")

        async with self._run_lock:
            logger.info(
                "Received update trigger issued at %s", trigger.issued_at.isoformat()
            )
            try:
                report = await self._ingest()
            except Exception:
                logger.exception("Ingestion run failed")
                return None
            self.runs += 1

        self._log_report(report)
        return report

    async def stop(self) -> None:
        """Unsubscribe and close the channel.

        Raises
        ------
        ChannelConnectionError
            If the channel cannot be closed cleanly.
        """
        await self._channel.unsubscribe(self._topic)
        await self._channel.close()
        logger.info("Consumer stopped")

    async def run_forever(self, stop_event: asyncio.Event) -> int:
        """Start, wait for ``stop_event`` or a lost subscription, then stop.

        Returns exit status: 0 after a requested stop, 1 if the channel
        dropped the subscription or could not be closed cleanly.
        """
        await self.start()
        stopped = asyncio.create_task(stop_event.wait())
        lost = asyncio.create_task(self._channel.wait_disconnected())
        await asyncio.wait({stopped, lost}, return_when=asyncio.FIRST_COMPLETED)

        status = 0
        if lost.done() and not stopped.done():
            logger.error("Subscription to %s lost; shutting down", self._topic)
            status = 1
        for task in (stopped, lost):
            task.cancel()
        await asyncio.gather(stopped, lost, return_exceptions=True)

        try:
            await self.stop()
        except ChannelConnectionError as e:
            logger.error("Error closing channel during shutdown: %s", e)
            return 1
        return status

    @staticmethod
    def _log_report(report: IngestionReport) -> None:
        for outcome in report.outcomes:
            if outcome.status == OutcomeStatus.SUCCESS:
                logger.info("  %s: success", outcome.asset_id)
            else:
                logger.warning("  %s: failure (%s)", outcome.asset_id, outcome.reason)
