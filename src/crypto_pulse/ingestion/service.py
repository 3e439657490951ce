"""Fetch-and-persist routine for the configured assets.

The service is a plain awaitable callable with no transport dependencies.
The trigger consumer, the REST API, and the CLI all invoke it the same way.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from crypto_pulse.core.exceptions import PersistenceError, ProviderUnavailable
from crypto_pulse.core.models import (
    AssetId,
    AssetOutcome,
    IngestionReport,
    PriceSnapshot,
)
from crypto_pulse.prices.provider import PriceProvider
from crypto_pulse.prices.store import SnapshotStore

logger = logging.getLogger(__name__)

NO_DATA_REASON = "no data received"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IngestionService:
    """Fetches a quote per asset and appends a snapshot on success.

    Assets are processed sequentially in configured order. A failure for
    one asset (not found, provider unavailable, persistence error) is
    recorded in the report and never aborts the remaining assets. There is
    no retry within a run and no duplicate suppression across runs.

    Runs are serialized: a call made while another run is in progress,
    from the consumer, the API or anywhere else, waits for it to finish
    and then performs its own run.

    Parameters
    ----------
    provider : PriceProvider
        Source of current quotes.
    store : SnapshotStore
        Destination for snapshots.
    assets : Sequence[AssetId]
        The fixed list of assets to ingest, in order.
    clock : Callable[[], datetime]
        Source of ``observed_at`` timestamps. Default: UTC now.
    """

    def __init__(
        self,
        provider: PriceProvider,
        store: SnapshotStore,
        assets: Sequence[AssetId | str],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not assets:
            raise ValueError("assets must not be empty")
        # AssetId() raises ValueError for anything outside the supported set
        self._assets = tuple(AssetId(a) for a in assets)
        self._provider = provider
        self._store = store
        self._clock = clock
        self._run_lock = asyncio.Lock()

    @property
    def assets(self) -> tuple[AssetId, ...]:
        return self._assets

    @property
    def busy(self) -> bool:
        """True while a run holds the store."""
        return self._run_lock.locked()

    async def __call__(self) -> IngestionReport:
        return await self.run_ingestion()

    async def run_ingestion(self) -> IngestionReport:
        """Run one fetch-and-persist pass over all configured assets."""
        if self.busy:
            logger.info("Ingestion in progress; queued run will start after it")
        async with self._run_lock:
            return await self._run()

    async def _run(self) -> IngestionReport:
        started_at = self._clock()
        logger.info(
            "Starting ingestion run for %d assets: %s",
            len(self._assets),
            ", ".join(a.value for a in self._assets),
        )

        outcomes = [await self._ingest_one(asset) for asset in self._assets]

        report = IngestionReport(
            outcomes=outcomes,
            started_at=started_at,
            finished_at=self._clock(),
        )
        logger.info(
            "Ingestion run finished: %d succeeded, %d failed",
            len(report.succeeded),
            len(report.failed),
        )
        return report

    async def _ingest_one(self, asset: AssetId) -> AssetOutcome:
        try:
            quote = await self._provider.fetch_one(asset)
        except ProviderUnavailable as e:
            logger.warning("Provider unavailable for %s: %s", asset, e)
            return AssetOutcome.failure(asset, str(e) or "provider unavailable")

        if quote is None:
            logger.warning("No data received for %s", asset)
            return AssetOutcome.failure(asset, NO_DATA_REASON)

        snapshot = PriceSnapshot.from_quote(asset, quote, self._clock())
        try:
            await self._store.append(snapshot)
        except PersistenceError as e:
            logger.error("Failed to store snapshot for %s: %s", asset, e)
            return AssetOutcome.failure(asset, str(e) or "persistence error")

        logger.info("Stored %s at %.2f USD", asset, snapshot.price_usd)
        return AssetOutcome.success(asset)
