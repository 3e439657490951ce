"""Dispersion statistics over stored price history."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from crypto_pulse.core.models import AssetId, PriceSnapshot
from crypto_pulse.prices.store import SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 100
REPORT_DECIMALS = 2


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation (divides by N, not N-1).

    Empty input yields 0.0 so callers with no history need no special case.
    The result is not rounded; see ``round_for_report``.
    """
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(np.std(arr, ddof=0))


def round_for_report(value: float) -> float:
    """Round a statistic to the precision used in external responses."""
    return round(value, REPORT_DECIMALS)


class PriceStatistics:
    """Query-side statistics for one store.

    Parameters
    ----------
    store : SnapshotStore
        The snapshot history to read from.
    window : int
        Number of most recent snapshots used for dispersion. Default: 100.
    """

    def __init__(self, store: SnapshotStore, window: int = DEFAULT_WINDOW) -> None:
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self._store = store
        self._window = window

    async def latest(self, asset_id: AssetId) -> PriceSnapshot | None:
        return await self._store.latest(asset_id)

    async def deviation(self, asset_id: AssetId) -> float | None:
        """Standard deviation of ``price_usd`` over the recent window.

        Returns None when the store holds no snapshots for the asset.
        """
        snapshots = await self._store.recent(asset_id, self._window)
        if not snapshots:
            return None
        prices = [s.price_usd for s in snapshots]
        result = standard_deviation(prices)
        logger.debug(
            "Deviation for %s over %d snapshots: %f", asset_id, len(prices), result
        )
        return result
