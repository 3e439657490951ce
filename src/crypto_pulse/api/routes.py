"""FastAPI route definitions for the crypto-pulse API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

import crypto_pulse
from crypto_pulse.api.deps import (
    AppState,
    get_app_state,
    get_coin,
    get_ingestion,
    get_statistics,
    get_store,
)
from crypto_pulse.api.schemas import (
    DeviationResponse,
    ErrorResponse,
    HealthResponse,
    IngestionResultItem,
    SnapshotResponse,
    StatsResponse,
    StoreStatsResponse,
)
from crypto_pulse.core.exceptions import AssetNotFound
from crypto_pulse.core.models import AssetId
from crypto_pulse.ingestion.service import IngestionService
from crypto_pulse.prices.store import SqliteSnapshotStore
from crypto_pulse.stats.deviation import PriceStatistics, round_for_report

router = APIRouter()

_COIN_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid or missing coin"},
    404: {"model": ErrorResponse, "description": "No stored data for the coin"},
}


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """System health and basic statistics."""
    storage_ok = await state.store.health_check()
    total = await state.store.count() if storage_ok else 0
    return HealthResponse(
        status="ok" if storage_ok else "degraded",
        version=crypto_pulse.__version__,
        storage_backend=str(state.config.storage.backend.value),
        storage_ok=storage_ok,
        total_snapshots=total,
        assets=[a.value for a in state.config.assets],
        consumer_running=state.consumer is not None,
    )


# -- Stats --


@router.get("/stats", response_model=StatsResponse, responses=_COIN_ERRORS)
async def get_stats(
    coin: AssetId = Depends(get_coin),
    statistics: PriceStatistics = Depends(get_statistics),
):
    """Latest price, market cap, and 24h change for a coin."""
    snapshot = await statistics.latest(coin)
    if snapshot is None:
        raise AssetNotFound("Coin data not found", context={"asset_id": coin.value})
    return StatsResponse(
        price=snapshot.price_usd,
        market_cap=snapshot.market_cap_usd,
        change_24h=snapshot.change_24h_pct,
    )


@router.get("/deviation", response_model=DeviationResponse, responses=_COIN_ERRORS)
async def get_deviation(
    coin: AssetId = Depends(get_coin),
    statistics: PriceStatistics = Depends(get_statistics),
):
    """Standard deviation of the coin's price over the latest 100 records."""
    deviation = await statistics.deviation(coin)
    if deviation is None:
        raise AssetNotFound(
            "No price records found for the specified coin",
            context={"asset_id": coin.value},
        )
    return DeviationResponse(deviation=round_for_report(deviation))


@router.get("/history", response_model=list[SnapshotResponse])
async def get_history(
    coin: AssetId = Depends(get_coin),
    limit: int = Query(20, ge=1, le=500),
    store: SqliteSnapshotStore = Depends(get_store),
):
    """Most recent snapshots for a coin, newest first."""
    snapshots = await store.recent(coin, limit)
    return [
        SnapshotResponse(
            coin=s.asset_id.value,
            price_usd=s.price_usd,
            market_cap_usd=s.market_cap_usd,
            change_24h_pct=s.change_24h_pct,
            observed_at=s.observed_at,
        )
        for s in snapshots
    ]


# -- Ingestion --


@router.post("/stats/store", response_model=StoreStatsResponse)
async def store_stats(ingestion: IngestionService = Depends(get_ingestion)):
    """Run one ingestion pass now and report per-coin outcomes."""
    report = await ingestion.run_ingestion()
    return StoreStatsResponse(
        message="Crypto stats stored",
        results=[
            IngestionResultItem(
                coinId=o.asset_id.value,
                status=o.status.value,
                error=o.reason,
            )
            for o in report.outcomes
        ],
    )
