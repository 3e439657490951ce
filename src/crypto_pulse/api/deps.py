"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Query, Request

from crypto_pulse.core.config import PulseConfig
from crypto_pulse.core.models import AssetId, parse_asset_id
from crypto_pulse.ingestion.service import IngestionService
from crypto_pulse.prices.store import SqliteSnapshotStore
from crypto_pulse.stats.deviation import PriceStatistics
from crypto_pulse.worker.consumer import TriggerConsumer


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: PulseConfig
    store: SqliteSnapshotStore
    ingestion: IngestionService
    statistics: PriceStatistics
    consumer: TriggerConsumer | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_store(request: Request) -> SqliteSnapshotStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_ingestion(request: Request) -> IngestionService:
    return request.app.state.app_state.ingestion


def get_statistics(request: Request) -> PriceStatistics:
    return request.app.state.app_state.statistics


def get_coin(coin: str | None = Query(None, description="Asset id, e.g. 'bitcoin'")) -> AssetId:
    """Dependency: validate the ``coin`` query parameter against supported assets."""
    if not coin:
        raise HTTPException(status_code=400, detail="Invalid or missing 'coin' parameter")
    try:
        return parse_asset_id(coin)
    except ValueError:
        raise HTTPException(
            status_code=400, detail="Invalid or missing 'coin' parameter"
        ) from None
