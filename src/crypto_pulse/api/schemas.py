"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Stats --


class StatsResponse(BaseModel):
    """Latest snapshot for one coin, in the public field naming."""

    model_config = ConfigDict(populate_by_name=True)

    price: float
    market_cap: float = Field(alias="marketCap")
    change_24h: float = Field(alias="24hChange")


class DeviationResponse(BaseModel):
    """Population standard deviation of recent prices, 2 decimal places."""

    deviation: float


class SnapshotResponse(BaseModel):
    """A stored snapshot in API response format."""

    coin: str
    price_usd: float
    market_cap_usd: float
    change_24h_pct: float
    observed_at: datetime


# -- Ingestion --


class IngestionResultItem(BaseModel):
    """Outcome for one coin in an ingestion run."""

    coinId: str
    status: str
    error: str | None = None


class StoreStatsResponse(BaseModel):
    """Response for POST /api/stats/store."""

    message: str
    results: list[IngestionResultItem]


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    version: str
    storage_backend: str
    storage_ok: bool
    total_snapshots: int
    assets: list[str]
    consumer_running: bool
