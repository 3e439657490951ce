"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# --- Enumerations ---


class AssetId(StrEnum):
    """Supported priced assets, keyed by their upstream provider id."""

    BITCOIN = "bitcoin"
    ETHEREUM = "ethereum"
    MATIC = "matic-network"


class OutcomeStatus(StrEnum):
    """Result of ingesting a single asset."""

    SUCCESS = "success"
    FAILURE = "failure"


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


class ChannelBackend(StrEnum):
    """Supported pub/sub transports."""

    REDIS = "redis"
    MEMORY = "memory"


def parse_asset_id(value: str) -> AssetId:
    """Return the AssetId for ``value`` or raise ValueError.

    Matching is exact after stripping whitespace and lowercasing.
    """
    try:
        return AssetId(value.strip().lower())
    except ValueError:
        supported = ", ".join(a.value for a in AssetId)
        raise ValueError(
            f"Unsupported asset {value!r}; expected one of: {supported}"
        ) from None


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


# --- Price Models ---


class PriceQuote(BaseModel):
    """A single upstream quote for one asset, in USD."""

    model_config = ConfigDict(frozen=True)

    price_usd: float
    market_cap_usd: float
    change_24h_pct: float

    @field_validator("price_usd", "market_cap_usd")
    @classmethod
    def non_negative_finite(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError(f"must be a finite value >= 0, got {v}")
        return v

    @field_validator("change_24h_pct")
    @classmethod
    def change_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"change_24h_pct must be finite, got {v}")
        return v


class PriceSnapshot(BaseModel):
    """One immutable recorded observation of an asset's price.

    Snapshots are append-only: once persisted they are never updated or
    deleted. ``observed_at`` is always stored as timezone-aware UTC.
    """

    model_config = ConfigDict(frozen=True)

    asset_id: AssetId
    price_usd: float
    market_cap_usd: float
    change_24h_pct: float
    observed_at: datetime

    @field_validator("price_usd", "market_cap_usd")
    @classmethod
    def non_negative_finite(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError(f"must be a finite value >= 0, got {v}")
        return v

    @field_validator("change_24h_pct")
    @classmethod
    def change_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"change_24h_pct must be finite, got {v}")
        return v

    @field_validator("observed_at")
    @classmethod
    def observed_at_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @classmethod
    def from_quote(
        cls, asset_id: AssetId, quote: PriceQuote, observed_at: datetime
    ) -> PriceSnapshot:
        return cls(
            asset_id=asset_id,
            price_usd=quote.price_usd,
            market_cap_usd=quote.market_cap_usd,
            change_24h_pct=quote.change_24h_pct,
            observed_at=observed_at,
        )


# --- Trigger Models ---


class UpdateTrigger(BaseModel):
    """Ephemeral pub/sub message asking the consumer to run ingestion."""

    model_config = ConfigDict(frozen=True)

    kind: str = "update"
    issued_at: datetime

    @field_validator("issued_at")
    @classmethod
    def issued_at_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def is_update(self) -> bool:
        return self.kind == "update"


# --- Ingestion Models ---


class AssetOutcome(BaseModel):
    """Outcome of ingesting one asset during a run."""

    model_config = ConfigDict(frozen=True)

    asset_id: AssetId
    status: OutcomeStatus
    reason: str | None = None

    @model_validator(mode="after")
    def reason_matches_status(self) -> AssetOutcome:
        if self.status == OutcomeStatus.FAILURE and not self.reason:
            raise ValueError("a failed outcome must carry a reason")
        if self.status == OutcomeStatus.SUCCESS and self.reason is not None:
            raise ValueError("a successful outcome must not carry a reason")
        return self

    @classmethod
    def success(cls, asset_id: AssetId) -> AssetOutcome:
        return cls(asset_id=asset_id, status=OutcomeStatus.SUCCESS)

    @classmethod
    def failure(cls, asset_id: AssetId, reason: str) -> AssetOutcome:
        return cls(asset_id=asset_id, status=OutcomeStatus.FAILURE, reason=reason)


class IngestionReport(BaseModel):
    """Per-asset outcomes of one ingestion run, in configured order."""

    model_config = ConfigDict(frozen=True)

    outcomes: list[AssetOutcome]
    started_at: datetime
    finished_at: datetime

    @property
    def succeeded(self) -> list[AssetId]:
        return [o.asset_id for o in self.outcomes if o.status == OutcomeStatus.SUCCESS]

    @property
    def failed(self) -> list[AssetId]:
        return [o.asset_id for o in self.outcomes if o.status == OutcomeStatus.FAILURE]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        """Serialize outcomes in the shape returned by the store endpoint."""
        results: list[dict[str, Any]] = []
        for o in self.outcomes:
            entry: dict[str, Any] = {"coinId": o.asset_id.value, "status": o.status.value}
            if o.reason is not None:
                entry["error"] = o.reason
            results.append(entry)
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "results": results,
        }
