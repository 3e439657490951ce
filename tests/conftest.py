"""Shared pytest fixtures for crypto-pulse."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from crypto_pulse.core.config import StorageConfig
from crypto_pulse.core.exceptions import ProviderUnavailable
from crypto_pulse.core.models import AssetId, PriceQuote, PriceSnapshot
from crypto_pulse.prices.store import SqliteSnapshotStore

T0 = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


class FakePriceProvider:
    """In-memory PriceProvider.

    ``quotes`` maps asset to a PriceQuote, or to an exception instance that
    ``fetch_one`` raises. Assets absent from the mapping are not found.
    """

    def __init__(self, quotes: dict | None = None) -> None:
        self.quotes = dict(quotes or {})
        self.calls: list[AssetId] = []
        self.closed = False

    async def close(self) -> None:
        self.closed = True

    async def fetch_one(self, asset_id):
        self.calls.append(AssetId(asset_id))
        value = self.quotes.get(AssetId(asset_id))
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_many(self, asset_ids):
        result = {}
        for a in asset_ids:
            q = await self.fetch_one(a)
            if q is not None:
                result[AssetId(a)] = q
        return result


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self._now = start
        self._step = step

    def __call__(self) -> datetime:
        current = self._now
        self._now += self._step
        return current


@pytest.fixture
def sample_quote() -> PriceQuote:
    return PriceQuote(price_usd=42000.5, market_cap_usd=8.2e11, change_24h_pct=1.25)


@pytest.fixture
def make_snapshot():
    """Factory for PriceSnapshot with overridable defaults."""

    def _make(**overrides) -> PriceSnapshot:
        defaults = dict(
            asset_id=AssetId.BITCOIN,
            price_usd=42000.5,
            market_cap_usd=8.2e11,
            change_24h_pct=1.25,
            observed_at=T0,
        )
        defaults.update(overrides)
        return PriceSnapshot(**defaults)

    return _make


@pytest.fixture
async def store():
    """An initialized in-memory SqliteSnapshotStore."""
    s = SqliteSnapshotStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def fake_provider(sample_quote) -> FakePriceProvider:
    """Provider that knows every supported asset."""
    return FakePriceProvider({a: sample_quote for a in AssetId})


@pytest.fixture
def failing_provider() -> FakePriceProvider:
    return FakePriceProvider(
        {a: ProviderUnavailable("HTTP 503 from upstream") for a in AssetId}
    )


@pytest.fixture
def clock() -> StepClock:
    return StepClock()
