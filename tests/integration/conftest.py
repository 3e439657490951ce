"""Integration test fixtures — real I/O but no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from crypto_pulse.channel.memory import InMemoryBroker, InMemoryChannel
from crypto_pulse.core.config import StorageConfig
from crypto_pulse.core.models import AssetId, PriceQuote
from crypto_pulse.prices.store import SqliteSnapshotStore

from tests.conftest import FakePriceProvider


@pytest.fixture
async def integration_store(tmp_path: Path) -> SqliteSnapshotStore:
    """An initialized file-backed SqliteSnapshotStore."""
    store = SqliteSnapshotStore(StorageConfig(sqlite_path=str(tmp_path / "integration.db")))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def channel_factory(broker):
    """Build channels that share one broker, like two processes on one Redis."""

    def _make() -> InMemoryChannel:
        return InMemoryChannel(broker)

    return _make


@pytest.fixture
def ab_provider() -> FakePriceProvider:
    """Quote for bitcoin only; ethereum is unknown upstream."""
    return FakePriceProvider(
        {AssetId.BITCOIN: PriceQuote(price_usd=100.0, market_cap_usd=1e9, change_24h_pct=0.0)}
    )
