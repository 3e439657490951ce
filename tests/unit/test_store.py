"""Tests for the SQLite snapshot store."""

from datetime import timedelta

import pytest

from crypto_pulse.core.config import StorageConfig
from crypto_pulse.core.exceptions import PersistenceError
from crypto_pulse.core.models import AssetId
from crypto_pulse.prices.store import SnapshotStore, SqliteSnapshotStore, create_store

from tests.conftest import T0


class TestLifecycle:
    async def test_satisfies_protocol(self, store):
        assert isinstance(store, SnapshotStore)

    async def test_health_check(self, store):
        assert await store.health_check() is True

    async def test_health_check_before_initialize(self):
        s = SqliteSnapshotStore(StorageConfig(sqlite_path=":memory:"))
        assert await s.health_check() is False

    async def test_operations_before_initialize_raise(self, make_snapshot):
        s = SqliteSnapshotStore(StorageConfig(sqlite_path=":memory:"))
        with pytest.raises(PersistenceError, match="not initialized"):
            await s.append(make_snapshot())
        with pytest.raises(PersistenceError):
            await s.latest(AssetId.BITCOIN)

    async def test_create_store_file_backed(self, tmp_path, make_snapshot):
        path = tmp_path / "nested" / "dir" / "pulse.db"
        s = await create_store(StorageConfig(sqlite_path=str(path)))
        try:
            await s.append(make_snapshot())
        finally:
            await s.close()
        assert path.exists()

    async def test_history_survives_reopen(self, tmp_path, make_snapshot):
        config = StorageConfig(sqlite_path=str(tmp_path / "pulse.db"))
        s = await create_store(config)
        await s.append(make_snapshot(price_usd=1.0))
        await s.close()

        s = await create_store(config)
        try:
            assert await s.count() == 1
            assert (await s.latest(AssetId.BITCOIN)).price_usd == 1.0
        finally:
            await s.close()

    async def test_close_is_idempotent(self):
        s = await create_store(StorageConfig(sqlite_path=":memory:"))
        await s.close()
        await s.close()


class TestAppend:
    async def test_round_trip_preserves_fields(self, store, make_snapshot):
        snap = make_snapshot(
            asset_id=AssetId.ETHEREUM,
            price_usd=2512.33,
            market_cap_usd=3.01e11,
            change_24h_pct=-2.75,
        )
        await store.append(snap)
        assert await store.latest(AssetId.ETHEREUM) == snap

    async def test_append_never_overwrites(self, store, make_snapshot):
        snap = make_snapshot()
        await store.append(snap)
        await store.append(snap)
        assert await store.count(AssetId.BITCOIN) == 2


class TestQueries:
    async def test_latest_empty(self, store):
        assert await store.latest(AssetId.BITCOIN) is None

    async def test_latest_picks_newest_observation(self, store, make_snapshot):
        await store.append(make_snapshot(price_usd=2.0, observed_at=T0 + timedelta(minutes=15)))
        await store.append(make_snapshot(price_usd=1.0, observed_at=T0))
        latest = await store.latest(AssetId.BITCOIN)
        assert latest.price_usd == 2.0

    async def test_ties_broken_by_insertion_order(self, store, make_snapshot):
        await store.append(make_snapshot(price_usd=1.0))
        await store.append(make_snapshot(price_usd=2.0))
        assert (await store.latest(AssetId.BITCOIN)).price_usd == 2.0

    async def test_recent_most_recent_first(self, store, make_snapshot):
        for i in range(5):
            await store.append(
                make_snapshot(price_usd=float(i), observed_at=T0 + timedelta(minutes=i))
            )
        recent = await store.recent(AssetId.BITCOIN, 3)
        assert [s.price_usd for s in recent] == [4.0, 3.0, 2.0]

    async def test_recent_fewer_than_limit(self, store, make_snapshot):
        await store.append(make_snapshot())
        assert len(await store.recent(AssetId.BITCOIN, 100)) == 1

    async def test_sub_second_ordering(self, store, make_snapshot):
        await store.append(make_snapshot(price_usd=1.0, observed_at=T0))
        await store.append(
            make_snapshot(price_usd=2.0, observed_at=T0 + timedelta(microseconds=1))
        )
        assert (await store.latest(AssetId.BITCOIN)).price_usd == 2.0

    async def test_assets_do_not_mix(self, store, make_snapshot):
        await store.append(make_snapshot(asset_id=AssetId.BITCOIN, price_usd=1.0))
        await store.append(make_snapshot(asset_id=AssetId.ETHEREUM, price_usd=2.0))
        await store.append(make_snapshot(asset_id=AssetId.ETHEREUM, price_usd=3.0))

        btc = await store.recent(AssetId.BITCOIN, 10)
        eth = await store.recent(AssetId.ETHEREUM, 10)
        assert [s.price_usd for s in btc] == [1.0]
        assert [s.price_usd for s in eth] == [3.0, 2.0]
        assert await store.recent(AssetId.MATIC, 10) == []

    async def test_invalid_limit(self, store):
        with pytest.raises(ValueError, match="limit must be >= 1"):
            await store.recent(AssetId.BITCOIN, 0)

    async def test_unknown_asset(self, store):
        with pytest.raises(ValueError):
            await store.recent("dogecoin", 1)

    async def test_count(self, store, make_snapshot):
        await store.append(make_snapshot(asset_id=AssetId.BITCOIN))
        await store.append(make_snapshot(asset_id=AssetId.MATIC))
        await store.append(make_snapshot(asset_id=AssetId.MATIC))
        assert await store.count() == 3
        assert await store.count(AssetId.MATIC) == 2
        assert await store.count(AssetId.ETHEREUM) == 0

    async def test_timestamps_come_back_utc(self, store, make_snapshot):
        await store.append(make_snapshot())
        latest = await store.latest(AssetId.BITCOIN)
        assert latest.observed_at == T0
        assert latest.observed_at.utcoffset() == timedelta(0)
