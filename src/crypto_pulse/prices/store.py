"""Append-only price snapshot storage: Protocol, SQLite implementation, factory.

Uses aiosqlite for async SQLite access. Rows are never updated or deleted;
every ingestion run adds new history.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from crypto_pulse.core.config import StorageConfig
from crypto_pulse.core.exceptions import PersistenceError
from crypto_pulse.core.models import AssetId, PriceSnapshot, StorageBackend

logger = logging.getLogger(__name__)


@runtime_checkable
class SnapshotStore(Protocol):
    """Protocol for price snapshot persistence backends."""

    async def append(self, snapshot: PriceSnapshot) -> None:
        """Durably persist one snapshot. Raises PersistenceError on failure."""
        ...

    async def latest(self, asset_id: AssetId) -> PriceSnapshot | None:
        """Return the most recent snapshot for the asset, or None."""
        ...

    async def recent(self, asset_id: AssetId, limit: int) -> list[PriceSnapshot]:
        """Return up to ``limit`` snapshots for the asset, most-recent-first."""
        ...

    async def count(self, asset_id: AssetId | None = None) -> int: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteSnapshotStore:
    """SQLite implementation of the snapshot store protocol.

    Uses WAL mode so the query layer can read while ingestion appends,
    and a version-tracked migration system.

    Ordering for ``latest``/``recent`` is ``observed_at`` descending with
    ties broken by insertion order (the autoincrement row id).
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS price_snapshots (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    asset_id TEXT NOT NULL,
                    price_usd REAL NOT NULL,
                    market_cap_usd REAL NOT NULL,
                    change_24h_pct REAL NOT NULL,
                    observed_at TEXT NOT NULL,
                    created_at TEXT DEFAULT (datetime('now'))
                )""",
                "CREATE INDEX IF NOT EXISTS idx_snapshots_asset_observed "
                "ON price_snapshots(asset_id, observed_at)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise PersistenceError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    def _require_db(self, operation: str) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceError(
                "Store is not initialized",
                context={"operation": operation, "table": "price_snapshots"},
            )
        return self._db

    # --- Snapshot Operations ---

    async def append(self, snapshot: PriceSnapshot) -> None:
        db = self._require_db("insert")
        try:
            await db.execute(
                """INSERT INTO price_snapshots
                   (asset_id, price_usd, market_cap_usd, change_24h_pct, observed_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    snapshot.asset_id.value,
                    snapshot.price_usd,
                    snapshot.market_cap_usd,
                    snapshot.change_24h_pct,
                    snapshot.observed_at.isoformat(timespec="microseconds"),
                ),
            )
            await db.commit()
        except Exception as e:
            try:
                await db.rollback()
            except Exception:
                logger.exception("Rollback failed after insert error")
            raise PersistenceError(
                f"Failed to append snapshot: {e}",
                context={
                    "operation": "insert",
                    "table": "price_snapshots",
                    "asset_id": snapshot.asset_id.value,
                },
            ) from e

    async def latest(self, asset_id: AssetId) -> PriceSnapshot | None:
        rows = await self.recent(asset_id, 1)
        return rows[0] if rows else None

    async def recent(self, asset_id: AssetId, limit: int) -> list[PriceSnapshot]:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        asset = AssetId(asset_id)
        db = self._require_db("query")
        try:
            async with db.execute(
                """SELECT * FROM price_snapshots
                   WHERE asset_id = ?
                   ORDER BY observed_at DESC, id DESC
                   LIMIT ?""",
                (asset.value, limit),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_snapshot(r) for r in rows]
        except Exception as e:
            raise PersistenceError(
                f"Failed to query snapshots: {e}",
                context={
                    "operation": "query",
                    "table": "price_snapshots",
                    "asset_id": asset.value,
                },
            ) from e

    async def count(self, asset_id: AssetId | None = None) -> int:
        asset = AssetId(asset_id) if asset_id is not None else None
        db = self._require_db("query")
        try:
            if asset is None:
                query, params = "SELECT COUNT(*) FROM price_snapshots", ()
            else:
                query = "SELECT COUNT(*) FROM price_snapshots WHERE asset_id = ?"
                params = (asset.value,)
            async with db.execute(query, params) as cursor:
                row = await cursor.fetchone()
            return row[0]
        except Exception as e:
            raise PersistenceError(
                f"Failed to count snapshots: {e}",
                context={"operation": "query", "table": "price_snapshots"},
            ) from e

    # --- Row Mapping Helpers ---

    @staticmethod
    def _row_to_snapshot(row: aiosqlite.Row) -> PriceSnapshot:
        return PriceSnapshot(
            asset_id=AssetId(row["asset_id"]),
            price_usd=row["price_usd"],
            market_cap_usd=row["market_cap_usd"],
            change_24h_pct=row["change_24h_pct"],
            observed_at=datetime.fromisoformat(row["observed_at"]),
        )


async def create_store(config: StorageConfig) -> SqliteSnapshotStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackend.SQLITE:
        store = SqliteSnapshotStore(config)
        await store.initialize()
        return store
    raise PersistenceError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
