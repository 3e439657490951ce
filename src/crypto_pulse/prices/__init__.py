"""Source-agnostic price ingestion: provider clients and snapshot storage.

Architecture
------------
    Upstream API → PriceAdapter → PriceQuote → PriceProvider → IngestionService
                                                                    ↓
                                                   PriceSnapshot → SnapshotStore

Key abstractions:

- ``PriceProvider``: Consumer-facing async interface for fetching quotes.
- ``PriceAdapter``: Transforms a raw provider response into ``PriceQuote``s.
- ``SnapshotStore``: Append-only persistence for ``PriceSnapshot`` history.

Built-in implementations:

- ``CoinGeckoPriceProvider`` / ``CoinGeckoAdapter``: ``/simple/price`` API.
- ``SqliteSnapshotStore``: SQLite-backed snapshot history.
"""

from crypto_pulse.prices.coingecko import CoinGeckoAdapter, CoinGeckoPriceProvider
from crypto_pulse.prices.provider import PriceAdapter, PriceProvider
from crypto_pulse.prices.store import SnapshotStore, SqliteSnapshotStore, create_store

__all__ = [
    # Protocols
    "PriceAdapter",
    "PriceProvider",
    "SnapshotStore",
    # CoinGecko
    "CoinGeckoAdapter",
    "CoinGeckoPriceProvider",
    # SQLite
    "SqliteSnapshotStore",
    "create_store",
]
