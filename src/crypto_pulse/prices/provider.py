"""Price provider and adapter protocols — the source-agnostic interface layer.

Architecture
------------
The price system uses an adapter pattern to decouple data sources from
consumers:

    RawSource → PriceAdapter → dict[AssetId, PriceQuote] → PriceProvider → Consumer

- **PriceProvider** is the consumer-facing protocol. The ingestion service
  depends only on this interface.

- **PriceAdapter** transforms the raw response body of a source into
  canonical ``PriceQuote`` records.

Two failure modes are kept apart on purpose:

1. The upstream call could not complete (network error, timeout, HTTP
   error). Providers raise ``ProviderUnavailable``.
2. The upstream answered but has no data for an asset. Providers return
   ``None`` (``fetch_one``) or omit the key (``fetch_many``).

Providers never retry; retry policy belongs to the caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from crypto_pulse.core.models import AssetId, PriceQuote


@runtime_checkable
class PriceAdapter(Protocol):
    """Transforms a raw provider response into PriceQuote records.

    Parameters
    ----------
    raw_data : Any
        The decoded response body from the data source.

    Returns
    -------
    dict[AssetId, PriceQuote]
        Quotes for every supported asset present in the response.
        Unknown ids and incomplete entries are skipped.
    """

    def adapt(self, raw_data: Any) -> dict[AssetId, PriceQuote]: ...


@runtime_checkable
class PriceProvider(Protocol):
    """Consumer-facing interface for fetching current quotes."""

    async def fetch_one(self, asset_id: AssetId) -> PriceQuote | None:
        """Fetch the current quote for one asset.

        Returns None when the upstream has no data for the asset.

        Raises
        ------
        ProviderUnavailable
            If the upstream call cannot complete.
        """
        ...

    async def fetch_many(
        self, asset_ids: Sequence[AssetId]
    ) -> dict[AssetId, PriceQuote]:
        """Fetch quotes for several assets in a single upstream call.

        Returns
        -------
        dict[AssetId, PriceQuote]
            Assets with no data are omitted (not mapped to None).
        """
        ...
