"""CoinGecko price provider over direct HTTP.

Uses the ``/simple/price`` endpoint via httpx. The endpoint answers with a
mapping of coin id to ``{usd, usd_market_cap, usd_24h_change}`` and silently
omits ids it does not know, which is how a not-found asset shows up.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from aiolimiter import AsyncLimiter

from crypto_pulse.core.config import ProviderConfig
from crypto_pulse.core.exceptions import ProviderUnavailable
from crypto_pulse.core.models import AssetId, PriceQuote

logger = logging.getLogger(__name__)

_SIMPLE_PRICE_PATH = "/simple/price"
_USER_AGENT = "crypto-pulse/0.1"
_API_KEY_HEADER = "x-cg-demo-api-key"


class CoinGeckoAdapter:
    """Transforms a raw ``/simple/price`` response into PriceQuote records."""

    def adapt(self, raw_data: Any) -> dict[AssetId, PriceQuote]:
        """Parse the response body.

        Parameters
        ----------
        raw_data : dict
            Decoded JSON body, keyed by coin id.

        Returns
        -------
        dict[AssetId, PriceQuote]
            Entries for unsupported ids, or with missing/null fields,
            are skipped.
        """
        if not isinstance(raw_data, dict):
            return {}

        quotes: dict[AssetId, PriceQuote] = {}
        for key, entry in raw_data.items():
            try:
                asset_id = AssetId(key)
            except ValueError:
                continue
            if not isinstance(entry, dict):
                continue

            price = entry.get("usd")
            market_cap = entry.get("usd_market_cap")
            change = entry.get("usd_24h_change")
            if any(x is None for x in (price, market_cap, change)):
                logger.warning("Incomplete quote for %s: %s", key, entry)
                continue

            try:
                quotes[asset_id] = PriceQuote(
                    price_usd=float(price),
                    market_cap_usd=float(market_cap),
                    change_24h_pct=float(change),
                )
            except (TypeError, ValueError) as e:
                logger.warning("Invalid quote for %s: %s", key, e)

        return quotes


class CoinGeckoPriceProvider:
    """Fetches current quotes from the CoinGecko ``/simple/price`` endpoint.

    Every call is bounded by an explicit ``httpx.Timeout`` so a hung
    upstream surfaces as ``ProviderUnavailable`` instead of blocking the
    ingestion run. Requests share an ``AsyncLimiter`` token bucket sized to
    ``rate_limit_per_minute``; the public API allows about 30 calls a
    minute.

    Use via ``async with CoinGeckoPriceProvider(...) as p:`` or call
    ``close()`` when done.

    Parameters
    ----------
    config : ProviderConfig
        Base URL, timeout, and optional API key.
    adapter : CoinGeckoAdapter | None
        Custom adapter instance. Uses default if None.
    client : httpx.AsyncClient | None
        Pre-built client (useful for testing). Created from config if None.
    """

    def __init__(
        self,
        config: ProviderConfig,
        adapter: CoinGeckoAdapter | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = config.base_url
        self._adapter = adapter or CoinGeckoAdapter()
        self._limiter = AsyncLimiter(max_rate=config.rate_limit_per_minute, time_period=60.0)
        headers = {"User-Agent": _USER_AGENT, "Accept": "application/json"}
        if config.api_key:
            headers[_API_KEY_HEADER] = config.api_key
        self._client = client or httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(config.timeout_seconds),
        )

    async def __aenter__(self) -> CoinGeckoPriceProvider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    async def fetch_one(self, asset_id: AssetId) -> PriceQuote | None:
        quotes = await self.fetch_many([asset_id])
        return quotes.get(asset_id)

    async def fetch_many(
        self, asset_ids: Sequence[AssetId]
    ) -> dict[AssetId, PriceQuote]:
        if not asset_ids:
            return {}

        raw = await self._fetch_simple_price(asset_ids)
        quotes = self._adapter.adapt(raw)
        # Only return what was asked for
        return {a: quotes[a] for a in asset_ids if a in quotes}

    async def _fetch_simple_price(self, asset_ids: Sequence[AssetId]) -> Any:
        """Perform the HTTP call and return the decoded JSON body."""
        url = f"{self._base_url}{_SIMPLE_PRICE_PATH}"
        params = {
            "ids": ",".join(a.value for a in asset_ids),
            "vs_currencies": "usd",
            "include_market_cap": "true",
            "include_24hr_change": "true",
        }

        try:
            async with self._limiter:
                resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "CoinGecko HTTP error for %s: %s %s",
                params["ids"],
                e.response.status_code,
                e.response.text[:200],
            )
            raise ProviderUnavailable(
                f"HTTP {e.response.status_code} from {url}",
                context={"url": url, "status_code": e.response.status_code},
            ) from e
        except httpx.TimeoutException as e:
            logger.error("CoinGecko request timed out for %s", params["ids"])
            raise ProviderUnavailable(
                f"Request timed out: {url}",
                context={"url": url, "status_code": None},
            ) from e
        except httpx.RequestError as e:
            logger.error("CoinGecko request error for %s: %s", params["ids"], e)
            raise ProviderUnavailable(
                f"Request failed: {e}",
                context={"url": url, "status_code": None},
            ) from e
        except ValueError as e:
            raise ProviderUnavailable(
                f"Unparseable response body from {url}",
                context={"url": url, "status_code": resp.status_code},
            ) from e
