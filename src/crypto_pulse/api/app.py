"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crypto_pulse.api.deps import AppState
from crypto_pulse.api.routes import router
from crypto_pulse.channel.base import create_channel
from crypto_pulse.core.config import PulseConfig, load_config
from crypto_pulse.core.exceptions import (
    AssetNotFound,
    ConfigError,
    CryptoPulseError,
    PersistenceError,
    ProviderUnavailable,
)
from crypto_pulse.ingestion.service import IngestionService
from crypto_pulse.prices.coingecko import CoinGeckoPriceProvider
from crypto_pulse.prices.provider import PriceProvider
from crypto_pulse.prices.store import create_store
from crypto_pulse.stats.deviation import PriceStatistics
from crypto_pulse.worker.consumer import TriggerConsumer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config: PulseConfig = app.state._pending_config or load_config()
    store = await create_store(config.storage)

    provider: PriceProvider = app.state._pending_provider or CoinGeckoPriceProvider(
        config.provider
    )
    ingestion = IngestionService(provider, store, config.assets)

    consumer = None
    if config.api.run_consumer:
        consumer = TriggerConsumer(
            create_channel(config.channel), config.channel.topic, ingestion
        )
        await consumer.start()

    app.state.app_state = AppState(
        config=config,
        store=store,
        ingestion=ingestion,
        statistics=PriceStatistics(store),
        consumer=consumer,
    )

    yield

    if consumer is not None:
        try:
            await consumer.stop()
        except CryptoPulseError as e:
            logger.error("Error stopping consumer: %s", e)
    if isinstance(provider, CoinGeckoPriceProvider):
        await provider.close()
    await store.close()


def create_app(
    config: PulseConfig | None = None,
    provider: PriceProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    import crypto_pulse

    app = FastAPI(
        title="crypto-pulse API",
        description="Crypto price snapshots and statistics",
        version=crypto_pulse.__version__,
        lifespan=lifespan,
    )

    # Stash dependencies so lifespan can retrieve them
    app.state._pending_config = config
    app.state._pending_provider = provider

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.exception_handler(CryptoPulseError)
    async def pulse_exception_handler(request: Request, exc: CryptoPulseError):
        status_map = {
            ConfigError: 400,
            AssetNotFound: 404,
            ProviderUnavailable: 502,
            PersistenceError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
