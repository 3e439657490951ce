"""crypto_pulse.core — Foundation types, config, and exceptions."""

from crypto_pulse.core.config import (
    APIConfig,
    ChannelConfig,
    ProviderConfig,
    PulseConfig,
    SchedulerConfig,
    StorageConfig,
    load_config,
)
from crypto_pulse.core.exceptions import (
    AssetNotFound,
    ChannelConnectionError,
    ChannelPublishError,
    ConfigError,
    CryptoPulseError,
    MalformedTrigger,
    PersistenceError,
    ProviderUnavailable,
)
from crypto_pulse.core.models import (
    AssetId,
    AssetOutcome,
    ChannelBackend,
    IngestionReport,
    OutcomeStatus,
    PriceQuote,
    PriceSnapshot,
    StorageBackend,
    UpdateTrigger,
    parse_asset_id,
)

__all__ = [
    # Enums
    "AssetId",
    "OutcomeStatus",
    "StorageBackend",
    "ChannelBackend",
    "parse_asset_id",
    # Price models
    "PriceQuote",
    "PriceSnapshot",
    # Trigger / ingestion models
    "UpdateTrigger",
    "AssetOutcome",
    "IngestionReport",
    # Config
    "PulseConfig",
    "ProviderConfig",
    "StorageConfig",
    "ChannelConfig",
    "SchedulerConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "CryptoPulseError",
    "ConfigError",
    "ProviderUnavailable",
    "AssetNotFound",
    "PersistenceError",
    "ChannelConnectionError",
    "ChannelPublishError",
    "MalformedTrigger",
]
