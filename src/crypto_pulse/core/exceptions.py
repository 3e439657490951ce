"""Custom exception hierarchy for crypto-pulse."""

from typing import Any


class CryptoPulseError(Exception):
    """Base exception for all crypto-pulse errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CryptoPulseError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class ProviderUnavailable(CryptoPulseError):
    """The upstream price API could not be reached or answered with an error.

    Policy: log and mark the asset failed. Do not abort the ingestion run.
    No retry inside the client; the next trigger is the retry.

    Context keys:
        url: str — the URL that was being fetched
        status_code: int | None — HTTP status code if a response arrived
    """


class AssetNotFound(CryptoPulseError):
    """No data exists for the requested asset.

    Raised on query paths (API, CLI) when the store holds no snapshot.
    During ingestion the equivalent upstream condition is recorded as a
    "no data received" failure instead of being raised.

    Context keys:
        asset_id: str — the asset that was looked up
    """


class PersistenceError(CryptoPulseError):
    """Snapshot store operation failed.

    Policy: during ingestion, log and mark the asset failed. At startup
    (store initialization) treat as fatal.

    Context keys:
        operation: str — "insert", "query", "initialize", etc.
        table: str — the table involved
    """


class ChannelConnectionError(CryptoPulseError):
    """Could not connect or subscribe to the pub/sub channel.

    Policy: fatal at startup for both the scheduler and the consumer.

    Context keys:
        backend: str — "redis" or "memory"
        url: str — the channel URL (credentials stripped)
    """


class ChannelPublishError(CryptoPulseError):
    """A single publish on the channel failed.

    Policy: the scheduler logs and swallows it; the next tick publishes again.

    Context keys:
        topic: str — the channel topic
    """


class MalformedTrigger(CryptoPulseError):
    """A channel message could not be decoded as an update trigger.

    Policy: the consumer drops the message silently. Foreign or malformed
    messages on a shared channel are expected.

    Context keys:
        reason: str — why decoding failed
    """
