"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from crypto_pulse.core.exceptions import ConfigError
from crypto_pulse.core.models import (
    AssetId,
    ChannelBackend,
    StorageBackend,
    parse_asset_id,
)

DEFAULT_ASSETS: tuple[AssetId, ...] = (
    AssetId.BITCOIN,
    AssetId.MATIC,
    AssetId.ETHEREUM,
)


class ProviderConfig(BaseModel):
    """Upstream price API access configuration."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.coingecko.com/api/v3"
    timeout_seconds: float = 10.0
    api_key: str | None = None
    rate_limit_per_minute: int = 30

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("timeout_seconds")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v

    @field_validator("rate_limit_per_minute")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit_per_minute must be >= 1")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/crypto_pulse.db"


class ChannelConfig(BaseModel):
    """Pub/sub transport configuration."""

    model_config = ConfigDict(frozen=True)

    backend: ChannelBackend = ChannelBackend.REDIS
    url: str = "redis://localhost:6379/0"
    topic: str = "crypto.update"

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("topic must not be blank")
        return v.strip()


class SchedulerConfig(BaseModel):
    """Trigger publishing schedule."""

    model_config = ConfigDict(frozen=True)

    interval_seconds: float = 900.0
    publish_on_start: bool = True

    @field_validator("interval_seconds")
    @classmethod
    def interval_at_least_one_second(cls, v: float) -> float:
        if v < 1:
            raise ValueError("interval_seconds must be >= 1")
        return v


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 3000
    run_consumer: bool = False


class PulseConfig(BaseModel):
    """Root configuration for the entire crypto-pulse system."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderConfig = ProviderConfig()
    storage: StorageConfig = StorageConfig()
    channel: ChannelConfig = ChannelConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    api: APIConfig = APIConfig()
    assets: tuple[AssetId, ...] = DEFAULT_ASSETS

    @field_validator("assets", mode="before")
    @classmethod
    def parse_assets(cls, v: object) -> object:
        """Accept a comma-separated string and reject unsupported ids."""
        if isinstance(v, str):
            v = [part for part in v.split(",") if part.strip()]
        if isinstance(v, (list, tuple)):
            return tuple(
                a if isinstance(a, AssetId) else parse_asset_id(str(a)) for a in v
            )
        return v

    @field_validator("assets")
    @classmethod
    def assets_non_empty_unique(cls, v: tuple[AssetId, ...]) -> tuple[AssetId, ...]:
        if not v:
            raise ValueError("assets must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("assets must not contain duplicates")
        return v


def load_config(
    config_path: str | None = None,
    env_prefix: str = "CRYPTO_PULSE_",
) -> PulseConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (CRYPTO_PULSE_CHANNEL__URL, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        CRYPTO_PULSE_SCHEDULER__INTERVAL_SECONDS=60  ->  scheduler.interval_seconds = 60
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return PulseConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("CRYPTO_PULSE_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from CRYPTO_PULSE_CONFIG not found: {env_path}",
                context={"field": "CRYPTO_PULSE_CONFIG", "value": env_path},
            )
        return p

    default = Path("crypto-pulse.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    The top-level ``assets`` key stays a string so it can hold a
    comma-separated list.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = value if parts == ["assets"] else _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
