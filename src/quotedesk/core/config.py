"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from quotedesk.core.exceptions import ConfigError
from quotedesk.core.models import StorageBackend


class ProvidersConfig(BaseModel):
    """Upstream market-data provider access."""

    model_config = ConfigDict(frozen=True)

    finnhub_api_key: str | None = None
    finnhub_base_url: str = "https://finnhub.io"
    yahoo_base_url: str = "https://query2.finance.yahoo.com"
    request_timeout: float = 10.0

    @field_validator("finnhub_api_key")
    @classmethod
    def blank_key_is_missing(cls, v: str | None) -> str | None:
        if v is not None and not str(v).strip():
            return None
        return v

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v


class CacheConfig(BaseModel):
    """Price cache staleness policy."""

    model_config = ConfigDict(frozen=True)

    max_age_seconds: int = 15 * 60

    @field_validator("max_age_seconds")
    @classmethod
    def max_age_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_age_seconds must be >= 1")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/quotedesk.db"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5000"]
    )
    # bearer token -> principal id
    tokens: dict[str, str] = Field(default_factory=dict)
    debug_enabled: bool = True

    @field_validator("tokens", mode="before")
    @classmethod
    def tokens_are_strings(cls, v: dict) -> dict:
        if v is None:
            return {}
        return {str(k): str(uid) for k, uid in v.items()}


class QuoteDeskConfig(BaseModel):
    """Root configuration for the quotedesk service."""

    model_config = ConfigDict(frozen=True)

    providers: ProvidersConfig = ProvidersConfig()
    cache: CacheConfig = CacheConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "QUOTEDESK_",
) -> QuoteDeskConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (QUOTEDESK_PROVIDERS__FINNHUB_API_KEY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        QUOTEDESK_CACHE__MAX_AGE_SECONDS=300  ->  cache.max_age_seconds = 300
    """
    try:
        yaml_path = _resolve_config_path(config_path, env_prefix)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return QuoteDeskConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None, env_prefix: str) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_var = f"{env_prefix}CONFIG"
    env_path = os.environ.get(env_var)
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from {env_var} not found: {env_path}",
                context={"field": env_var, "value": env_path},
            )
        return p

    default = Path("quotedesk.yml")
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
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int.
    API keys are never cast so that all-digit keys survive intact.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        if parts == ["config"]:
            continue

        cast_value = value if parts[-1].endswith("api_key") else _auto_cast(value)

        target = result
        for part in parts[:-1]:
            child = target.get(part)
            child = dict(child) if isinstance(child, dict) else {}
            target[part] = child
            target = child
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | bool:
    """Auto-cast flags and integer settings; pydantic coerces the rest."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        return value
