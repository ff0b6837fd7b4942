"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
launchpad indexer, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_TIMEFRAMES = ("5s", "1m", "5m", "15m", "1h", "4h", "1d")


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string",
    )
    pool_size: int = Field(
        default=5,
        alias="DATABASE_POOL_SIZE",
        ge=1,
        le=100,
        description="Connection pool size shared by all scans",
    )
    max_overflow: int = Field(
        default=10,
        alias="DATABASE_MAX_OVERFLOW",
        ge=0,
        le=100,
        description="Maximum overflow connections above pool_size",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings (realtime pub/sub transport)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class ChainSettings(BaseModel):
    """One indexed chain: ordered RPC endpoints plus the campaign factory."""

    chain_id: int = Field(ge=1)
    rpc_urls: tuple[str, ...] = Field(min_length=1)
    factory_address: str | None = None
    factory_start_block: int = Field(default=0, ge=0)
    max_requests_per_second: float = Field(default=10.0, gt=0)

    @field_validator("rpc_urls", mode="before")
    @classmethod
    def _parse_rpc_urls(cls, v: object) -> tuple[str, ...]:
        if isinstance(v, str):
            return tuple(p.strip() for p in v.split(",") if p.strip())
        if isinstance(v, (list, tuple)):
            return tuple(str(x).strip() for x in v if str(x).strip())
        raise TypeError("rpc_urls must be a list or a comma-separated string")

    @field_validator("rpc_urls")
    @classmethod
    def _validate_rpc_urls(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for url in v:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"RPC URL must be an HTTP(S) endpoint: {url}")
        return v

    @field_validator("factory_address")
    @classmethod
    def _normalize_factory(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if not (v.startswith("0x") and len(v) == 42):
            raise ValueError("factory_address must be a 0x-prefixed 20-byte address")
        return v


class IndexerSettings(BaseSettings):
    """Scan windows, chunking and aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="INDEXER_", extra="ignore")

    log_chunk_size: int = Field(
        default=2000,
        alias="INDEXER_LOG_CHUNK_SIZE",
        ge=1,
        le=1_000_000,
        description="Blocks per eth_getLogs chunk",
    )
    min_log_chunk_size: int = Field(
        default=250,
        alias="INDEXER_MIN_LOG_CHUNK_SIZE",
        ge=1,
        description="Never split a rate-limited range below this span",
    )
    max_split_depth: int = Field(
        default=12,
        alias="INDEXER_MAX_SPLIT_DEPTH",
        ge=0,
        le=32,
        description="Maximum bisection depth for rate-limited ranges",
    )
    lookback_blocks: int = Field(
        default=250_000,
        alias="INDEXER_LOOKBACK_BLOCKS",
        ge=0,
        description="Normal-mode lookback when no cursor or start block is known",
    )
    repair_lookback_blocks: int = Field(
        default=20_000,
        alias="INDEXER_REPAIR_LOOKBACK_BLOCKS",
        ge=0,
        description="Earliest block (relative to head) a repair pass may rewind to",
    )
    repair_rewind_blocks: int = Field(
        default=200,
        alias="INDEXER_REPAIR_REWIND_BLOCKS",
        ge=0,
        description="How far a repair pass rewinds each cursor",
    )
    confirmations: int = Field(
        default=1,
        alias="INDEXER_CONFIRMATIONS",
        ge=0,
        le=10_000,
        description="Blocks to stay behind the chain tip",
    )
    timeframes: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_TIMEFRAMES,
        alias="INDEXER_TIMEFRAMES",
        description="Candle timeframes to maintain (comma-separated)",
    )
    token_decimals: int = Field(default=18, alias="INDEXER_TOKEN_DECIMALS", ge=0, le=36)
    quote_decimals: int = Field(default=18, alias="INDEXER_QUOTE_DECIMALS", ge=0, le=36)
    rolling_volume_window_hours: int = Field(
        default=24,
        alias="INDEXER_ROLLING_VOLUME_WINDOW_HOURS",
        ge=1,
        le=24 * 30,
        description="Trailing window for the rolling volume stat",
    )
    interval_seconds: float = Field(
        default=5.0,
        alias="INDEXER_INTERVAL_SECONDS",
        gt=0,
        description="Delay between scheduled normal passes",
    )
    repair_interval_seconds: float = Field(
        default=86_400.0,
        alias="INDEXER_REPAIR_INTERVAL_SECONDS",
        ge=0,
        description="Delay between scheduled repair passes (0 disables)",
    )

    @field_validator("timeframes", mode="before")
    @classmethod
    def _parse_timeframes(cls, v: object) -> tuple[str, ...]:
        if isinstance(v, str):
            return tuple(p.strip() for p in v.split(",") if p.strip())
        if isinstance(v, (list, tuple)):
            return tuple(str(x) for x in v)
        raise TypeError("Invalid INDEXER_TIMEFRAMES type")

    @field_validator("timeframes")
    @classmethod
    def _validate_timeframes(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        from launchpad_indexer.indexer.candles import timeframe_seconds

        if not v:
            raise ValueError("INDEXER_TIMEFRAMES must not be empty")
        for tf in v:
            timeframe_seconds(tf)
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from launchpad_indexer.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print([c.chain_id for c in settings.chains])
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    indexer: IndexerSettings = Field(
        default_factory=lambda: IndexerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    chains: list[ChainSettings] = Field(
        default_factory=list,
        alias="INDEXER_CHAINS",
        description="JSON list of chain configurations",
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Index without publishing realtime deltas",
    )

    @field_validator("chains")
    @classmethod
    def _unique_chain_ids(cls, v: list[ChainSettings]) -> list[ChainSettings]:
        seen: set[int] = set()
        for chain in v:
            if chain.chain_id in seen:
                raise ValueError(f"Duplicate chain_id in INDEXER_CHAINS: {chain.chain_id}")
            seen.add(chain.chain_id)
        return v

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, object]:
        """Get a summary of settings with secrets redacted."""
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url),
            "chains": [
                {
                    "chain_id": str(chain.chain_id),
                    "rpc_urls": [self._redact_url(u) for u in chain.rpc_urls],
                    "factory_address": chain.factory_address or "(not set)",
                    "factory_start_block": str(chain.factory_start_block),
                }
                for chain in self.chains
            ],
            "indexer": {
                "log_chunk_size": str(self.indexer.log_chunk_size),
                "confirmations": str(self.indexer.confirmations),
                "lookback_blocks": str(self.indexer.lookback_blocks),
                "repair_rewind_blocks": str(self.indexer.repair_rewind_blocks),
                "timeframes": ",".join(self.indexer.timeframes),
            },
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    def validate_requirements(self, *, command: Literal["run", "once", "repair"]) -> None:
        """Validate command-specific requirements.

        Indexing commands refuse to start without at least one chain.
        """
        if not self.chains:
            raise ValueError(f"INDEXER_CHAINS must list at least one chain for `{command}`")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
