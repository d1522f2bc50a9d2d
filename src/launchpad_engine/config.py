"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
launchpad engine, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///launchpad.db",
        alias="DATABASE_URL",
        description="PostgreSQL or SQLite (aiosqlite) connection string",
    )
    echo: bool = Field(
        default=False,
        alias="DATABASE_ECHO",
        description="Echo SQL statements for debugging",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings.

    Redis is optional: without it caches and ingestion locks are process-local.
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None or v == "":
            return None
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class JupiterSettings(BaseSettings):
    """Jupiter data API settings (trade feed, assets, holders, prices)."""

    model_config = SettingsConfigDict(env_prefix="JUPITER_", extra="ignore")

    data_api_url: str = Field(
        default="https://datapi.jup.ag",
        alias="JUPITER_DATA_API_URL",
        description="Jupiter data API host",
    )
    requests_per_second: float = Field(
        default=10.0,
        alias="JUPITER_REQUESTS_PER_SECOND",
        gt=0.0,
        le=1000.0,
        description="Client-side request rate limit",
    )
    page_size: int = Field(
        default=100,
        alias="JUPITER_PAGE_SIZE",
        ge=1,
        le=1000,
        description="Trades fetched per subject per ingestion cycle",
    )
    timeout_seconds: float = Field(
        default=10.0,
        alias="JUPITER_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
        description="HTTP timeout per request",
    )

    @field_validator("data_api_url")
    @classmethod
    def validate_data_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("JUPITER_DATA_API_URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class AnthropicSettings(BaseSettings):
    """Anthropic messages API settings for the agentic terminals."""

    model_config = SettingsConfigDict(env_prefix="ANTHROPIC_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="ANTHROPIC_API_KEY",
        description="Anthropic API key; terminals emit fallback content when unset",
    )
    api_url: str = Field(
        default="https://api.anthropic.com/v1/messages",
        alias="ANTHROPIC_API_URL",
        description="Messages endpoint",
    )
    model: str = Field(
        default="claude-sonnet-4-20250514",
        alias="ANTHROPIC_MODEL",
        description="Model used for terminal content",
    )
    max_tokens: int = Field(
        default=2048,
        alias="ANTHROPIC_MAX_TOKENS",
        ge=64,
        le=16_384,
        description="Maximum output tokens per generation",
    )
    web_search: bool = Field(
        default=True,
        alias="ANTHROPIC_WEB_SEARCH",
        description="Allow the web search tool for research-style content types",
    )
    timeout_seconds: float = Field(
        default=120.0,
        alias="ANTHROPIC_TIMEOUT_SECONDS",
        gt=0.0,
        le=600.0,
        description="HTTP timeout per generation request",
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("ANTHROPIC_API_URL must be an HTTP(S) endpoint")
        return v

    @property
    def enabled(self) -> bool:
        """Check if content generation is configured."""
        return self.api_key is not None


class EngineSettings(BaseSettings):
    """Background job cadence and cache lifetimes."""

    model_config = SettingsConfigDict(env_prefix="ENGINE_", extra="ignore")

    ingestion_interval_seconds: int = Field(
        default=30,
        alias="ENGINE_INGESTION_INTERVAL_SECONDS",
        ge=1,
        le=3600,
        description="Trade ingestion cadence",
    )
    market_cap_interval_seconds: int = Field(
        default=300,
        alias="ENGINE_MARKET_CAP_INTERVAL_SECONDS",
        ge=10,
        le=24 * 3600,
        description="Market-cap milestone evaluation cadence",
    )
    leaderboard_interval_seconds: int = Field(
        default=3600,
        alias="ENGINE_LEADERBOARD_INTERVAL_SECONDS",
        ge=60,
        le=7 * 24 * 3600,
        description="Leaderboard rank evaluation cadence",
    )
    migration_interval_seconds: int = Field(
        default=30,
        alias="ENGINE_MIGRATION_INTERVAL_SECONDS",
        ge=5,
        le=3600,
        description="Bonding-curve graduation polling cadence",
    )
    market_data_ttl_seconds: int = Field(
        default=120,
        alias="ENGINE_MARKET_DATA_TTL_SECONDS",
        ge=1,
        le=3600,
        description="TTL for cached market-data enrichment",
    )
    price_ttl_seconds: int = Field(
        default=10,
        alias="ENGINE_PRICE_TTL_SECONDS",
        ge=1,
        le=3600,
        description="TTL for the cached conversion-rate price feed",
    )
    ingestion_lock_ttl_seconds: int = Field(
        default=120,
        alias="ENGINE_INGESTION_LOCK_TTL_SECONDS",
        ge=5,
        le=3600,
        description="Expiry of the cross-process per-subject ingestion lock (Redis only)",
    )


class RewardSettings(BaseSettings):
    """Reward pool split, slot counts and penalties."""

    model_config = SettingsConfigDict(env_prefix="REWARDS_", extra="ignore")

    community_fraction: Decimal = Field(
        default=Decimal("0.70"),
        alias="REWARDS_COMMUNITY_FRACTION",
        ge=0,
        le=1,
        description="Share of platform earnings allocated to the community pool",
    )
    trader_fraction: Decimal = Field(
        default=Decimal("0.25"),
        alias="REWARDS_TRADER_FRACTION",
        ge=0,
        le=1,
        description="Share of the community pool for traders",
    )
    holder_fraction: Decimal = Field(
        default=Decimal("0.40"),
        alias="REWARDS_HOLDER_FRACTION",
        ge=0,
        le=1,
        description="Share of the community pool for holders",
    )
    trader_slots: int = Field(
        default=50,
        alias="REWARDS_TRADER_SLOTS",
        ge=1,
        le=100_000,
        description="Number of rewarded traders",
    )
    holder_slots: int = Field(
        default=100,
        alias="REWARDS_HOLDER_SLOTS",
        ge=1,
        le=100_000,
        description="Number of rewarded holders",
    )
    holder_penalty: Decimal = Field(
        default=Decimal("3"),
        alias="REWARDS_HOLDER_PENALTY",
        ge=0,
        description="Flat deduction from each holder share (quote units)",
    )
    conversion_penalty: Decimal = Field(
        default=Decimal("3"),
        alias="REWARDS_CONVERSION_PENALTY",
        ge=0,
        description="Flat deduction applied before converting to the payout asset",
    )
    earnings_rate: Decimal = Field(
        default=Decimal("0.013"),
        alias="REWARDS_EARNINGS_RATE",
        ge=0,
        le=1,
        description="Platform fee rate applied to all-time USD trade volume",
    )
    fallback_conversion_rate: Decimal = Field(
        default=Decimal("577"),
        alias="REWARDS_FALLBACK_CONVERSION_RATE",
        gt=0,
        description="Payout asset USD price used when the price feed is unavailable",
    )
    payout_mint: str = Field(
        default="A7bdiYdS5GjqGFtxf17ppRHtDKPkkRqbKtR27dxvQXaS",
        alias="REWARDS_PAYOUT_MINT",
        description="Mint of the payout asset priced through the data API",
    )

    @field_validator("trader_fraction", "holder_fraction")
    @classmethod
    def validate_fraction(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("pool fractions must be >= 0")
        return v


class TerminalSettings(BaseSettings):
    """Agentic terminal scheduling and retention."""

    model_config = SettingsConfigDict(env_prefix="TERMINAL_", extra="ignore")

    interval_seconds: float = Field(
        default=90.0,
        alias="TERMINAL_INTERVAL_SECONDS",
        ge=1.0,
        le=24 * 3600,
        description="Seconds between generations per subject",
    )
    history_size: int = Field(
        default=50,
        alias="TERMINAL_HISTORY_SIZE",
        ge=1,
        le=10_000,
        description="Live history cap per subject",
    )
    archive_size: int = Field(
        default=1000,
        alias="TERMINAL_ARCHIVE_SIZE",
        ge=1,
        le=1_000_000,
        description="Archive cap per subject",
    )
    autostart: bool = Field(
        default=False,
        alias="TERMINAL_AUTOSTART",
        description="Start a terminal for every tracked subject at boot",
    )


class QuestSettings(BaseSettings):
    """Achievement catalog and evidence windows."""

    model_config = SettingsConfigDict(env_prefix="QUESTS_", extra="ignore")

    catalog_path: Path | None = Field(
        default=None,
        alias="QUESTS_CATALOG_PATH",
        description="JSON achievement catalog; the built-in catalog is used when unset",
    )
    snipe_window_seconds: int = Field(
        default=30,
        alias="QUESTS_SNIPE_WINDOW_SECONDS",
        ge=1,
        le=24 * 3600,
        description="A buy this soon after subject creation counts as a snipe",
    )
    pioneer_buyer_count: int = Field(
        default=10,
        alias="QUESTS_PIONEER_BUYER_COUNT",
        ge=1,
        le=10_000,
        description="A wallet among the first K unique buyers is a pioneer",
    )
    early_buyer_count: int = Field(
        default=50,
        alias="QUESTS_EARLY_BUYER_COUNT",
        ge=1,
        le=10_000,
        description="Unique buyers credited with early-buy market-cap milestones",
    )
    leaderboard_size: int = Field(
        default=10,
        alias="QUESTS_LEADERBOARD_SIZE",
        ge=1,
        le=10_000,
        description="Wallets ranked by the leaderboard job",
    )

    @field_validator("catalog_path")
    @classmethod
    def validate_catalog_path(cls, v: Path | None) -> Path | None:
        if v is not None and not v.exists():
            raise ValueError(f"QUESTS_CATALOG_PATH does not exist: {v}")
        return v


class GatewaySettings(BaseSettings):
    """WebSocket subscription gateway settings."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_", extra="ignore")

    enabled: bool = Field(
        default=True,
        alias="GATEWAY_ENABLED",
        description="Serve the subscription WebSocket",
    )
    host: str = Field(
        default="0.0.0.0",
        alias="GATEWAY_HOST",
        description="Bind address",
    )
    port: int = Field(
        default=8765,
        alias="GATEWAY_PORT",
        ge=1,
        le=65535,
        description="Bind port",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from launchpad_engine.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Nested configuration groups
    #
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
    jupiter: JupiterSettings = Field(
        default_factory=lambda: JupiterSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    anthropic: AnthropicSettings = Field(
        default_factory=lambda: AnthropicSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    engine: EngineSettings = Field(
        default_factory=lambda: EngineSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    rewards: RewardSettings = Field(
        default_factory=lambda: RewardSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    terminal: TerminalSettings = Field(
        default_factory=lambda: TerminalSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    quests: QuestSettings = Field(
        default_factory=lambda: QuestSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    gateway: GatewaySettings = Field(
        default_factory=lambda: GatewaySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "jupiter": {
                "data_api_url": self.jupiter.data_api_url,
                "page_size": str(self.jupiter.page_size),
            },
            "anthropic": {
                "api_key": "(set)" if self.anthropic.api_key else "(not set)",
                "model": self.anthropic.model,
                "web_search": str(self.anthropic.web_search),
            },
            "engine": {
                "ingestion_interval_seconds": str(self.engine.ingestion_interval_seconds),
                "market_cap_interval_seconds": str(self.engine.market_cap_interval_seconds),
                "leaderboard_interval_seconds": str(self.engine.leaderboard_interval_seconds),
                "migration_interval_seconds": str(self.engine.migration_interval_seconds),
            },
            "rewards": {
                "community_fraction": str(self.rewards.community_fraction),
                "trader_fraction": str(self.rewards.trader_fraction),
                "holder_fraction": str(self.rewards.holder_fraction),
                "trader_slots": str(self.rewards.trader_slots),
                "holder_slots": str(self.rewards.holder_slots),
            },
            "terminal": {
                "interval_seconds": str(self.terminal.interval_seconds),
                "history_size": str(self.terminal.history_size),
                "archive_size": str(self.terminal.archive_size),
            },
            "quests_catalog": str(self.quests.catalog_path) if self.quests.catalog_path else "(built-in)",
            "gateway": f"{self.gateway.host}:{self.gateway.port}" if self.gateway.enabled else "(disabled)",
            "log_level": self.log_level,
        }

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

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
