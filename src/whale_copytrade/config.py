"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the whale
copy-trade engine, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class RedisSettings(BaseSettings):
    """Redis connection settings (optional state mirror)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; the state mirror is disabled when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class AggregatorSettings(BaseSettings):
    """Trade aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="AGGREGATOR_", extra="ignore")

    min_trade_usd: Decimal = Field(
        default=Decimal("1000"),
        alias="AGGREGATOR_MIN_TRADE_USD",
        description="Trades below this USD value are never recorded",
    )
    reference_price_usd: Decimal = Field(
        default=Decimal("675"),
        alias="AGGREGATOR_REFERENCE_PRICE_USD",
        description="Default USD price of the input asset when the caller supplies none",
    )
    non_wallet_prefixes: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("0x0000",),
        alias="AGGREGATOR_NON_WALLET_PREFIXES",
        description="Comma-separated address prefixes treated as non-wallet senders",
    )

    @field_validator("min_trade_usd", "reference_price_usd")
    @classmethod
    def validate_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("USD amounts must be non-negative")
        return v

    @field_validator("non_wallet_prefixes", mode="before")
    @classmethod
    def _parse_prefixes(cls, v: object) -> tuple[str, ...]:
        if isinstance(v, str):
            return tuple(p.strip().lower() for p in v.split(",") if p.strip())
        if isinstance(v, (list, tuple)):
            return tuple(str(p).strip().lower() for p in v if str(p).strip())
        raise ValueError("AGGREGATOR_NON_WALLET_PREFIXES must be a comma-separated string")


class AdvisorySettings(BaseSettings):
    """Advisory (LLM) recommender settings."""

    model_config = SettingsConfigDict(env_prefix="ADVISORY_", extra="ignore")

    api_key: SecretStr | None = Field(
        default=None,
        alias="OPENROUTER_API_KEY",
        description="OpenRouter API key; the advisory path falls back without it",
    )
    api_url: str = Field(
        default="https://openrouter.ai/api/v1/chat/completions",
        alias="ADVISORY_API_URL",
        description="Chat-completions endpoint",
    )
    model: str = Field(
        default="deepseek/deepseek-r1-0528:free",
        alias="ADVISORY_MODEL",
        description="Model identifier sent with each request",
    )
    temperature: float = Field(
        default=0.3,
        alias="ADVISORY_TEMPERATURE",
        ge=0.0,
        le=1.0,
        description="Sampling temperature (kept low for determinism)",
    )
    max_tokens: int = Field(
        default=1000,
        alias="ADVISORY_MAX_TOKENS",
        ge=1,
        le=32_000,
        description="Maximum completion tokens",
    )
    timeout_seconds: float = Field(
        default=30.0,
        alias="ADVISORY_TIMEOUT_SECONDS",
        gt=0.0,
        le=600.0,
        description="Upper bound on a single advisory call",
    )
    referer: str = Field(
        default="https://whal-e.app",
        alias="ADVISORY_REFERER",
        description="HTTP-Referer header sent to OpenRouter",
    )
    app_title: str = Field(
        default="Whal-E BNB",
        alias="ADVISORY_APP_TITLE",
        description="X-Title header sent to OpenRouter",
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("ADVISORY_API_URL must be an HTTP(S) endpoint")
        return v

    @property
    def enabled(self) -> bool:
        """Check if an advisory credential is configured."""
        return self.api_key is not None and bool(self.api_key.get_secret_value())


class DiscoverySettings(BaseSettings):
    """Periodic whale discovery settings."""

    model_config = SettingsConfigDict(env_prefix="DISCOVERY_", extra="ignore")

    interval_seconds: int = Field(
        default=15 * 60,
        alias="DISCOVERY_INTERVAL_SECONDS",
        ge=5,
        le=24 * 3600,
        description="Interval between event-source refreshes",
    )
    min_win_rate: float = Field(
        default=0.55,
        alias="DISCOVERY_MIN_WIN_RATE",
        ge=0.0,
        le=1.0,
        description="Minimum lifetime win rate for a whale to qualify",
    )
    min_trades: int = Field(
        default=20,
        alias="DISCOVERY_MIN_TRADES",
        ge=0,
        description="Minimum trade count for a whale to qualify",
    )
    min_volume_usd: Decimal = Field(
        default=Decimal("10000"),
        alias="DISCOVERY_MIN_VOLUME_USD",
        description="Minimum total USD volume for a whale to qualify",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from whale_copytrade.config import get_settings

        settings = get_settings()
        print(settings.aggregator.min_trade_usd)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    aggregator: AggregatorSettings = Field(
        default_factory=lambda: AggregatorSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    advisory: AdvisorySettings = Field(
        default_factory=lambda: AdvisorySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    discovery: DiscoverySettings = Field(
        default_factory=lambda: DiscoverySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

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
        """Get a summary of settings with secrets redacted."""
        return {
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "aggregator": {
                "min_trade_usd": str(self.aggregator.min_trade_usd),
                "reference_price_usd": str(self.aggregator.reference_price_usd),
                "non_wallet_prefixes": ",".join(self.aggregator.non_wallet_prefixes),
            },
            "advisory": {
                "api_key": "(set)" if self.advisory.enabled else "(not set)",
                "api_url": self.advisory.api_url,
                "model": self.advisory.model,
                "temperature": str(self.advisory.temperature),
                "max_tokens": str(self.advisory.max_tokens),
                "timeout_seconds": str(self.advisory.timeout_seconds),
            },
            "discovery": {
                "interval_seconds": str(self.discovery.interval_seconds),
                "min_win_rate": str(self.discovery.min_win_rate),
                "min_trades": str(self.discovery.min_trades),
                "min_volume_usd": str(self.discovery.min_volume_usd),
            },
            "log_level": self.log_level,
        }

    def validate_requirements(self, *, command: Literal["aggregate", "advise"]) -> None:
        """Validate command-specific requirements.

        Running the advisory path without a credential is a configuration
        error and is refused up front rather than discovered per request.
        """
        if command == "advise" and not self.advisory.enabled:
            raise ValueError("OPENROUTER_API_KEY is required for advisory recommendations")

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
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
