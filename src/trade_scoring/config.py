"""
Unified Configuration Module for the Trade Scoring Engine.

This module provides a single source of truth for all configuration settings using
pydantic-settings for validation and environment variable loading.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from trade_scoring.market.data_provider import FinnhubCandleProvider


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Only the market rating needs a credential, so every field has a default;
    the API key is checked where a provider is built.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Finnhub API (Optional - required only for the market rating)
    FINNHUB_API_KEY: str | None = Field(
        default=None,
        description="Finnhub API token for index candle data",
    )
    FINNHUB_BASE_URL: str = Field(
        default="https://finnhub.io/api/v1",
        description="Finnhub REST API root",
    )

    # Market Rating Basket (first symbol is the primary index)
    MARKET_INDEX_SYMBOLS: List[str] | str = Field(
        default=["SPY", "QQQ", "DIA", "IWM"],
        description="Broad-market index ETFs used for the market rating",
    )
    SMALL_CAP_SYMBOL: str = Field(
        default="IWM",
        description="Basket member treated as the small-cap proxy",
    )
    MARKET_TIMEZONE: str = Field(
        default="America/New_York",
        description="Exchange timezone for session open/closed checks",
    )
    MARKET_HISTORY_DAYS: int = Field(
        default=120,
        description="Calendar days of daily candles fetched per index",
        ge=30,
        le=730,
    )

    # Rating Cache
    RATING_CACHE_KEY: str = Field(
        default="market_rating_v1",
        description="Version key of the cached market rating",
        min_length=1,
    )
    RATING_CACHE_TTL_OPEN_SECONDS: int = Field(
        default=300,
        description="Cache time-to-live while the market is open",
        gt=0,
    )
    RATING_CACHE_TTL_CLOSED_SECONDS: int = Field(
        default=1800,
        description="Cache time-to-live while the market is closed",
        gt=0,
    )
    RATING_CACHE_PATH: Path | None = Field(
        default=None,
        description="JSON file for the rating cache; in-memory when unset",
    )

    # HTTP
    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Per-request timeout for market data calls",
        gt=0.0,
        le=120.0,
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Minimum loguru level (DEBUG, INFO, WARNING, ...)",
    )

    @field_validator("MARKET_INDEX_SYMBOLS", mode="before")
    @classmethod
    def parse_list_from_str(cls, v: Any) -> Any:
        """Parse comma-separated string into list."""
        if isinstance(v, str):
            return [item.strip().upper() for item in v.split(",") if item.strip()]
        return v

    @field_validator("MARKET_INDEX_SYMBOLS", mode="after")
    @classmethod
    def validate_basket(cls, v: List[str]) -> List[str]:
        """Ensure the basket is non-empty."""
        if not v:
            raise ValueError("MARKET_INDEX_SYMBOLS cannot be empty")
        return v

    @field_validator("FINNHUB_API_KEY", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Any) -> Any:
        """Treat an empty API key as unset."""
        if isinstance(v, str) and v.strip() == "":
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.

    Returns:
        Settings: Validated application settings

    Raises:
        pydantic.ValidationError: If an environment variable is invalid
    """
    return Settings()


def get_candle_provider(api_key: str | None = None) -> FinnhubCandleProvider:
    """
    Get a Finnhub candle provider.

    Args:
        api_key: Overrides FINNHUB_API_KEY when given.

    Raises:
        ValueError: If no API key is configured.
    """
    settings = get_settings()
    return FinnhubCandleProvider(
        api_key=api_key or settings.FINNHUB_API_KEY or "",
        base_url=settings.FINNHUB_BASE_URL,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )
