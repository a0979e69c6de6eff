"""
Application configuration.

Loads settings from environment variables and the .env file.
Only the composition root and the application factory read these values;
domain services receive them as constructor arguments.
"""

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment.

    Attributes:
        project_name: Display name for the API.
        version: Current API version string.
        debug: Enable debug mode. Must be False in production.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        rate_limit_enabled: Switch for slowapi limits.
        rate_limit_default: Default rate limit for all endpoints.
        rate_limit_heavy: Rate limit for export endpoints.
        database_url: SQLAlchemy URL of the ledger database.
        min_bid_increment: Relative raise a new bid must clear (0.05 = 5%).
        valuation_cache_ttl_seconds: Lifetime of a cached valuation.
        valuation_cache_backend: "sql" shares cached valuations through the
            ledger database; "memory" keeps them in-process.
        valuation_timeout_seconds: Bounded wait for a portfolio's valuations.
        valuation_max_drift: Largest relative move of the market factor.
        market_index_factor: Static market-index factor (1.0 = flat).
        top_holdings_limit: Holdings reported in the portfolio allocation.
        default_currency: Currency code for new listings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FRACART_",
        extra="ignore",
    )

    project_name: str = "FracArt Ledger"
    version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    rate_limit_enabled: bool = True
    rate_limit_default: str = "60/minute"
    rate_limit_heavy: str = "10/minute"

    database_url: str = "sqlite:///./fracart.db"

    min_bid_increment: Decimal = Field(default=Decimal("0.05"), ge=0)
    valuation_cache_ttl_seconds: float = Field(default=300.0, ge=0)
    valuation_cache_backend: Literal["sql", "memory"] = "sql"
    valuation_timeout_seconds: float = Field(default=2.0, gt=0)
    valuation_max_drift: Decimal = Field(default=Decimal("0.30"), ge=0, lt=1)
    market_index_factor: Decimal = Field(default=Decimal("1.0"), gt=0)
    top_holdings_limit: int = Field(default=5, ge=1)
    default_currency: str = "USD"


settings = Settings()
