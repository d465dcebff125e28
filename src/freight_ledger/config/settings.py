"""Configuration settings for the freight ledger engine."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Flat settings read from environment variables or a `.env` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Business rules
    commission_rate: Decimal = Field(
        default=Decimal("6"), validation_alias="COMMISSION_RATE"
    )
    balance_tolerance: Decimal = Field(
        default=Decimal("0.01"), validation_alias="BALANCE_TOLERANCE"
    )

    # Formatting
    currency_prefix: str = Field(default="Rs.", validation_alias="CURRENCY_PREFIX")
    date_format: str = Field(default="%d/%m/%Y", validation_alias="DATE_FORMAT")

    # Transport backend (Express CRUD API)
    transport_api_url: str = Field(
        default="http://localhost:3001", validation_alias="TRANSPORT_API_URL"
    )
    transport_api_timeout: float = Field(
        default=30.0, validation_alias="TRANSPORT_API_TIMEOUT"
    )
    transport_api_max_retries: int = Field(
        default=3, validation_alias="TRANSPORT_API_MAX_RETRIES"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> LedgerSettings:
    """Get cached settings instance."""
    return LedgerSettings()
