"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The core has exactly one external dependency (its local database), so the
settings surface is small: where the data lives, how long to wait on a
locked database, and a few presentation hints the core passes through
without interpreting (currency code, default chart range).
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local database configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_TRACKER_DB_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///expense_tracker.db",
        description="SQLAlchemy database URL"
    )
    busy_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="How long a write waits on a locked database before failing"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement (debugging only)"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject obviously malformed URLs early."""
        if "://" not in v:
            raise ValueError(f"Not a database URL: {v!r}")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level for structured logging"
    )

    # Presentation hints (opaque to the core)
    currency_code: str = Field(
        default="GBP",
        min_length=3,
        max_length=3,
        description="ISO currency code the presentation layer formats with"
    )
    default_series_months: int = Field(
        default=6,
        ge=1,
        le=120,
        description="Default number of months in the spending trend"
    )

    # Audit
    audit_enabled: bool = Field(
        default=True,
        description="Persist audit events alongside the ledger"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return v.upper()

    @field_validator('currency_code')
    @classmethod
    def normalise_currency(cls, v: str) -> str:
        return v.upper()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.storage
        results["storage"] = True
    except Exception as e:
        results["storage"] = False
        results["storage_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
