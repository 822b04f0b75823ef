"""
Photobase - Configuration and settings.

Settings are read from the environment (and an optional .env file).
The SQL endpoint fields are required; everything else has a default.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    The backing store is reached through an HTTP SQL execution endpoint.
    Supabase is only used for asset storage and bearer-token identity lookup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    photobase_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # SQL channel
    sql_endpoint: str
    sql_database: str
    sql_api_key: str | None = None
    sql_timeout_seconds: float = 12.0
    sql_retries: int = 2  # Retries after the first attempt
    sql_retry_backoff_seconds: float = 0.3

    # Supabase (storage + auth)
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    storage_bucket: str = "photos"

    # Scheduled maintenance
    cron_secret: str | None = None

    # Business rules
    booking_max_advance_days: int = 60
    photo_view_retention_days: int = 90
    album_default_ttl_days: int = 7

    @property
    def is_development(self) -> bool:
        return self.photobase_env == "development"

    @property
    def is_production(self) -> bool:
        return self.photobase_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
