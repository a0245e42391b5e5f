"""Authorization engine configuration via pydantic-settings."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment (prefix ``AUTHZ_``)."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Relational store
    database_url: str = "sqlite:///data/authz.db"
    db_schema: str | None = Field(
        default=None,
        description="Schema owning the tables (e.g. 'sso' on PostgreSQL)"
    )
    db_echo: bool = False

    # Ledger
    grant_retry_attempts: int = 3

    # Optional effective-permission cache
    cache_enabled: bool = False
    cache_ttl_seconds: int = 30
    cache_max_entries: int = 10000

    # Seed data
    admin_role_name: str = "admin"

    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_bounds(self) -> "Settings":
        if self.grant_retry_attempts < 1:
            raise ValueError("grant_retry_attempts must be at least 1")
        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must not be negative")
        if self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be at least 1")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level with a single stream handler."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
