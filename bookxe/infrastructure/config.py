"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BOOKXE_",
        extra="ignore",
    )

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Storage
    storage_backend: Literal["memory", "database"] = "memory"
    database_url: str = "postgresql+asyncpg://bookxe:bookxe_dev_password@db:5432/bookxe"

    # Authentication (shared secret with the upstream gateway)
    api_key: str = "dev-api-key-change-in-production"

    # Approval workflow
    expiry_grace_hours: int = 24
    sweep_interval_minutes: int = 30
    sweeper_enabled: bool = True

    # Notifications
    notification_inbox_limit: int = 50

    # Logging
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()
