"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    telegram_webhook_secret: str | None = None
    supabase_url: str
    supabase_service_key: str
    storage_bucket: str = "uploads"
    admin_token: str | None = None
    replicate_api_token: str | None = None
    replicate_model: str = "google/nano-banana-pro"
    replicate_model_version: str | None = None
    base_url: str
    retention_days: int = 30
    processed_update_retention_days: int = 7
    download_timeout_seconds: float = 45.0
    max_image_bytes: int = 20 * 1024 * 1024
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def is_production(settings: Settings) -> bool:
    """Return true when running with production safeguards."""
    return settings.environment.strip().lower() == "production"
