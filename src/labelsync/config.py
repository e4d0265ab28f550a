"""Configuration management using Pydantic Settings."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LABELSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    storage_type: Literal["memory", "local", "s3", "gcs"] = "local"
    storage_local_path: str = "./data"
    storage_s3_bucket: str = "image-labeling"
    storage_s3_endpoint: str | None = None  # For MinIO or localstack
    storage_s3_region: str = "us-east-1"
    storage_s3_access_key: str | None = None
    storage_s3_secret_key: str | None = None
    storage_gcs_bucket: str = "image_labeling"
    storage_gcs_project: str | None = None
    storage_gcs_credentials_file: str | None = None

    # Local snapshot served by /load-analytics when the primary store is down
    fallback_local_path: str | None = None

    # Merge-and-commit loop
    save_max_attempts: int = Field(default=3, ge=1)
    save_backoff_strategy: Literal["linear", "exponential", "constant"] = "linear"
    save_backoff_base_delay: float = 0.1
    save_backoff_max_delay: float = 2.0
    save_timeout_seconds: float | None = 30.0

    # Client coordinator
    client_debounce_seconds: float = 0.5
    client_high_water_mark: int = Field(default=10, ge=1)
    client_flush_timeout_seconds: float | None = 30.0
    client_base_url: str = "http://localhost:3002"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3002
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
