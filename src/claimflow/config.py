"""Configuration management for claimflow."""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class PreferencesBackend(str, Enum):
    """Supported mapping-preference stores."""

    MEMORY = "memory"
    REDIS = "redis"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Environment
    environment: str = "dev"
    log_level: str = "INFO"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Storage
    uploads_path: Path = Path("./uploads")

    # Upload limits
    max_upload_size: int = 100 * 1024 * 1024  # 100MB
    allowed_extensions: tuple[str, ...] = (".csv",)

    # Preview (upload) step
    preview_rows: int = 20
    preview_response_rows: int = 10
    preview_error_limit: int = 20
    preview_max_errors: int = 100

    # Full processing
    detection_sample_rows: int = 100
    process_max_errors: int = 10000
    store_batch_size: int = 1000
    claims_preview_rows: int = 100

    # Streaming processing
    stream_chunk_rows: int = 1000
    stream_max_errors: int = 100

    # Mapping preferences
    preferences_backend: PreferencesBackend = PreferencesBackend.MEMORY
    redis_url: str = "redis://localhost:6379"
    preferences_ttl_days: int = 30

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "dev"

    @property
    def preferences_ttl_seconds(self) -> int:
        """Preference retention in seconds."""
        return self.preferences_ttl_days * 24 * 60 * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
