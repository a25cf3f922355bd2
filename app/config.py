"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Database (column layouts)
    DATABASE_URL: str = "sqlite:///./smarttable.db"

    # Upstream admin API (returns full lists in a {code, msg, data} envelope)
    UPSTREAM_API_URL: str = "http://localhost:8080/api"
    UPSTREAM_TIMEOUT_SECONDS: float = 150.0
    UPSTREAM_TOKEN: Optional[str] = None

    # Column layouts
    COLUMN_STATE_VERSION: int = 1
    COLUMN_PERSIST_PREFIX: str = "table-columns"

    # Export
    EXPORT_WITH_BOM: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Application
    APP_NAME: str = "Activity Admin Tables"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
