"""
CapacityHub Configuration Management

Uses Pydantic Settings for type-safe configuration from environment variables.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # =========================================================================
    # APPLICATION
    # =========================================================================
    APP_NAME: str = "CapacityHub"
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "info"
    VERSION: str = "0.1.0"

    # =========================================================================
    # CAPACITY RULES
    # =========================================================================
    DEFAULT_WEEKLY_CAPACITY: float = 40.0
    DEFAULT_NON_PROJECT_HOURS: float = 8.0
    MAX_WEEKLY_HOURS: float = 168.0
    # Projected excess above this fraction of effective capacity is an error
    CAPACITY_ERROR_TOLERANCE: float = 0.2

    # =========================================================================
    # OPTIMISTIC SYNC
    # =========================================================================
    SYNC_BATCH_SIZE: int = 10
    SYNC_MAX_ATTEMPTS: int = 3
    SYNC_PERSIST_TIMEOUT_SECONDS: float = 10.0
    SYNC_RETRY_BACKOFF_SECONDS: float = 0.5
    SYNC_RECONCILE_ENABLED: bool = True

    # =========================================================================
    # ALLOCATION STORE (REST API)
    # =========================================================================
    STORE_API_URL: str = "http://localhost:5000"
    STORE_API_TOKEN: str = ""
    STORE_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Singleton instance for easy import
settings = get_settings()
