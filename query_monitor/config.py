"""
Application settings.

Values are read from the environment (or a local ``.env`` file) and exposed
through the module-level ``settings`` singleton.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the query monitor."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    APP_DEBUG: bool = False
    APP_RELOAD: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: str | None = None

    # Coordinator
    COORDINATOR_URL: str = "http://localhost:8080"
    FETCH_TIMEOUT_SECONDS: float = 10.0

    # Dashboard
    POLL_INTERVAL_SECONDS: float = 3.0
    DASHBOARD_IDLE_TTL_SECONDS: float = 300.0
    RATE_HISTORY_CAPACITY: int = 30
    HISTOGRAM_MAX_BUCKETS: int = 175
    FAILURE_MAX_DEPTH: int = 64


settings = Settings()
