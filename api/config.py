"""Settings management for the Commitstream API.

This module provides centralized configuration management using pydantic-settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.ingestion.models import IngestionConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: Name of the application.
        app_version: Application version.
        debug: Enable debug mode.
        log_level: Logging level.
        log_json: Render logs as JSON lines instead of console output.

        host: Interface to bind the server to.
        port: Port to bind the server to.

        cors_origins: Allowed CORS origins.
        api_prefix: API route prefix.

        repos_root: Directory holding one local clone per repository.
        clone_timeout: Timeout in seconds for clone operations.
        stats_timeout: Timeout in seconds for one commit's diff.
        commit_interval_ms: Pause between streamed commit events.
        max_commits: Maximum commit events per session, None for no limit.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="Commitstream API", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, description="Bind port")

    # CORS settings
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # API settings
    api_prefix: str = Field(default="/api/v1", description="API route prefix")

    # Repository storage settings
    repos_root: str = Field(default="repos", description="Local clone directory")
    clone_timeout: int = Field(default=300, description="Clone timeout in seconds")

    # Streaming settings
    stats_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for computing one commit's stats",
    )
    commit_interval_ms: int = Field(
        default=0,
        description="Pause between commit events in milliseconds",
    )
    max_commits: int | None = Field(
        default=None,
        description="Maximum commit events per session",
    )

    def ingestion_config(self) -> IngestionConfig:
        """Build the ingestion session configuration from these settings."""
        return IngestionConfig(
            stats_timeout_s=self.stats_timeout,
            commit_interval_ms=self.commit_interval_ms,
            max_commits=self.max_commits,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are loaded once and reused.

    Returns:
        The application settings instance.
    """
    return Settings()
