"""Configuration management for the Disposable Mail client.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the DISPOSABLE_MAIL_ prefix (e.g., DISPOSABLE_MAIL_PROVIDER_BASE_URL).
    """

    model_config = SettingsConfigDict(
        env_prefix="DISPOSABLE_MAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote mailbox provider
    provider_base_url: str = Field(
        default="http://localhost:8080/api",
        description="Endpoint of the disposable mailbox provider (action=generate|inbox)",
    )
    request_timeout: float = Field(
        default=10.0,
        description="Timeout for provider requests in seconds",
    )
    max_retries: int = Field(
        default=0,
        ge=0,
        description=(
            "Extra attempts for a failed provider request. Zero disables retries; "
            "the inbox reconciler itself never retries."
        ),
    )

    # Local store
    db_path: Path = Field(
        default=Path("disposable_mail.sqlite3"),
        description="Path to the SQLite profile database shared by all sessions",
    )
    page_size: int = Field(
        default=20,
        gt=0,
        description="Number of messages per page in the read and unread views",
    )

    # Timers
    refresh_interval: int = Field(
        default=10,
        gt=0,
        description="Seconds between automatic inbox refreshes",
    )
    sync_interval: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between cross-session state broadcasts",
    )
    trigger_poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between checks of the shared sync trigger",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    dark_mode: bool = Field(
        default=False,
        description="Initial dark mode preference, stored with the profile settings",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
