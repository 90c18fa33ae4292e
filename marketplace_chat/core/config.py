"""
Application configuration using 12-factor environment variables.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Marketplace Chat Service")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Identity
    session_secret: Optional[str] = Field(
        default=None,
        description="HMAC-SHA256 secret shared with the identity service for session tokens",
    )

    # Database
    database_url: str = Field(default="sqlite:///./data/marketplace.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Messaging
    message_max_length: int = Field(default=1000, ge=1)
    deleted_listing_title: str = Field(default="Deleted Listing")

    # Live delivery
    channel_reconnect_attempts: int = Field(default=5, ge=1)
    stream_keepalive_seconds: float = Field(default=15.0, gt=0)
    typing_timeout_seconds: float = Field(default=5.0, gt=0)

    @property
    def is_session_secret_configured(self) -> bool:
        """Check if the session token secret is configured."""
        return bool(self.session_secret)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
