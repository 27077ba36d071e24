"""Configuration management for rcsx."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="RCSX_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    # Conversation lifecycle
    expire_after_hours: float = Field(default=24, description="Idle hours before a conversation expires")
    purge_after_hours: float = Field(default=168, description="Idle hours before a conversation is removed")
    purge_interval_minutes: float = Field(default=60, description="Minutes between purge sweeps")
    recent_conversation_limit: int = Field(default=5, description="Conversations shown in status output")

    # Message defaults
    default_participant_id: str = Field(default="+15551234567", description="Placeholder MSISDN for new messages")

    # Event forwarding
    forward_enabled: bool = Field(default=False, description="Forward processed events to endpoints")
    forward_endpoints: list[str] = Field(default_factory=list, description="Subscriber endpoint URLs")
    forward_retries: int = Field(default=3, description="Attempts per endpoint")
    forward_timeout_seconds: float = Field(default=5.0, description="Per-attempt timeout")
    forward_backoff_seconds: float = Field(default=1.0, description="Base delay between attempts")

    # HTTP surface
    host: str = Field(default="127.0.0.1", description="Bind address for the HTTP server")
    port: int = Field(default=3000, description="Bind port for the HTTP server")


def get_settings() -> Settings:
    """Get application settings from the environment and ``.env`` file."""
    return Settings()
