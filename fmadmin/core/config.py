"""
Configuration management for fmadmin.

Settings come from environment variables or a local .env file. Each
component config reads its own group of variables.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_flag(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "y")
    return bool(v)


class BackendConfig(BaseSettings):
    """Hosted relational backend (REST endpoint) configuration."""

    url: Optional[str] = Field(default=None, alias="BACKEND_URL")
    api_key: Optional[str] = Field(default=None, alias="BACKEND_API_KEY")
    table: str = Field(default="users", alias="PROFILES_TABLE")
    db_schema: str = Field(default="public", alias="BACKEND_SCHEMA")
    request_timeout: float = Field(default=30.0, alias="REQUEST_TIMEOUT")
    max_attempts: int = Field(default=3, alias="BACKEND_MAX_ATTEMPTS")

    @field_validator("url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v):
        if isinstance(v, str):
            return v.strip().rstrip("/") or None
        return v

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class FeedConfig(BaseSettings):
    """Change feed configuration."""

    poll_interval: float = Field(default=2.0, alias="FEED_POLL_INTERVAL")
    # 0 keeps the listener down after the first failure
    max_reconnect_attempts: int = Field(default=5, alias="FEED_MAX_RECONNECT_ATTEMPTS")
    reconnect_backoff_max: float = Field(default=30.0, alias="FEED_RECONNECT_BACKOFF_MAX")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class SyncConfig(BaseSettings):
    """Optimistic edit behaviour."""

    rollback_on_write_failure: bool = Field(
        default=False, alias="SYNC_ROLLBACK_ON_WRITE_FAILURE"
    )

    @field_validator("rollback_on_write_failure", mode="before")
    @classmethod
    def parse_rollback(cls, v):
        return _parse_flag(v)

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    dry_run: bool = Field(default=False, alias="DRY_RUN")

    # Component configurations
    backend: BackendConfig = Field(default_factory=BackendConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_flag(v)

    @field_validator("dry_run", mode="before")
    @classmethod
    def parse_dry_run(cls, v):
        return _parse_flag(v)

    def model_post_init(self, __context) -> None:
        # Sub-configurations read their own aliases from the environment
        self.backend = BackendConfig()
        self.feed = FeedConfig()
        self.sync = SyncConfig()

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global settings
    settings = None


def validate_required_settings(for_command: str = "sync") -> List[str]:
    """
    Validate that required settings are present for a CLI command.

    Args:
        for_command: "sync" (anything talking to the backend) or "minimal"

    Returns:
        List of missing required settings
    """
    missing = []
    try:
        config = get_settings()

        if for_command == "sync":
            if not config.backend.url:
                missing.append("BACKEND_URL")
            if not config.backend.api_key:
                missing.append("BACKEND_API_KEY")

        elif for_command == "minimal":
            # Minimal validation - just check basic config loads
            pass

    except Exception as e:
        missing.append(f"Configuration error: {e}")

    return missing


def print_configuration_summary():
    """Print a summary of the current configuration for debugging."""
    try:
        config = get_settings()
        print("=== fmadmin Configuration Summary ===")
        print(f"Environment: {config.environment}")
        print(f"Debug Mode: {config.debug}")
        print(f"Dry Run: {config.dry_run}")
        print()
        print(f"Backend URL: {config.backend.url or '✗'}")
        print(f"Backend API Key: {'✓' if config.backend.api_key else '✗'}")
        print(f"Profiles Table: {config.backend.db_schema}.{config.backend.table}")
        print(f"Request Timeout: {config.backend.request_timeout}s")
        print()
        print("Change Feed:")
        print(f"  Poll Interval: {config.feed.poll_interval}s")
        print(f"  Reconnect Attempts: {config.feed.max_reconnect_attempts}")
        print(f"  Rollback On Write Failure: {config.sync.rollback_on_write_failure}")
        print("=" * 37)
    except Exception as e:
        print(f"Error loading configuration: {e}")
