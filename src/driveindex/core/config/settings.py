#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
drive index core. All configuration is centralized here to ensure
consistency across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Nested section objects (``settings.kv``, ``settings.drive`` ...)
- Easy testing with ``reload_settings()`` or direct construction
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KVSettings(BaseSettings):
    """
    KV backend configuration.

    STAGE-KV.0: Backend selection inputs

    The durable (Redis) backend is used only when ``KV_URL`` is set AND the
    runtime allows persistent outbound connections. Anything else selects
    the in-process fallback.
    """

    KV_URL: str | None = Field(default=None, description="Redis connection URL (redis:// or rediss://)")
    KV_PERSISTENT_CONNECTIONS: bool = Field(
        default=True,
        description="False inside runtimes that forbid long-lived sockets",
    )
    KV_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    KV_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    KV_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connect timeout in seconds")
    KV_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    KV_L1_TTL: float = Field(default=10.0, description="L1 read-through TTL for durable reads (seconds)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class DriveSettings(BaseSettings):
    """
    Remote file-storage (Google Drive) and OAuth configuration.

    STAGE-AUTH.0: Credential sources

    When GOOGLE_REFRESH_TOKEN is unset the credentials are read from the KV
    store instead (written there by the setup flow).
    """

    GOOGLE_CLIENT_ID: str | None = Field(default=None, description="OAuth client id")
    GOOGLE_CLIENT_SECRET: str | None = Field(default=None, description="OAuth client secret")
    GOOGLE_REFRESH_TOKEN: str | None = Field(default=None, description="Long-lived refresh token")
    ROOT_FOLDER_ID: str | None = Field(default=None, description="Root folder shown by the index")
    OAUTH_TOKEN_URL: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Token endpoint for the refresh-token grant",
    )
    DRIVE_API_URL: str = Field(default="https://www.googleapis.com/drive/v3", description="Drive API base URL")
    HTTP_TIMEOUT: float = Field(default=30.0, description="Per-request HTTP timeout in seconds")
    FETCH_MAX_RETRIES: int = Field(default=5, description="Attempts per outbound request")
    FETCH_RETRY_BASE_DELAY: float = Field(default=1.0, description="Backoff base delay in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    In-process MemoryCache configuration.

    STAGE-L1: Cache sizing
    """

    CACHE_L1_MAX_SIZE: int = Field(default=1000, description="L1 in-memory cache max entries")
    CACHE_L1_DEFAULT_TTL: float = Field(default=30.0, description="Default entry TTL in seconds")
    CACHE_SWEEP_INTERVAL: float = Field(default=60.0, description="Expired-entry sweep interval in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class AnalyticsSettings(BaseSettings):
    """
    Analytics configuration.

    STAGE-ANALYTICS: Time zone used for day keys and hourly buckets
    """

    ANALYTICS_ENABLED: bool = Field(default=True, description="Record page views and bandwidth")
    ANALYTICS_TIMEZONE: str | None = Field(
        default=None,
        description="IANA zone for day boundaries (server local time when unset)",
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Drive Index API", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from driveindex.core.config.settings import get_settings

        settings = get_settings()
        kv_url = settings.kv.KV_URL
        token_url = settings.drive.OAUTH_TOKEN_URL
    """

    # KV settings
    KV_URL: str | None = Field(default=None, description="Redis connection URL")
    KV_PERSISTENT_CONNECTIONS: bool = Field(default=True, description="Runtime allows persistent sockets")
    KV_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    KV_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    KV_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connect timeout in seconds")
    KV_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    KV_L1_TTL: float = Field(default=10.0, description="L1 read-through TTL for durable reads")

    # Drive / OAuth settings
    GOOGLE_CLIENT_ID: str | None = Field(default=None, description="OAuth client id")
    GOOGLE_CLIENT_SECRET: str | None = Field(default=None, description="OAuth client secret")
    GOOGLE_REFRESH_TOKEN: str | None = Field(default=None, description="Long-lived refresh token")
    ROOT_FOLDER_ID: str | None = Field(default=None, description="Root folder shown by the index")
    OAUTH_TOKEN_URL: str = Field(default="https://oauth2.googleapis.com/token", description="Token endpoint")
    DRIVE_API_URL: str = Field(default="https://www.googleapis.com/drive/v3", description="Drive API base URL")
    HTTP_TIMEOUT: float = Field(default=30.0, description="Per-request HTTP timeout in seconds")
    FETCH_MAX_RETRIES: int = Field(default=5, description="Attempts per outbound request")
    FETCH_RETRY_BASE_DELAY: float = Field(default=1.0, description="Backoff base delay in seconds")

    # Cache settings
    CACHE_L1_MAX_SIZE: int = Field(default=1000, description="L1 in-memory cache max entries")
    CACHE_L1_DEFAULT_TTL: float = Field(default=30.0, description="Default entry TTL in seconds")
    CACHE_SWEEP_INTERVAL: float = Field(default=60.0, description="Sweep interval in seconds")

    # Analytics settings
    ANALYTICS_ENABLED: bool = Field(default=True, description="Record page views and bandwidth")
    ANALYTICS_TIMEZONE: str | None = Field(default=None, description="IANA zone for day boundaries")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Drive Index API", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("CACHE_L1_MAX_SIZE")
    @classmethod
    def validate_cache_size(cls, v):
        """The eviction step needs at least one slot to free."""
        if v < 1:
            raise ValueError("CACHE_L1_MAX_SIZE must be positive")
        return v

    # Nested configuration objects
    @property
    def kv(self) -> KVSettings:
        """Get KV settings."""
        return KVSettings(
            KV_URL=self.KV_URL,
            KV_PERSISTENT_CONNECTIONS=self.KV_PERSISTENT_CONNECTIONS,
            KV_MAX_CONNECTIONS=self.KV_MAX_CONNECTIONS,
            KV_SOCKET_TIMEOUT=self.KV_SOCKET_TIMEOUT,
            KV_SOCKET_CONNECT_TIMEOUT=self.KV_SOCKET_CONNECT_TIMEOUT,
            KV_HEALTH_CHECK_INTERVAL=self.KV_HEALTH_CHECK_INTERVAL,
            KV_L1_TTL=self.KV_L1_TTL,
        )

    @property
    def drive(self) -> DriveSettings:
        """Get Drive / OAuth settings."""
        return DriveSettings(
            GOOGLE_CLIENT_ID=self.GOOGLE_CLIENT_ID,
            GOOGLE_CLIENT_SECRET=self.GOOGLE_CLIENT_SECRET,
            GOOGLE_REFRESH_TOKEN=self.GOOGLE_REFRESH_TOKEN,
            ROOT_FOLDER_ID=self.ROOT_FOLDER_ID,
            OAUTH_TOKEN_URL=self.OAUTH_TOKEN_URL,
            DRIVE_API_URL=self.DRIVE_API_URL,
            HTTP_TIMEOUT=self.HTTP_TIMEOUT,
            FETCH_MAX_RETRIES=self.FETCH_MAX_RETRIES,
            FETCH_RETRY_BASE_DELAY=self.FETCH_RETRY_BASE_DELAY,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            CACHE_L1_MAX_SIZE=self.CACHE_L1_MAX_SIZE,
            CACHE_L1_DEFAULT_TTL=self.CACHE_L1_DEFAULT_TTL,
            CACHE_SWEEP_INTERVAL=self.CACHE_SWEEP_INTERVAL,
        )

    @property
    def analytics(self) -> AnalyticsSettings:
        """Get analytics settings."""
        return AnalyticsSettings(
            ANALYTICS_ENABLED=self.ANALYTICS_ENABLED,
            ANALYTICS_TIMEZONE=self.ANALYTICS_TIMEZONE,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
