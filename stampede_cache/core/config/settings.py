#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the cache
layer. All tunables (Redis connection, TTLs, lock timing, logging) are loaded
from environment variables or a `.env` file.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms

Author: System Architect
Date: 2026-10-19
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis connection configuration.

    STAGE-0.1: Redis connection configuration

    Reconnection is deliberately conservative: the pool never retries on its
    own, and a failed store is re-probed at most once per cooldown window.
    """

    REDIS_HOST: str = Field(default="127.0.0.1", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")

    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Pool health check interval in seconds")
    REDIS_RECONNECT_COOLDOWN: float = Field(
        default=30.0, ge=0, description="Seconds to wait after a failure before probing Redis again"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache TTL and lock configuration.

    STAGE-2: Cache TTL configuration

    Different TTLs for different resource kinds: listings churn faster than
    single entities.
    """

    CACHE_PUBLIC_LIST_TTL: int = Field(default=300, gt=0, description="Public listing TTL (5 minutes)")
    CACHE_SINGLE_ENTITY_TTL: int = Field(default=600, gt=0, description="Single entity TTL (10 minutes)")
    CACHE_PAGINATION_TTL: int = Field(default=180, gt=0, description="Paginated view TTL (3 minutes)")
    CACHE_LOCK_TTL: int = Field(default=30, gt=0, description="Fill lock TTL in seconds")
    CACHE_LOCK_MAX_WAIT_MS: int = Field(default=5000, ge=0, description="Max lock wait in milliseconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
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
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="stampede-cache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from stampede_cache.core.config.settings import get_settings

        settings = get_settings()
        redis_host = settings.redis.REDIS_HOST
        lock_ttl = settings.cache.CACHE_LOCK_TTL
    """

    # Redis settings
    REDIS_HOST: str = Field(default="127.0.0.1", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Pool health check interval in seconds")
    REDIS_RECONNECT_COOLDOWN: float = Field(
        default=30.0, ge=0, description="Seconds to wait after a failure before probing Redis again"
    )

    # Cache settings
    ENABLE_CACHING: bool = Field(default=True, description="Enable the cache layer")
    CACHE_PUBLIC_LIST_TTL: int = Field(default=300, gt=0, description="Public listing TTL (5 minutes)")
    CACHE_SINGLE_ENTITY_TTL: int = Field(default=600, gt=0, description="Single entity TTL (10 minutes)")
    CACHE_PAGINATION_TTL: int = Field(default=180, gt=0, description="Paginated view TTL (3 minutes)")
    CACHE_LOCK_TTL: int = Field(default=30, gt=0, description="Fill lock TTL in seconds")
    CACHE_LOCK_MAX_WAIT_MS: int = Field(default=5000, ge=0, description="Max lock wait in milliseconds")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="stampede-cache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration objects
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_RECONNECT_COOLDOWN=self.REDIS_RECONNECT_COOLDOWN,
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            CACHE_PUBLIC_LIST_TTL=self.CACHE_PUBLIC_LIST_TTL,
            CACHE_SINGLE_ENTITY_TTL=self.CACHE_SINGLE_ENTITY_TTL,
            CACHE_PAGINATION_TTL=self.CACHE_PAGINATION_TTL,
            CACHE_LOCK_TTL=self.CACHE_LOCK_TTL,
            CACHE_LOCK_MAX_WAIT_MS=self.CACHE_LOCK_MAX_WAIT_MS,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (lazy singleton)
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
