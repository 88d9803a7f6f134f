"""
Settings Module for Depwatch

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Each section reads its own environment prefix.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict
from enum import Enum

from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import Defaults, Limits


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Supports PostgreSQL (production) and SQLite (development).
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )

    # PostgreSQL settings
    host: str = Field(default="localhost", description="Database host address")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port number")
    name: str = Field(
        default="depwatch",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(default="postgres", min_length=1, max_length=64)
    password: SecretStr = Field(default=SecretStr(""), description="Database password")

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/depwatch.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, le=300)
    pool_recycle: int = Field(default=1800, ge=60, le=7200)
    pool_pre_ping: bool = Field(default=True)

    echo: bool = Field(default=False, description="Echo SQL queries (debug mode)")

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        if self.type == DatabaseType.SQLITE:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        password = self.password.get_secret_value()
        return (
            f"postgresql+asyncpg://{self.user}:{password}"
            f"@{self.host}:{self.port}/{self.name}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.type == DatabaseType.SQLITE


class PollingSettings(BaseSettingsConfig):
    """
    Polling Engine Configuration Settings

    Controls the scheduler tick, outbound request timeouts,
    concurrency caps, and the per-target interval bounds.
    """

    model_config = SettingsConfigDict(
        env_prefix="POLL_",
        env_file=".env",
        extra="ignore"
    )

    # Scheduler
    tick_interval: float = Field(
        default=1.0,
        gt=0,
        le=60.0,
        description="Seconds between scheduler ticks"
    )
    sync_interval: float = Field(
        default=30.0,
        gt=0,
        le=3600.0,
        description="Seconds between registry re-syncs of the target list"
    )

    # Per-target intervals (milliseconds)
    default_interval_ms: int = Field(default=Limits.DEFAULT_POLL_INTERVAL_MS)
    min_interval_ms: int = Field(default=Limits.MIN_POLL_INTERVAL_MS, ge=1000)
    max_interval_ms: int = Field(default=Limits.MAX_POLL_INTERVAL_MS)

    # HTTP client settings
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Total timeout for one health fetch in seconds"
    )
    dns_timeout: float = Field(
        default=5.0,
        gt=0,
        le=60.0,
        description="Timeout for DNS resolution during URL validation"
    )
    user_agent: str = Field(
        default=Defaults.USER_AGENT,
        description="User-Agent header for health requests"
    )

    # Concurrency caps
    max_concurrent: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Maximum concurrent outbound fetches"
    )
    max_per_host: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent polls against one host"
    )

    # Lifecycle
    shutdown_timeout: float = Field(
        default=5.0,
        ge=0,
        le=120.0,
        description="Seconds to wait for in-flight polls on shutdown"
    )
    alert_queue_size: int = Field(default=10000, ge=1)

    @model_validator(mode="after")
    def check_interval_bounds(self) -> "PollingSettings":
        """Ensure the default interval sits inside the allowed range."""
        if self.min_interval_ms > self.max_interval_ms:
            raise ValueError("min_interval_ms must not exceed max_interval_ms")
        if not self.min_interval_ms <= self.default_interval_ms <= self.max_interval_ms:
            raise ValueError("default_interval_ms must be within interval bounds")
        return self


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and file sinks with rotation and optional JSON output.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(default=LogLevel.INFO, description="Minimum logging level")

    # Console logging
    console_enabled: bool = Field(default=True)
    colorize: bool = Field(default=True, description="Enable colored console output")

    # File logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_path: Path = Field(default=Path("logs/depwatch.log"))
    rotation: str = Field(default="10 MB", description="Log rotation size or period")
    retention: str = Field(default="30 days", description="Log retention period")
    compression: str = Field(default="gz")
    serialize: bool = Field(default=False, description="Write file logs as JSON")

    # Errors get their own file when file logging is on
    error_file_path: Path = Field(default=Path("logs/errors.log"))


class SecuritySettings(BaseSettingsConfig):
    """
    Security Configuration Settings

    Outbound request restrictions for health polling.
    """

    model_config = SettingsConfigDict(
        env_prefix="SSRF_",
        env_file=".env",
        extra="ignore"
    )

    allowlist: str = Field(
        default="",
        description=(
            "Comma-separated hostnames, *.wildcards and CIDR ranges "
            "that bypass private-network blocking"
        )
    )

    @field_validator("allowlist", mode="before")
    @classmethod
    def normalize_allowlist(cls, v: Any) -> str:
        """Accept lists as well as comma-separated strings."""
        if v is None:
            return ""
        if isinstance(v, (list, tuple, set)):
            return ",".join(str(x) for x in v)
        return str(v)


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)

    app_name: str = Field(default="Depwatch")
    app_version: str = Field(default="1.0.0")

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False
        elif self.debug and self.logging.level == LogLevel.INFO:
            self.logging.level = LogLevel.DEBUG
        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump(mode="json")

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                    }
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
