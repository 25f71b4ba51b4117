"""
Settings Module for UptimeKit

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Includes validation, type checking, and sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

from pydantic import (
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from exceptions.base import ConfigurationError


DEFAULT_DATA_DIR = Path.home() / ".uptimekit"


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

    SQLite is the default store (one file under ~/.uptimekit).
    PostgreSQL is supported for hosts that already run one.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: sqlite or postgresql"
    )

    # PostgreSQL settings
    host: str = Field(
        default="localhost",
        description="Database host address"
    )
    port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="Database port number"
    )
    name: str = Field(
        default="uptimekit",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(
        default="postgres",
        min_length=1,
        max_length=64,
        description="Database username"
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    # SQLite settings
    sqlite_path: Path = Field(
        default=DEFAULT_DATA_DIR / "uptimekit.db",
        description="Path to SQLite database file"
    )

    # Connection pool settings (ignored for SQLite)
    pool_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Connection pool size"
    )
    max_overflow: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Maximum overflow connections"
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool connection timeout in seconds"
    )
    pool_recycle: int = Field(
        default=1800,
        ge=60,
        le=7200,
        description="Connection recycle time in seconds"
    )

    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )

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

    @field_validator("sqlite_path", mode="before")
    @classmethod
    def expand_sqlite_path(cls, v: Any) -> Path:
        """Expand ~ in the configured SQLite path."""
        return Path(v).expanduser()


class MonitoringSettings(BaseSettingsConfig):
    """
    Monitoring Configuration Settings

    Controls the reconciliation cadence, probe timeouts,
    history limits, and SSL certificate tracking.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        extra="ignore"
    )

    # Reconciliation
    reconcile_interval: float = Field(
        default=10.0,
        gt=0,
        le=3600,
        description="Seconds between registry reconciliation ticks"
    )
    min_interval: int = Field(
        default=1,
        ge=1,
        description="Smallest accepted monitor interval in seconds"
    )
    default_interval: int = Field(
        default=60,
        ge=1,
        description="Interval used when a monitor is added without one"
    )

    # Probe timeouts
    http_timeout: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="HTTP probe timeout in seconds"
    )
    icmp_timeout: int = Field(
        default=5,
        ge=1,
        le=60,
        description="ICMP echo timeout in seconds"
    )
    dns_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="DNS resolution lifetime; resolver default when unset"
    )
    ping_command: str = Field(
        default="ping",
        description="System ping executable used by ICMP probes"
    )
    user_agent: str = Field(
        default="UptimeKit/1.0",
        description="User-Agent header sent by HTTP probes"
    )

    # History
    heartbeat_display_limit: int = Field(
        default=60,
        ge=1,
        le=10000,
        description="Heartbeats returned for display views"
    )

    # SSL tracking
    ssl_check_enabled: bool = Field(
        default=True,
        description="Inspect certificates of https HTTP monitors"
    )
    ssl_check_interval: int = Field(
        default=21600,
        ge=60,
        description="Seconds between certificate inspections per monitor"
    )
    ssl_warning_days: int = Field(
        default=14,
        ge=1,
        le=365,
        description="Days before expiry that count as expiring"
    )
    ssl_critical_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Days before expiry that count as critical"
    )
    ssl_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="TLS handshake timeout in seconds"
    )

    @model_validator(mode="after")
    def validate_intervals(self) -> "MonitoringSettings":
        """Validate interval relationships."""
        if self.default_interval < self.min_interval:
            raise ValueError("default_interval cannot be smaller than min_interval")

        if self.ssl_critical_days > self.ssl_warning_days:
            raise ValueError("ssl_critical_days cannot exceed ssl_warning_days")

        return self


class NotifierSettings(BaseSettingsConfig):
    """
    Notifier Configuration Settings

    Local notifications and outgoing webhooks.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Deliver notifications at all"
    )
    local_enabled: bool = Field(
        default=True,
        description="Emit local notifications (log record and desktop popup)"
    )
    desktop_enabled: bool = Field(
        default=True,
        description="Show local notifications on the desktop as well"
    )
    sound: bool = Field(
        default=True,
        description="Play the default sound with desktop notifications"
    )
    webhook_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Webhook POST timeout in seconds"
    )
    queue_size: int = Field(
        default=1000,
        ge=1,
        le=100000,
        description="Maximum pending notifications"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and file sinks for loguru, with rotation and
    optional JSON output.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )

    # Console logging
    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    colorize: bool = Field(
        default=True,
        description="Enable colored console output"
    )

    # File logging
    file_enabled: bool = Field(
        default=False,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=DEFAULT_DATA_DIR / "daemon.log",
        description="Log file path"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log file rotation (size or time)"
    )
    file_retention: str = Field(
        default="7 days",
        description="Log file retention period"
    )
    file_compression: str = Field(
        default="zip",
        description="Compression for rotated files"
    )
    json_enabled: bool = Field(
        default=False,
        description="Serialize file records as JSON"
    )

    # Error log
    error_file_enabled: bool = Field(
        default=False,
        description="Write ERROR and above to a separate file"
    )
    error_file_path: Path = Field(
        default=DEFAULT_DATA_DIR / "errors.log",
        description="Error log file path"
    )

    @field_validator("file_path", "error_file_path", mode="before")
    @classmethod
    def expand_log_path(cls, v: Any) -> Path:
        """Expand ~ in configured log paths."""
        return Path(v).expanduser()


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

    # Environment
    environment: Environment = Field(
        default=Environment.PRODUCTION,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Application info
    app_name: str = Field(
        default="UptimeKit",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Status server
    web_enabled: bool = Field(
        default=True,
        description="Serve /health and /status over HTTP"
    )
    web_host: str = Field(
        default="127.0.0.1",
        description="Status server bind address"
    )
    web_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Status server port"
    )

    # Nested settings
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    monitoring: MonitoringSettings = Field(
        default_factory=MonitoringSettings
    )
    notifier: NotifierSettings = Field(
        default_factory=NotifierSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )

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

        elif self.is_development:
            if self.logging.level == LogLevel.INFO:
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
                        and "secret" not in k.lower()
                    }
                elif isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
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

    Raises:
        ConfigurationError: If environment values fail validation
    """
    try:
        return Settings()
    except ValidationError as e:
        first = e.errors()[0]
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            config_key=".".join(str(part) for part in first["loc"]),
            cause=e,
        )
