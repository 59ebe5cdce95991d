"""
Application Configuration for Nova.

Uses pydantic-settings for type-safe configuration with environment
variable loading, validation, and sensible defaults.

Configuration is loaded from:
1. Environment variables (highest priority)
2. .env file in project root
3. Default values defined here (lowest priority)

The listener identity (FQDN, addresses, port and TLS material) lives in a
separate YAML file, see ``load_nova_config``.
"""

from __future__ import annotations

import logging
import os
import ssl
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nova.db.dsn import DBConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Exception raised when a configuration file cannot be used."""

    pass


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables using
    the same name (case-insensitive).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application Settings
    # =========================================================================

    APP_NAME: str = Field(
        default="Nova",
        description="Application name for logging and identification",
    )

    APP_ENV: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Current application environment",
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (database metrics, pool sampler, debug listener)",
    )

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level for the application",
    )

    # =========================================================================
    # Database Settings (SQLite)
    # =========================================================================

    DATABASE_PATH: str = Field(
        default="nova.db",
        description="Base DSN: SQLite file path or file: URI",
    )

    DB_MAX_OPEN_CONNS: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum concurrent database connections",
    )

    DB_WAL: bool = Field(
        default=True,
        description="Enable write-ahead-log journaling",
    )

    DB_CACHE_SIZE: int = Field(
        default=-2000,
        description="SQLite page cache size (negative values are KiB)",
    )

    DB_BUSY_TIMEOUT_MS: int = Field(
        default=5000,
        ge=0,
        le=600_000,
        description="Busy timeout in milliseconds (0 disables the pragma)",
    )

    DB_AUTO_CREATE_TABLES: bool = Field(
        default=True,
        description="Create the migrations ledger when the database is opened",
    )

    DB_EXTENSIONS: str = Field(
        default="",
        description="SQLite extensions to preload (comma-separated paths)",
    )

    DB_ACQUIRE_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Timeout in seconds for acquiring a pooled connection",
    )

    DB_SAMPLE_INTERVAL: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between pool statistics samples (debug only)",
    )

    DB_QUERY_RETRIES: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Retries for reads that hit a busy database",
    )

    @property
    def db_extensions_list(self) -> list[str]:
        """Parse comma-separated extension paths into a list."""
        return [ext.strip() for ext in self.DB_EXTENSIONS.split(",") if ext.strip()]

    def db_config(self) -> DBConfig:
        """Build the adapter configuration from these settings."""
        return DBConfig(
            max_open_conns=self.DB_MAX_OPEN_CONNS,
            debug=self.DEBUG,
            auto_create_table=self.DB_AUTO_CREATE_TABLES,
            wal=self.DB_WAL,
            cache_size=self.DB_CACHE_SIZE,
            busy_timeout_ms=self.DB_BUSY_TIMEOUT_MS,
            extensions=tuple(self.db_extensions_list),
            acquire_timeout=self.DB_ACQUIRE_TIMEOUT,
            sample_interval=self.DB_SAMPLE_INTERVAL,
        )

    # =========================================================================
    # Cache Settings
    # =========================================================================

    CACHE_TYPE: Literal["none", "memory", "redis"] = Field(
        default="memory",
        description="Data cache in front of the database",
    )

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (CACHE_TYPE=redis)",
    )

    REDIS_MAX_CONNECTIONS: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum Redis connections in pool",
    )

    REDIS_SOCKET_TIMEOUT: float = Field(
        default=5.0,
        ge=0.1,
        le=60.0,
        description="Redis socket timeout in seconds",
    )

    # =========================================================================
    # Server Settings
    # =========================================================================

    API_HOST: str = Field(
        default="0.0.0.0",
        description="API server host",
    )

    API_PORT: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="API server port",
    )

    DEBUG_PORT: int = Field(
        default=10080,
        ge=1,
        le=65535,
        description="Debug (metrics) listener port",
    )

    NOVA_CONFIG_FILE: str | None = Field(
        default=None,
        description="Optional YAML file with FQDN, addresses, port and TLS settings",
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    LOG_FILE: str | None = Field(
        default=None,
        description="Log file path; file logging is disabled when unset",
    )

    LOG_MAX_BYTES: int = Field(
        default=100 * 1024 * 1024,
        ge=1024,
        description="Rotate the log file after this many bytes",
    )

    LOG_BACKUP_COUNT: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Rotated log files to keep",
    )

    LOG_COMPRESS: bool = Field(
        default=True,
        description="Gzip rotated log files",
    )

    LOG_CONSOLE: bool = Field(
        default=True,
        description="Also log to stdout",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    This function is cached to ensure settings are only loaded once
    from environment/files. To refresh settings (e.g., in tests), clear
    the cache:

        get_settings.cache_clear()

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()


def get_settings_uncached() -> Settings:
    """
    Get fresh settings without caching.

    Returns:
        Fresh Settings instance
    """
    return Settings()


# =============================================================================
# Listener Configuration (YAML)
# =============================================================================


class TLSSettings(BaseModel):
    """TLS material for the HTTP listener."""

    model_config = ConfigDict(populate_by_name=True)

    tls_type: Literal["non-tls", "tls", "mutual-tls"] = Field(default="non-tls", alias="tlsType")
    tls_version: Literal["1.2", "1.3"] = Field(default="1.2", alias="tlsVersion")
    key_file: str = Field(default="", alias="keyFile")
    cert_file: str = Field(default="", alias="certFile")
    ca_file: str = Field(default="", alias="caFile")

    @field_validator("tls_version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        # YAML reads an unquoted 1.2 as a float
        if isinstance(value, float):
            return f"{value:.1f}"
        return value

    @property
    def enabled(self) -> bool:
        return self.tls_type != "non-tls"


class NovaConfig(BaseModel):
    """Listener identity read from the YAML configuration file."""

    model_config = ConfigDict(populate_by_name=True)

    fqdn: str = Field(default="", alias="FQDN")
    ipv4_addr: str = Field(default="", alias="IPv4Addr")
    ipv6_addr: str = Field(default="", alias="IPv6Addr")
    port: int | None = Field(default=None, ge=1, le=65535, alias="Port")
    tls: TLSSettings = Field(default_factory=TLSSettings, alias="TLSSettings")

    def validate_tls_files(self) -> None:
        """Check that the TLS files named by the settings exist.

        Raises:
            ConfigError: If a required file is missing.
        """
        if not self.tls.enabled:
            return
        required = {"keyFile": self.tls.key_file, "certFile": self.tls.cert_file}
        if self.tls.tls_type == "mutual-tls":
            required["caFile"] = self.tls.ca_file
        for name, path in required.items():
            if not path:
                raise ConfigError(f"TLSSettings.{name} is required for {self.tls.tls_type}")
            if not Path(path).is_file():
                raise ConfigError(f"TLSSettings.{name} not found: {path}")

    def uvicorn_ssl_options(self) -> dict[str, Any]:
        """Map the TLS settings onto ``uvicorn.run`` keyword arguments."""
        if not self.tls.enabled:
            return {}
        options: dict[str, Any] = {
            "ssl_keyfile": self.tls.key_file,
            "ssl_certfile": self.tls.cert_file,
        }
        if self.tls.ca_file:
            options["ssl_ca_certs"] = self.tls.ca_file
        if self.tls.tls_type == "mutual-tls":
            options["ssl_cert_reqs"] = ssl.CERT_REQUIRED
        return options


def load_nova_config(path: str | Path) -> NovaConfig:
    """
    Load the YAML listener configuration.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed NovaConfig

    Raises:
        ConfigError: If the file is missing, not YAML, or invalid
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        config = NovaConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e

    logger.info(f"Loaded listener configuration from {path}")
    return config


def save_nova_config(path: str | Path, config: NovaConfig) -> None:
    """
    Write the listener configuration as YAML.

    The document is serialized before the target is touched and written
    through a temporary file, so a failure leaves the old file intact.
    """
    path = Path(path)
    document = yaml.safe_dump(
        config.model_dump(by_alias=True),
        sort_keys=False,
        default_flow_style=False,
    )

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(document)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# =============================================================================
# Type Exports
# =============================================================================

__all__ = [
    "ConfigError",
    "Settings",
    "get_settings",
    "get_settings_uncached",
    "TLSSettings",
    "NovaConfig",
    "load_nova_config",
    "save_nova_config",
]
