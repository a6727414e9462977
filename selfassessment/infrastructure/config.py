"""
Centralized configuration management for the company self-assessment application.

Provides environment-specific configuration with validation, type safety,
and comprehensive settings management using Pydantic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class AirtableConfig(BaseSettings):
    """
    Airtable connection settings.

    The personal access token and base id are required for any call to the
    record store; the remaining options tune the REST client.

    Example:
        >>> config = AirtableConfig(personal_access_token="pat123", base_id="appXYZ")
        >>> print(config.base_url())
        >>> # https://api.airtable.com/v0/appXYZ
    """

    personal_access_token: str | None = Field(None, description="Airtable personal access token")
    base_id: str | None = Field(None, description="Airtable base id (app...)")
    api_url: str = Field("https://api.airtable.com/v0", description="Airtable REST API root")
    timeout_seconds: float = Field(15.0, gt=0, description="HTTP timeout per request")
    max_ids_per_formula: int = Field(
        50, ge=1, le=500, description="Maximum record ids embedded in one OR() formula"
    )
    page_size: int = Field(100, ge=1, le=100, description="Records per page when listing")

    model_config = {"env_prefix": "AIRTABLE_", "case_sensitive": False}

    @field_validator("api_url")
    def strip_trailing_slash(cls, v):
        """Normalise the API root so paths can be appended safely."""
        return v.rstrip("/")

    def is_configured(self) -> bool:
        """True when both credentials needed to reach a base are present."""
        return bool(self.personal_access_token and self.base_id)

    def base_url(self) -> str:
        """
        Return the URL of the configured base.

        Raises:
            ValueError: If the base id is not configured
        """
        if not self.base_id:
            raise ValueError("AIRTABLE_BASE_ID is not configured")
        return f"{self.api_url}/{self.base_id}"


class DatabaseConfig(BaseSettings):
    """
    Database configuration for the local progress cache.

    Handles both SQLite and MySQL configurations with validation
    and connection URL generation.

    Example:
        >>> db_config = DatabaseConfig(backend="sqlite", sqlite_path="./test.db")
        >>> print(db_config.get_connection_url())
        >>> # sqlite:///./test.db
    """

    backend: Literal["sqlite", "mysql"] = Field("sqlite", description="Database backend type")

    # SQLite settings
    sqlite_path: str | None = Field("./progress_cache.db", description="SQLite database file path")

    # MySQL settings
    mysql_host: str | None = Field("localhost", description="MySQL host")
    mysql_port: int | None = Field(3306, ge=1, le=65535, description="MySQL port")
    mysql_user: str | None = Field("root", description="MySQL username")
    mysql_password: str | None = Field("", description="MySQL password")
    mysql_database: str | None = Field("selfassessment", description="MySQL database name")
    mysql_charset: str = Field("utf8mb4", description="MySQL character set")

    # Connection settings
    pool_pre_ping: bool = Field(True, description="Enable connection pool pre-ping")
    pool_recycle: int = Field(3600, ge=60, description="Connection pool recycle time (seconds)")
    echo: bool = Field(False, description="Enable SQL query logging")

    model_config = {"env_prefix": "DB_", "case_sensitive": False}

    @field_validator("sqlite_path")
    def validate_sqlite_path(cls, v):
        """Validate SQLite path and ensure directory exists."""
        if v and v != ":memory:":
            path = Path(v)
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.suffix:
                v = str(path.with_suffix(".db"))
        return v

    @model_validator(mode="after")
    def validate_mysql_config(self):
        """Validate MySQL configuration completeness."""
        if self.backend == "mysql":
            missing = []
            if not self.mysql_host:
                missing.append("mysql_host")
            if not self.mysql_user:
                missing.append("mysql_user")
            if not self.mysql_database:
                missing.append("mysql_database")
            if missing:
                raise ValueError(f"MySQL backend requires: {', '.join(missing)}")
        return self

    def get_connection_url(self) -> str:
        """
        Generate database connection URL.

        Raises:
            ValueError: If backend is unsupported
        """
        if self.backend == "sqlite":
            return f"sqlite:///{self.sqlite_path}"
        elif self.backend == "mysql":
            password_part = f":{self.mysql_password}" if self.mysql_password else ""
            return (
                f"mysql+pymysql://{self.mysql_user}{password_part}@{self.mysql_host}:"
                f"{self.mysql_port}/{self.mysql_database}?charset={self.mysql_charset}"
            )
        else:
            raise ValueError(f"Unsupported database backend: {self.backend}")

    def get_engine_options(self) -> dict[str, Any]:
        """Get SQLAlchemy engine options."""
        return {
            "echo": self.echo,
            "future": True,
            "pool_pre_ping": self.pool_pre_ping,
            "pool_recycle": self.pool_recycle,
        }


class LoggingConfig(BaseSettings):
    """
    Logging configuration settings.

    Example:
        >>> log_config = LoggingConfig(level="DEBUG", file_path="./logs/app.log")
        >>> print(log_config.get_file_handler_config())
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Minimum logging level"
    )
    file_path: str | None = Field("./logs/app.log", description="Log file path")
    max_bytes: int = Field(10 * 1024 * 1024, ge=1024, description="Max log file size in bytes")
    backup_count: int = Field(5, ge=1, description="Number of backup log files")
    structured: bool = Field(True, description="Use structured JSON logging")
    console_enabled: bool = Field(True, description="Enable console output")

    model_config = {"env_prefix": "LOG_", "case_sensitive": False}

    @field_validator("file_path")
    def validate_log_path(cls, v):
        """Ensure log directory exists."""
        if v:
            log_path = Path(v)
            log_path.parent.mkdir(parents=True, exist_ok=True)
        return v

    def get_file_handler_config(self) -> dict[str, Any] | None:
        """Get file handler configuration if file logging is enabled."""
        if not self.file_path:
            return None

        return {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": self.file_path,
            "maxBytes": self.max_bytes,
            "backupCount": self.backup_count,
            "encoding": "utf-8",
        }


class SecurityConfig(BaseSettings):
    """CORS settings."""

    cors_origins: list[str] = Field(["*"], description="Allowed CORS origins")
    cors_methods: list[str] = Field(
        ["GET", "POST", "PUT", "PATCH"], description="Allowed CORS methods"
    )

    model_config = {"env_prefix": "SECURITY_", "case_sensitive": False}


class ExportConfig(BaseSettings):
    """
    External export services.

    Both endpoints are opaque services owned elsewhere; when a URL is unset the
    corresponding export is reported as unavailable.
    """

    pdf_url: str | None = Field(None, description="PDF generation endpoint")
    email_url: str | None = Field(None, description="Email delivery endpoint")
    timeout_seconds: float = Field(30.0, gt=0, description="HTTP timeout for export calls")
    pdf_filename: str = Field("ai-valmiduse-hinnang.pdf", description="Download file name")

    model_config = {"env_prefix": "EXPORT_", "case_sensitive": False}


class ApplicationConfig(BaseSettings):
    """
    Main application configuration.

    Example:
        >>> config = get_settings()
        >>> print(config.app.environment)
    """

    environment: Literal["development", "testing", "production"] = Field(
        "development", description="Application environment"
    )
    debug: bool = Field(False, description="Enable debug mode")
    version: str = Field("0.1.0", description="Application version")
    title: str = Field("Company Self-Assessment", description="Application title")

    session_cookie_name: str = Field(
        "assessment_session", description="Cookie identifying the browser session"
    )
    session_cookie_max_age: int = Field(
        60 * 60 * 24 * 30, ge=60, description="Browser session cookie lifetime (seconds)"
    )

    # Feature flags
    enable_exports: bool = Field(True, description="Enable PDF/email export forms")
    enable_xlsx_export: bool = Field(True, description="Enable local XLSX export of reports")

    model_config = {"env_prefix": "APP_", "case_sensitive": False}

    @model_validator(mode="after")
    def debug_implies_development(self):
        """Ensure debug mode is only enabled in development."""
        if self.debug and self.environment == "production":
            raise ValueError("Debug mode cannot be enabled in production")
        return self


class Settings:
    """
    Complete application settings container.

    Provides structured access to all configuration sections
    with lazy loading and caching.

    Example:
        >>> settings = get_settings()
        >>> print(settings.airtable.base_url())
        >>> print(settings.logging.level)
    """

    def __init__(self):
        self._app: ApplicationConfig | None = None
        self._airtable: AirtableConfig | None = None
        self._database: DatabaseConfig | None = None
        self._logging: LoggingConfig | None = None
        self._security: SecurityConfig | None = None
        self._export: ExportConfig | None = None

    @property
    def app(self) -> ApplicationConfig:
        if self._app is None:
            self._app = ApplicationConfig()
        return self._app

    @property
    def airtable(self) -> AirtableConfig:
        if self._airtable is None:
            self._airtable = AirtableConfig()
        return self._airtable

    @property
    def database(self) -> DatabaseConfig:
        if self._database is None:
            self._database = DatabaseConfig()
        return self._database

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            level = "DEBUG" if self.app.debug else "INFO"
            if self.app.environment == "production":
                level = "WARNING"
            self._logging = LoggingConfig(level=level)
        return self._logging

    @property
    def security(self) -> SecurityConfig:
        if self._security is None:
            self._security = SecurityConfig()
        return self._security

    @property
    def export(self) -> ExportConfig:
        if self._export is None:
            self._export = ExportConfig()
        return self._export

    def is_development(self) -> bool:
        return self.app.environment == "development"

    def is_production(self) -> bool:
        return self.app.environment == "production"

    def is_testing(self) -> bool:
        return self.app.environment == "testing"

    def get_environment_info(self) -> dict[str, Any]:
        """Get summary of current environment configuration."""
        return {
            "environment": self.app.environment,
            "version": self.app.version,
            "debug": self.app.debug,
            "airtable_configured": self.airtable.is_configured(),
            "database_backend": self.database.backend,
            "logging_level": self.logging.level,
            "features": {
                "exports": self.app.enable_exports,
                "xlsx_export": self.app.enable_xlsx_export,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get application settings instance (cached).

    Returns:
        Settings instance with all configuration loaded
    """
    return Settings()


def override_settings(**kwargs) -> Settings:
    """
    Override specific settings for testing or development.

    Keys are environment variable names without regard to case, e.g.
    ``airtable_base_id="appTest"`` sets ``AIRTABLE_BASE_ID``.

    Example:
        >>> settings = override_settings(app_environment="testing", db_sqlite_path=":memory:")
    """
    for key, value in kwargs.items():
        os.environ[key.upper()] = str(value)

    get_settings.cache_clear()
    return get_settings()


def reset_settings() -> None:
    """Reset settings cache to reload from environment."""
    get_settings.cache_clear()
