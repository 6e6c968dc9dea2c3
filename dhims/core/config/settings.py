# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the DHIMS
academic core. Settings are loaded from environment variables with
sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from dhims.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.academic_year.terminal_grade_label)
    'Alumni'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PASSWORD = "dhims_password"


class DatabaseSettings(BaseSettings):
    """Relational store configuration.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        explicit_url: Full connection URL, overrides the components when set.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "dhims"
    password: SecretStr = SecretStr(DEFAULT_DB_PASSWORD)
    host: str = "localhost"
    port: int = 5432
    database: str = "dhims"
    explicit_url: str | None = Field(default=None, validation_alias="DB_URL")
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.explicit_url:
            return self.explicit_url
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class AcademicYearSettings(BaseSettings):
    """Academic year and grade promotion conventions.

    Attributes:
        year_name_format: "single" for four-digit names (2025) or "range"
            for consecutive-year ranges (2024-2025).
        grade_label_prefix: Prefix of numeric grade labels ("Grade 7").
        max_numeric_grade: Highest numeric grade; promotes to the terminal label.
        terminal_grade_label: Label given to students leaving the top grade.
        active_student_status: Student status included in grade promotion.
        audit_enabled: Whether operations are written to the audit log.
    """

    model_config = SettingsConfigDict(
        env_prefix="ACADEMIC_YEAR_",
        extra="ignore",
    )

    year_name_format: Literal["single", "range"] = "single"
    grade_label_prefix: str = "Grade"
    max_numeric_grade: int = Field(default=12, ge=1)
    terminal_grade_label: str = "Alumni"
    active_student_status: str = "active"
    audit_enabled: bool = True


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Relational store settings.
        academic_year: Academic year conventions.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    academic_year: AcademicYearSettings = Field(default_factory=AcademicYearSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production" and not self.database.explicit_url:
            if self.database.password.get_secret_value() == DEFAULT_DB_PASSWORD:
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD or DB_URL environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
