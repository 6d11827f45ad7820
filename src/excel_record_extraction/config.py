"""Configuration management for Excel record extraction.

This module provides process-level settings using pydantic-settings. These
are distinct from the per-task extraction options in ``models.py``: they
control logging and fallbacks that apply to every extraction run.

All settings can be set via environment variables with the EXCEL_EXTRACT_
prefix, or via a .env file in the working directory.

Environment Variables:
    EXCEL_EXTRACT_LOG_LEVEL: Logging level (default: INFO)
    EXCEL_EXTRACT_DEBUG: Enable debug mode (default: false)
    EXCEL_EXTRACT_STRUCTURED_LOGGING: Use the context-aware formatter
        (default: true)
    EXCEL_EXTRACT_DEFAULT_FLUSH_COUNT: Records per page flush when a task
        does not set flush_count (default: 100)
"""

import logging
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Example .env file:
        EXCEL_EXTRACT_LOG_LEVEL=DEBUG
        EXCEL_EXTRACT_DEFAULT_FLUSH_COUNT=500
    """

    model_config = SettingsConfigDict(
        env_prefix="EXCEL_EXTRACT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode; forces DEBUG logging and per-record traces."""

    structured_logging: bool = True
    """Prefix log lines with run/source/sheet context."""

    # =========================================================================
    # Extraction Settings
    # =========================================================================

    default_flush_count: int = 100
    """Records buffered before a page flush when a task omits flush_count."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("default_flush_count")
    @classmethod
    def validate_flush_count(cls, v: int) -> int:
        """Validate flush count is positive."""
        if v < 1:
            raise ValueError(f"default_flush_count must be at least 1, got {v}")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        if self.debug:
            return logging.DEBUG
        level: int = getattr(logging, self.log_level)
        return level

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to a plain dictionary."""
        return {
            "log_level": self.log_level,
            "debug": self.debug,
            "structured_logging": self.structured_logging,
            "default_flush_count": self.default_flush_count,
        }


def validate_settings_on_startup(s: Settings) -> None:
    """Log a configuration summary and warn about noisy settings.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if s.debug and s.log_level != "DEBUG":
        logger.warning(
            "Debug mode overrides log_level=%s; per-record traces are enabled.",
            s.log_level,
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"default_flush_count={s.default_flush_count}"
    )


# Create the global settings instance
settings = Settings()
