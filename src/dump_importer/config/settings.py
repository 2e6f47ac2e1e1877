"""
Configuration management for dump-importer.

This module provides environment-based configuration using Pydantic BaseSettings,
so that batch limits, retry behaviour and dialect selection can be tuned per
deployment without code changes.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import structlog
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

# Determine project root for resolving .env by default
PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
ENV_FILE_OVERRIDE = os.getenv("DUMP_IMPORTER_ENV_FILE")
if ENV_FILE_OVERRIDE:
    env_file_candidate = Path(ENV_FILE_OVERRIDE).expanduser()
    if not env_file_candidate.is_absolute():
        env_file_candidate = PROJECT_ROOT / env_file_candidate
    SETTINGS_ENV_FILE = env_file_candidate
else:
    SETTINGS_ENV_FILE = DEFAULT_ENV_FILE


def _alias(name: str) -> AliasChoices:
    return AliasChoices(f"DUMP_IMPORTER_{name}", name)


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Every field can be set either with the DUMP_IMPORTER_ prefix or with its
    bare uppercase name, e.g. DUMP_IMPORTER_BATCH_WRITE_LIMIT or
    BATCH_WRITE_LIMIT.

    Fields:
    - LOG_LEVEL: Logging level (uppercase)
    - LOG_TO_FILE / LOG_FILE_DIR: Optional rotated file logging
    - SOURCE_FORMAT: Dump format of the input (mysqldump, pg_dump)
    - TARGET_DIALECT: Dialect used to render target DDL
    - BATCH_BYTES_LIMIT / BATCH_WRITE_LIMIT: Batch size bounds
    - BATCH_RETRY_LIMIT: Attempts per batch before the run fails
    - RETRY_BACKOFF_SECONDS / RETRY_BACKOFF_MAX_SECONDS: Retry delay bounds
    - MAX_WORKERS: Per-table worker pool size
    - BAD_ROW_SAMPLE_SIZE: Number of bad rows retained for the report
    - PROGRESS_INTERVAL: Lines between progress log events
    - DETECT_INTERLEAVING: Enable parent/child interleaving inference
    - SCHEMA_OVERRIDES_FILE: Optional YAML file with type/column overrides
    """

    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias=_alias("LOG_LEVEL"),
        description="Logging level (uppercase)",
    )
    LOG_TO_FILE: bool = Field(
        default=False,
        validation_alias=_alias("LOG_TO_FILE"),
        description="Also write JSON logs to a daily rotated file",
    )
    LOG_FILE_DIR: str = Field(
        default="logs",
        validation_alias=_alias("LOG_FILE_DIR"),
        description="Directory for rotated log files",
    )
    SOURCE_FORMAT: Literal["mysqldump", "pg_dump"] = Field(
        default="mysqldump",
        validation_alias=_alias("SOURCE_FORMAT"),
        description="Dump format of the input file",
    )
    TARGET_DIALECT: Literal["google_standard_sql", "postgresql"] = Field(
        default="google_standard_sql",
        validation_alias=_alias("TARGET_DIALECT"),
        description="Dialect of the target database used when rendering DDL",
    )

    # Batched writer configuration
    BATCH_BYTES_LIMIT: int = Field(
        default=100 * 1000 * 1000,
        validation_alias=_alias("BATCH_BYTES_LIMIT"),
        description="Maximum accumulated mutation size per batch (bytes)",
    )
    BATCH_WRITE_LIMIT: int = Field(
        default=2000,
        validation_alias=_alias("BATCH_WRITE_LIMIT"),
        description="Maximum number of rows per batch",
    )
    BATCH_RETRY_LIMIT: int = Field(
        default=1000,
        validation_alias=_alias("BATCH_RETRY_LIMIT"),
        description="Maximum write attempts per batch on transient failure",
    )
    RETRY_BACKOFF_SECONDS: float = Field(
        default=0.5,
        validation_alias=_alias("RETRY_BACKOFF_SECONDS"),
        description="Base delay for exponential retry backoff",
    )
    RETRY_BACKOFF_MAX_SECONDS: float = Field(
        default=30.0,
        validation_alias=_alias("RETRY_BACKOFF_MAX_SECONDS"),
        description="Upper bound for a single retry delay",
    )

    # Performance settings
    MAX_WORKERS: int = Field(
        default=4,
        validation_alias=_alias("MAX_WORKERS"),
        description="Maximum concurrent table tasks for parallel data import",
    )

    # Reporting
    BAD_ROW_SAMPLE_SIZE: int = Field(
        default=100,
        validation_alias=_alias("BAD_ROW_SAMPLE_SIZE"),
        description="Maximum number of bad rows kept as samples",
    )
    PROGRESS_INTERVAL: int = Field(
        default=100000,
        validation_alias=_alias("PROGRESS_INTERVAL"),
        description="Emit a progress log event every N lines",
    )

    # Conversion options
    DETECT_INTERLEAVING: bool = Field(
        default=True,
        validation_alias=_alias("DETECT_INTERLEAVING"),
        description="Infer parent/child interleaving from primary key prefixes",
    )
    SCHEMA_OVERRIDES_FILE: Optional[str] = Field(
        default=None,
        validation_alias=_alias("SCHEMA_OVERRIDES_FILE"),
        description="YAML file with type overrides, column exclusions and renames",
    )

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """
        Validate that batch and retry limits are usable.

        Returns:
            The validated Settings instance

        Raises:
            ValueError: If a limit is not positive or the backoff bounds are inverted
        """
        positive_fields = (
            "BATCH_BYTES_LIMIT",
            "BATCH_WRITE_LIMIT",
            "BATCH_RETRY_LIMIT",
            "MAX_WORKERS",
            "PROGRESS_INTERVAL",
        )
        for name in positive_fields:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if self.BAD_ROW_SAMPLE_SIZE < 0:
            raise ValueError("BAD_ROW_SAMPLE_SIZE must not be negative")

        if self.RETRY_BACKOFF_MAX_SECONDS < self.RETRY_BACKOFF_SECONDS:
            raise ValueError(
                "RETRY_BACKOFF_MAX_SECONDS must be >= RETRY_BACKOFF_SECONDS, "
                f"got {self.RETRY_BACKOFF_MAX_SECONDS} < {self.RETRY_BACKOFF_SECONDS}"
            )

        return self

    model_config = SettingsConfigDict(
        env_file=str(SETTINGS_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded once and reused across
    the application lifecycle.

    Returns:
        Settings instance with loaded configuration
    """
    settings = Settings()
    logger.debug(
        "configuration.loaded",
        source_format=settings.SOURCE_FORMAT,
        target_dialect=settings.TARGET_DIALECT,
        env_file=str(SETTINGS_ENV_FILE),
    )
    return settings
