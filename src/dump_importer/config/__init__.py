"""Configuration management for dump-importer.

This module provides centralized configuration loaded from environment variables
with validation using Pydantic BaseSettings.

Usage:
    >>> from dump_importer.config import settings
    >>> print(settings.BATCH_WRITE_LIMIT)

    Or using the factory function:
    >>> from dump_importer.config import get_settings
    >>> settings = get_settings()
"""

from dump_importer.config.overrides import SchemaOverrides, load_schema_overrides
from dump_importer.config.settings import Settings, get_settings

# Pre-instantiated singleton for convenient module-level import
# For testing, import get_settings directly and call it with monkeypatched env vars
try:
    settings = get_settings()
except Exception:
    # Invalid environment values leave settings as None; callers should call
    # get_settings() directly to see the validation error
    settings = None  # type: ignore

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "SchemaOverrides",
    "load_schema_overrides",
]
