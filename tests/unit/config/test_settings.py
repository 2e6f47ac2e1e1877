"""Unit tests for environment-based settings.

Tests verify:
- Defaults for batch, retry and dialect settings
- Prefixed and bare environment variable names
- Limit validation
- Singleton behavior of get_settings()
"""

import pytest
from pydantic import ValidationError

from dump_importer.config.settings import Settings, get_settings


@pytest.mark.unit
def test_defaults(monkeypatch):
    """Defaults match the documented batch and retry limits."""
    for name in ("BATCH_WRITE_LIMIT", "DUMP_IMPORTER_BATCH_WRITE_LIMIT", "SOURCE_FORMAT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.SOURCE_FORMAT == "mysqldump"
    assert settings.TARGET_DIALECT == "google_standard_sql"
    assert settings.BATCH_BYTES_LIMIT == 100_000_000
    assert settings.BATCH_WRITE_LIMIT == 2000
    assert settings.BATCH_RETRY_LIMIT == 1000
    assert settings.DETECT_INTERLEAVING is True
    assert settings.SCHEMA_OVERRIDES_FILE is None


@pytest.mark.unit
def test_prefixed_environment_variable(monkeypatch):
    """DUMP_IMPORTER_ prefixed names are read."""
    monkeypatch.setenv("DUMP_IMPORTER_BATCH_WRITE_LIMIT", "50")
    monkeypatch.setenv("DUMP_IMPORTER_SOURCE_FORMAT", "pg_dump")

    settings = Settings()

    assert settings.BATCH_WRITE_LIMIT == 50
    assert settings.SOURCE_FORMAT == "pg_dump"


@pytest.mark.unit
def test_bare_environment_variable(monkeypatch):
    """Bare uppercase names are read as well."""
    monkeypatch.delenv("DUMP_IMPORTER_MAX_WORKERS", raising=False)
    monkeypatch.setenv("MAX_WORKERS", "8")

    assert Settings().MAX_WORKERS == 8


@pytest.mark.unit
def test_unknown_source_format_rejected(monkeypatch):
    """Only supported dump formats validate."""
    monkeypatch.setenv("DUMP_IMPORTER_SOURCE_FORMAT", "oracle_exp")

    with pytest.raises(ValidationError) as exc_info:
        Settings()

    assert "SOURCE_FORMAT" in str(exc_info.value)


@pytest.mark.unit
@pytest.mark.parametrize("field", ["BATCH_BYTES_LIMIT", "BATCH_WRITE_LIMIT", "BATCH_RETRY_LIMIT", "MAX_WORKERS"])
def test_non_positive_limit_rejected(field):
    """Batch and worker limits must be positive."""
    with pytest.raises(ValidationError) as exc_info:
        Settings(**{field: 0})

    assert f"{field} must be positive" in str(exc_info.value)


@pytest.mark.unit
def test_inverted_backoff_bounds_rejected():
    """The maximum backoff cannot be below the base backoff."""
    with pytest.raises(ValidationError) as exc_info:
        Settings(RETRY_BACKOFF_SECONDS=5, RETRY_BACKOFF_MAX_SECONDS=1)

    assert "RETRY_BACKOFF_MAX_SECONDS" in str(exc_info.value)


@pytest.mark.unit
def test_get_settings_is_cached(monkeypatch):
    """get_settings() returns the same instance until the cache is cleared."""
    monkeypatch.setenv("DUMP_IMPORTER_BATCH_WRITE_LIMIT", "10")
    first = get_settings()
    monkeypatch.setenv("DUMP_IMPORTER_BATCH_WRITE_LIMIT", "20")

    assert get_settings() is first
    assert first.BATCH_WRITE_LIMIT == 10

    get_settings.cache_clear()
    assert get_settings().BATCH_WRITE_LIMIT == 20
