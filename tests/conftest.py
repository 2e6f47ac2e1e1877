"""Shared pytest fixtures for dump-importer tests."""

from pathlib import Path
from typing import Callable

import pytest

from dump_importer.config.settings import Settings, get_settings
from dump_importer.dialects import get_dialect
from dump_importer.domain.context import ConversionContext, Mode
from dump_importer.io.reader import LocalFileSource, StatementReader


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Every test sees settings built from its own (monkeypatched) environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def ctx() -> ConversionContext:
    return ConversionContext(bad_row_sample_size=10)


@pytest.fixture
def mysql_dialect():
    return get_dialect("mysqldump")


@pytest.fixture
def pg_dialect():
    return get_dialect("pg_dump")


@pytest.fixture
def write_dump(tmp_path: Path) -> Callable[..., Path]:
    """Write dump text to a file under tmp_path and return its path."""

    def _write(text: str, name: str = "dump.sql") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def build_schema(write_dump):
    """Run the schema pass over dump text and return the populated context."""

    def _build(text: str, dialect, ctx: ConversionContext = None) -> ConversionContext:
        ctx = ctx or ConversionContext(bad_row_sample_size=10)
        ctx.mode = Mode.SCHEMA
        with StatementReader(LocalFileSource(write_dump(text))) as reader:
            dialect.parse_dump(reader, ctx)
        return ctx

    return _build


@pytest.fixture
def test_settings() -> Settings:
    """Settings for fast tests: no backoff, small batches."""
    return Settings(
        BATCH_WRITE_LIMIT=2,
        RETRY_BACKOFF_SECONDS=0,
        RETRY_BACKOFF_MAX_SECONDS=0,
        BATCH_RETRY_LIMIT=3,
        MAX_WORKERS=2,
        PROGRESS_INTERVAL=1000,
    )
