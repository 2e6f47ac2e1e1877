"""
Unit tests for logging helpers.

Tests verify:
- Credential keys and URL passwords are redacted
- Long values such as SQL chunks are truncated
- configure_logging() honors LOG_LEVEL and LOG_TO_FILE settings
"""

import logging

import pytest

from dump_importer.config.settings import Settings
from dump_importer.utils.logging import (
    REDACTED_VALUE,
    configure_logging,
    sanitize_for_logging,
    truncate_value,
    truncation_processor,
)


@pytest.fixture
def restore_logging():
    yield
    configure_logging(Settings())


@pytest.mark.unit
class TestSanitizeForLogging:
    """Tests for sanitize_for_logging()."""

    def test_sensitive_keys_are_redacted(self):
        data = {"password": "pw", "api_token": "t", "store_url": "sqlite://", "table": "users"}

        assert sanitize_for_logging(data) == {
            "password": REDACTED_VALUE,
            "api_token": REDACTED_VALUE,
            "store_url": REDACTED_VALUE,
            "table": "users",
        }

    def test_url_password_is_masked(self):
        result = sanitize_for_logging({"error": "cannot connect to postgresql://loader:hunter2@db/staging"})

        assert result["error"] == f"cannot connect to postgresql://loader:{REDACTED_VALUE}@db/staging"

    def test_nested_dicts(self):
        result = sanitize_for_logging({"target": {"secret": "x", "name": "staging"}})

        assert result == {"target": {"secret": REDACTED_VALUE, "name": "staging"}}


@pytest.mark.unit
class TestTruncation:
    """Tests for truncate_value() and the truncation processor."""

    def test_short_values_are_unchanged(self):
        assert truncate_value("INSERT INTO t VALUES (1);") == "INSERT INTO t VALUES (1);"
        assert truncate_value(12345) == 12345

    def test_long_chunk_is_truncated(self):
        chunk = "INSERT INTO t VALUES " + ",".join(["(1)"] * 1000)

        result = truncate_value(chunk, limit=40)

        assert result.startswith(chunk[:40])
        assert result.endswith(f"[{len(chunk) - 40} more chars]")

    def test_processor_applies_to_every_value(self):
        event = truncation_processor(None, "info", {"event": "parser.parse_failed", "chunk": "x" * 2000})

        assert event["event"] == "parser.parse_failed"
        assert len(event["chunk"]) < 2000


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_level_from_settings(self, restore_logging):
        configure_logging(Settings(LOG_LEVEL="debug"))

        assert logging.getLogger().level == logging.DEBUG

    def test_file_logging(self, tmp_path, restore_logging):
        configure_logging(Settings(LOG_TO_FILE=True, LOG_FILE_DIR=str(tmp_path / "logs")))

        assert len(list((tmp_path / "logs").glob("dump-importer-*.log"))) == 1
