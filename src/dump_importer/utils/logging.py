"""Structured logging for dump imports, built on structlog.

Every event is rendered as one JSON object with an ISO-8601 timestamp, the
level and the logger name. Two processors run before rendering:

- values that look like store credentials are redacted, including the
  password part of a SQLAlchemy URL;
- long string values are truncated, since parse and row failures would
  otherwise log whole SQL chunks or row tuples from the dump.

Logging is configured once on import from dump_importer.config settings
(LOG_LEVEL, LOG_TO_FILE, LOG_FILE_DIR) and can be reconfigured by calling
configure_logging() with explicit settings.

Usage:
    >>> import structlog
    >>> logger = structlog.get_logger(__name__)
    >>> logger.info("pipeline.schema_pass_started", source_format="mysqldump")
"""

import logging
import os
import re
from datetime import date
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import structlog
from structlog.types import EventDict, Processor

from dump_importer.config import Settings, get_settings

# Keys whose values never reach the log
SENSITIVE_KEY_PATTERN = re.compile(r"password|secret|token|credential|^(database|store)_url$", re.IGNORECASE)

# user:password@ inside URLs such as postgresql://loader:pw@db/staging
URL_PASSWORD_PATTERN = re.compile(r"(://[^:/@\s]+:)([^@\s]+)(@)")

REDACTED_VALUE = "[REDACTED]"

# Longest string value logged as-is
MAX_VALUE_CHARS = 500

# Handlers installed by configure_logging, removed again on reconfiguration
_installed_handlers: List[logging.Handler] = []


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return URL_PASSWORD_PATTERN.sub(rf"\1{REDACTED_VALUE}\3", value)
    if isinstance(value, dict):
        return sanitize_for_logging(value)
    return value


def sanitize_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of data with credentials redacted.

    Keys containing password, secret, token or credential, and the
    database_url / store_url keys, lose their value entirely. Other string
    values keep their text but any URL password inside them is masked.

    Example:
        >>> sanitize_for_logging({"store": "postgresql://u:pw@h/db", "table": "t"})
        {"store": "postgresql://u:[REDACTED]@h/db", "table": "t"}
    """
    return {
        key: REDACTED_VALUE if SENSITIVE_KEY_PATTERN.search(key) else _redact(value)
        for key, value in data.items()
    }


def truncate_value(value: Any, limit: int = MAX_VALUE_CHARS) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return f"{value[:limit]}... [{len(value) - limit} more chars]"
    return value


def sanitization_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    return sanitize_for_logging(dict(event_dict))


def truncation_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    return {key: truncate_value(value) for key, value in event_dict.items()}


def _load_settings() -> Optional[Settings]:
    try:
        return get_settings()
    except ValueError:
        # Invalid environment; the pipeline surfaces the validation error itself
        return None


def _log_level(settings: Optional[Settings]) -> int:
    name = settings.LOG_LEVEL if settings is not None else os.getenv("LOG_LEVEL", "INFO")
    return getattr(logging, name.upper(), logging.INFO)


def _log_file_path(log_dir: str) -> Path:
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"dump-importer-{date.today():%Y%m%d}.log"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Install stdout (and optionally file) handlers and configure structlog.

    Calling it again replaces the handlers of the previous call.
    """
    if settings is None:
        settings = _load_settings()
    level = _log_level(settings)

    root = logging.getLogger()
    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings is not None and settings.LOG_TO_FILE:
        handlers.append(
            TimedRotatingFileHandler(
                filename=str(_log_file_path(settings.LOG_FILE_DIR)),
                when="midnight",
                backupCount=30,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
        _installed_handlers.append(handler)
    root.setLevel(level)

    processors: List[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        sanitization_processor,
        truncation_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def bind_context(**kwargs: Any) -> Any:
    """Return a logger carrying run-wide fields on every event.

    Example:
        >>> log = bind_context(run_id="3f9a2c", source_format="pg_dump")
        >>> log.info("pipeline.data_pass_started")
    """
    return structlog.get_logger().bind(**kwargs)
