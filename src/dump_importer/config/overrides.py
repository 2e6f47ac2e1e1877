"""
YAML loader for schema override files.

An override file lets an operator adjust the converted schema without
touching the dump. It supports three sections, all optional:

    type_overrides:          # source type id -> target type name
      tinyint: BOOL
      year: INT64
    exclude_columns:         # source table -> columns dropped from the target
      audit_log: [raw_payload]
    rename_columns:          # source table -> {source column: target name}
      orders:
        desc: description

Behavior mirrors the mapping loader conventions:
- Missing file: returns empty overrides, logs debug message (no exception)
- Empty file: returns empty overrides
- Invalid YAML or invalid shape: raises ValueError with the filename
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = structlog.get_logger(__name__)

# Target type names accepted in type_overrides. Length-bearing types accept
# an optional "(n)" / "(MAX)" suffix, e.g. "STRING(36)".
TARGET_TYPE_NAMES = (
    "BOOL",
    "BYTES",
    "DATE",
    "FLOAT32",
    "FLOAT64",
    "INT64",
    "JSON",
    "NUMERIC",
    "STRING",
    "TIMESTAMP",
)


class SchemaOverrides(BaseModel):
    """Validated contents of a schema override file."""

    type_overrides: Dict[str, str] = Field(default_factory=dict)
    exclude_columns: Dict[str, List[str]] = Field(default_factory=dict)
    rename_columns: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @field_validator("type_overrides")
    @classmethod
    def _check_type_names(cls, value: Dict[str, str]) -> Dict[str, str]:
        normalized: Dict[str, str] = {}
        for source_type, target_type in value.items():
            base = target_type.strip().upper().split("(", 1)[0].strip()
            if base not in TARGET_TYPE_NAMES:
                raise ValueError(
                    f"Unknown target type '{target_type}' for source type "
                    f"'{source_type}'. Expected one of {', '.join(TARGET_TYPE_NAMES)}"
                )
            normalized[source_type.strip().lower()] = target_type.strip().upper()
        return normalized

    @property
    def is_empty(self) -> bool:
        return not (self.type_overrides or self.exclude_columns or self.rename_columns)

    def excluded(self, table_name: str) -> List[str]:
        return self.exclude_columns.get(table_name, [])

    def renames(self, table_name: str) -> Dict[str, str]:
        return self.rename_columns.get(table_name, {})


def load_schema_overrides(file_path: Optional[Union[str, Path]]) -> SchemaOverrides:
    """
    Load and validate a schema override file.

    Args:
        file_path: Path to the YAML file, or None for no overrides.

    Returns:
        SchemaOverrides instance (empty if the file is absent).

    Raises:
        ValueError: If YAML syntax or the file's shape is invalid.
    """
    if file_path is None:
        return SchemaOverrides()

    path = Path(file_path)
    if not path.exists():
        logger.debug("overrides.file_not_found", file_path=str(path))
        return SchemaOverrides()

    try:
        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("overrides.yaml_parse_error", file_path=str(path), error=str(e))
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    # Handle empty file (yaml.safe_load returns None)
    if content is None:
        logger.debug("overrides.empty_file", file_path=str(path))
        return SchemaOverrides()

    if not isinstance(content, dict):
        logger.error(
            "overrides.invalid_format",
            file_path=str(path),
            actual_type=type(content).__name__,
        )
        raise ValueError(
            f"Invalid override format in {path}: expected dict, "
            f"got {type(content).__name__}"
        )

    try:
        overrides = SchemaOverrides(**content)
    except ValidationError as e:
        logger.error("overrides.validation_failed", file_path=str(path), error=str(e))
        raise ValueError(f"Invalid override file {path}: {e}") from e

    logger.info(
        "overrides.loaded",
        file_path=str(path),
        type_overrides=len(overrides.type_overrides),
        excluded_tables=len(overrides.exclude_columns),
        renamed_tables=len(overrides.rename_columns),
    )
    return overrides
