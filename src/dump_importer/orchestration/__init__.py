"""End-to-end import runs and their reports."""

from dump_importer.orchestration.pipeline import create_schema, import_data, import_dump
from dump_importer.orchestration.report import ImportReport, TableResult

__all__ = ["create_schema", "import_data", "import_dump", "ImportReport", "TableResult"]
