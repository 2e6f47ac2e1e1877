"""Domain model: statements, source/target schema graphs, issues, context and DDL."""

from dump_importer.domain.context import ConversionContext, ConversionStats, Mode
from dump_importer.domain.ddl import GOOGLE_SQL, POSTGRESQL, render_schema_ddl
from dump_importer.domain.errors import (
    BatchWriteError,
    DumpImportError,
    DumpParseError,
    DumpReadError,
    ImportCancelledError,
    SchemaApplicationError,
    TransientWriteError,
    UnsupportedDumpFormatError,
    ValueConversionError,
)
from dump_importer.domain.issues import Issue, IssueKind, IssueRegistry
from dump_importer.domain.source_schema import SourceSchema, SourceTable
from dump_importer.domain.target_schema import TargetSchema, TargetTable, TargetType

__all__ = [
    "ConversionContext",
    "ConversionStats",
    "Mode",
    "GOOGLE_SQL",
    "POSTGRESQL",
    "render_schema_ddl",
    "BatchWriteError",
    "DumpImportError",
    "DumpParseError",
    "DumpReadError",
    "ImportCancelledError",
    "SchemaApplicationError",
    "TransientWriteError",
    "UnsupportedDumpFormatError",
    "ValueConversionError",
    "Issue",
    "IssueKind",
    "IssueRegistry",
    "SourceSchema",
    "SourceTable",
    "TargetSchema",
    "TargetTable",
    "TargetType",
]
