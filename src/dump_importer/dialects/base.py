"""
Source dialect capability interface and registry.

A dialect bundles everything that differs between dump formats: how the
dump is parsed, how source types map onto target types, and how
auto-generated column values are recognized. One dialect is selected per
run; the rest of the pipeline is dialect-agnostic.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple, Type

import structlog

from dump_importer.conversion.row_converter import RowConverter
from dump_importer.conversion.schema_builder import SchemaBuilder
from dump_importer.domain.context import ConversionContext, Mode
from dump_importer.domain.errors import UnsupportedDumpFormatError
from dump_importer.domain.issues import IssueKind
from dump_importer.domain.source_schema import AutoGen, SourceColumn, SourceType
from dump_importer.domain.statements import TableName
from dump_importer.domain.target_schema import MAX_LENGTH, TargetType
from dump_importer.io.reader import StatementReader
from dump_importer.parsing.adapter import DumpStatementParser

logger = structlog.get_logger(__name__)

TypeMapping = Tuple[TargetType, List[IssueKind]]

STRING_MAX = TargetType("STRING", MAX_LENGTH)
BYTES_MAX = TargetType("BYTES", MAX_LENGTH)

# Largest precision/scale the target NUMERIC type holds exactly
NUMERIC_MAX_PRECISION = 38
NUMERIC_MAX_SCALE = 9


class SourceDialect(ABC):
    """Capability interface: parse_dump, map_type, get_auto_gen_strategy."""

    name: str = ""
    sqlglot_dialect: str = ""
    backslash_escapes: bool = True
    hash_comments: bool = False
    supports_delimiter: bool = False
    supports_copy: bool = False

    # (regex, skipped-statement kind) pairs matched against the start of a chunk
    ADMIN_STATEMENT_PATTERNS: List[Tuple[str, str]] = []

    def parse_dump(
        self,
        reader: StatementReader,
        ctx: ConversionContext,
        table_filter: Optional[str] = None,
    ) -> None:
        """Run one pass over the dump.

        In schema mode statements build the source schema, which is frozen
        at the end of the pass. In data mode inserts are converted to rows
        and handed to the context's data sink.
        """
        parser = DumpStatementParser(self)
        if ctx.mode == Mode.SCHEMA:
            builder = SchemaBuilder(ctx, self)
            for statement in parser.statements(reader, ctx):
                builder.process(statement)
            builder.finalize()
        else:
            converter = RowConverter(ctx)
            for statement in parser.statements(reader, ctx, table_filter=table_filter):
                converter.process(statement)

    def normalize_table(self, table: TableName) -> TableName:
        return table

    @abstractmethod
    def map_type(self, source_type: SourceType, column: Optional[SourceColumn] = None) -> TypeMapping:
        """Map a source type to exactly one target type plus zero or more issues."""

    @abstractmethod
    def get_auto_gen_strategy(self, column: SourceColumn) -> AutoGen:
        """Classify how the column's values are generated by the source database."""

    def _decimal(self, source_type: SourceType) -> TypeMapping:
        mods = source_type.mods
        precision = mods[0] if mods else 10
        scale = mods[1] if len(mods) > 1 else 0
        if precision > NUMERIC_MAX_PRECISION or scale > NUMERIC_MAX_SCALE:
            return STRING_MAX, [IssueKind.DECIMAL_PRECISION]
        return TargetType("NUMERIC"), []

    def _string(self, source_type: SourceType) -> TargetType:
        if source_type.mods and source_type.mods[0] > 0:
            return TargetType("STRING", source_type.mods[0])
        return STRING_MAX


_REGISTRY: Dict[str, Type[SourceDialect]] = {}


def register_dialect(cls: Type[SourceDialect]) -> Type[SourceDialect]:
    _REGISTRY[cls.name] = cls
    return cls


def supported_formats() -> List[str]:
    return sorted(_REGISTRY)


def get_dialect(source_format: str) -> SourceDialect:
    """Return the dialect for a dump format.

    Raises:
        UnsupportedDumpFormatError: If no dialect handles the format
    """
    cls = _REGISTRY.get(source_format.strip().lower())
    if cls is None:
        logger.error("dialects.unsupported_format", source_format=source_format)
        raise UnsupportedDumpFormatError(source_format, supported_formats())
    return cls()
