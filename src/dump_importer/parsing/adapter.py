"""
Statement parser adapter.

Accumulates dump lines into a chunk, parses the chunk with sqlglot whenever a
statement terminator or end of stream is seen, and repairs chunks that fail
to parse:

- administrative comments and server-side objects are skipped
- DELIMITER regions and dollar-quoted bodies are accumulated whole
- a multi-row INSERT is split into single-row inserts; rows that still fail
  become bad rows
- spatial types are rewritten to text and the chunk is parsed again

If nothing applies, another line is read and the parse retried. Reaching the
end of the stream with an unparsed chunk is fatal.
"""

import re
from typing import TYPE_CHECKING, Iterator, List, Optional, Set

import sqlglot
import structlog
from sqlglot import ErrorLevel
from sqlglot.errors import SqlglotError

from dump_importer.domain.context import ConversionContext
from dump_importer.domain.errors import DumpParseError
from dump_importer.domain.statements import (
    AddConstraint,
    AlterTable,
    ConstraintKind,
    CreateIndex,
    CreateTable,
    Insert,
    Other,
    RowValue,
    Statement,
    TableName,
    UnparsableRow,
    ValueKind,
)
from dump_importer.io.reader import StatementReader
from dump_importer.parsing.translator import StatementTranslator
from dump_importer.parsing.values import decode_copy_line, quotes_balanced, split_insert

if TYPE_CHECKING:
    from dump_importer.dialects.base import SourceDialect

logger = structlog.get_logger(__name__)

# Rows per Insert statement emitted from one COPY block
COPY_BATCH_ROWS = 1000

SPATIAL_TYPE_NAMES = (
    r"(?:GEOMETRYCOLLECTION|GEOMCOLLECTION|MULTILINESTRING|MULTIPOLYGON|"
    r"MULTIPOINT|LINESTRING|POLYGON|GEOMETRY|POINT)"
)


class _NeedMore:
    """Marker: the chunk is incomplete, read another line."""


NEED_MORE = _NeedMore()


def statement_kind(statement: Statement) -> str:
    if isinstance(statement, Other):
        return statement.kind
    return {
        CreateTable: "create_table",
        AlterTable: "alter_table",
        CreateIndex: "create_index",
        Insert: "insert",
        UnparsableRow: "insert",
    }.get(type(statement), type(statement).__name__.lower())


def _mark_index_kind(statements: List[Statement], names: Optional[Set[str]], kind: str) -> None:
    """Set index_kind on the indexes named in names (every index when names is None)."""
    for statement in statements:
        if isinstance(statement, CreateIndex):
            if names is None or statement.name in names:
                statement.index_kind = kind
            continue
        if isinstance(statement, CreateTable):
            constraints = statement.constraints
        elif isinstance(statement, AlterTable):
            constraints = [a.constraint for a in statement.actions if isinstance(a, AddConstraint)]
        else:
            continue
        for constraint in constraints:
            if constraint.kind == ConstraintKind.INDEX and (names is None or constraint.name in names):
                constraint.index_kind = kind


class DumpStatementParser:
    """Turn a dump stream into Statement objects for one source dialect."""

    # mysqldump writes these as comments; they must never reach the parser
    ADMIN_COMMENT_PATTERN = re.compile(r"^(\/\*[!0-9\s]*SELECT[^\n]*INTO[\s]+@[^\n]*\*\/;\n)$")
    VERSIONED_COMMENT_PATTERN = re.compile(r"/\*!\d*\s?(.*?)\*/", re.DOTALL)
    LEADING_COMMENT_PATTERN = re.compile(r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*(?!!).*?\*/)+", re.DOTALL)
    LEADING_HASH_COMMENT_PATTERN = re.compile(r"\A(?:\s+|#[^\n]*(?:\n|\Z))+")
    DELIMITER_PATTERN = re.compile(r"^\s*DELIMITER\s+\S+", re.IGNORECASE | re.MULTILINE)
    DOLLAR_QUOTE_PATTERN = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")
    ROUTINE_PATTERN = re.compile(
        r"^\s*(?:CREATE|DROP|ALTER)\s+(?:OR\s+REPLACE\s+)?(?:DEFINER\s*=\s*\S+\s+)?"
        r"(?:IF\s+EXISTS\s+)?(PROCEDURE|FUNCTION|TRIGGER|EVENT)\b",
        re.IGNORECASE,
    )
    ROUTINE_IN_REGION_PATTERN = re.compile(
        r"\bCREATE\b[^;]*?\b(PROCEDURE|FUNCTION|TRIGGER|EVENT)\b", re.IGNORECASE
    )
    COPY_PATTERN = re.compile(
        r"^\s*COPY\s+(?P<table>(?:\"[^\"]+\"|[^\s(\".]+)(?:\.(?:\"[^\"]+\"|[^\s(\".]+))?)"
        r"\s*(?:\((?P<columns>[^)]*)\))?\s+FROM\s+stdin\s*;",
        re.IGNORECASE,
    )
    INSERT_TABLE_PATTERN = re.compile(
        r"^\s*(?:INSERT|REPLACE)\s+(?:IGNORE\s+)?INTO\s+"
        r"(?P<table>(?:[`\"][^`\"]+[`\"]|[^\s(`\".]+)(?:\s*\.\s*(?:[`\"][^`\"]+[`\"]|[^\s(`\".]+))?)",
        re.IGNORECASE,
    )
    SPATIAL_COLUMN_PATTERN = re.compile(rf"[`\"]?(\w+)[`\"]?\s+{SPATIAL_TYPE_NAMES}\b", re.IGNORECASE)
    SPATIAL_TYPE_PATTERN = re.compile(rf"\s{SPATIAL_TYPE_NAMES}\b", re.IGNORECASE)
    SPATIAL_KEYWORD_PATTERN = re.compile(r"\sSPATIAL\s", re.IGNORECASE)
    SRID_PATTERN = re.compile(r"\sSRID\s\d*", re.IGNORECASE)
    SPATIAL_INDEX_NAME_PATTERN = re.compile(r"\bSPATIAL\s+(?:KEY|INDEX)\s+[`\"]?(\w+)[`\"]?", re.IGNORECASE)
    CREATE_INDEX_KIND_PATTERN = re.compile(r"^(\s*CREATE\s+)(FULLTEXT|SPATIAL)\s+(?=INDEX\b)", re.IGNORECASE)

    def __init__(self, dialect: "SourceDialect"):
        self.dialect = dialect
        self.translator = StatementTranslator(dialect.sqlglot_dialect)
        self._admin_patterns = [
            (re.compile(pattern, re.IGNORECASE), kind)
            for pattern, kind in dialect.ADMIN_STATEMENT_PATTERNS
        ]

    def statements(
        self,
        reader: StatementReader,
        ctx: ConversionContext,
        table_filter: Optional[str] = None,
    ) -> Iterator[Statement]:
        """Yield statements until end of stream.

        Args:
            reader: Line reader positioned at the start of the dump
            ctx: Conversion context; receives skip and reparse counters
            table_filter: When set, only INSERT/COPY data for this source
                table is parsed; every other chunk is dropped unparsed

        Raises:
            DumpParseError: If the trailing chunk cannot be parsed
            ImportCancelledError: If the context is cancelled between statements
        """
        lines: List[str] = []
        while True:
            ctx.check_cancelled()
            line = reader.read_line()
            at_eof = reader.eof
            if line:
                lines.append(line)
            if not lines:
                if at_eof:
                    return
                continue
            if not at_eof and ";" not in line:
                continue

            chunk = "".join(lines)
            result = self._process_chunk(chunk, ctx, table_filter, reader)
            if result is NEED_MORE:
                if at_eof:
                    logger.error(
                        "parser.unparsable_tail",
                        lines=len(lines),
                        line_number=reader.line_number,
                        byte_offset=reader.byte_offset,
                    )
                    raise DumpParseError(len(lines), reader.line_number, reader.byte_offset)
                ctx.stats.reparsed += 1
                continue

            lines = []
            for statement in result:
                if not getattr(statement, "continued", False):
                    ctx.count_statement(statement_kind(statement))
                yield statement
            if at_eof:
                return

    # -- chunk classification ----------------------------------------------

    def _strip_leading_comments(self, text: str) -> str:
        previous = None
        while previous != text:
            previous = text
            text = self.LEADING_COMMENT_PATTERN.sub("", text)
            if self.dialect.hash_comments:
                text = self.LEADING_HASH_COMMENT_PATTERN.sub("", text)
        return text

    def _skip(self, ctx: ConversionContext, kind: str, table_filter: Optional[str]) -> List[Statement]:
        if table_filter is None:
            ctx.skip_statement(kind)
            logger.debug("parser.statement_skipped", kind=kind)
        return []

    def _process_chunk(
        self,
        chunk: str,
        ctx: ConversionContext,
        table_filter: Optional[str],
        reader: StatementReader,
    ):
        if self.ADMIN_COMMENT_PATTERN.match(chunk):
            return self._skip(ctx, "admin_comment", table_filter)

        body = self._strip_leading_comments(self.VERSIONED_COMMENT_PATTERN.sub(r"\1", chunk))
        if not body.strip():
            return []

        if self.dialect.supports_delimiter and self.DELIMITER_PATTERN.match(body):
            if len(self.DELIMITER_PATTERN.findall(body)) < 2:
                return NEED_MORE
            routines = self.ROUTINE_IN_REGION_PATTERN.findall(body)
            for kind in routines or ["delimiter_block"]:
                self._skip(ctx, kind.lower(), table_filter)
            return []

        if len(self.DOLLAR_QUOTE_PATTERN.findall(body)) % 2:
            return NEED_MORE

        routine = self.ROUTINE_PATTERN.match(body)
        if routine:
            return self._skip(ctx, routine.group(1).lower(), table_filter)

        if not quotes_balanced(body, self.dialect.backslash_escapes, self.dialect.hash_comments):
            return NEED_MORE

        for pattern, kind in self._admin_patterns:
            if pattern.match(body):
                return self._skip(ctx, kind, table_filter)

        if self.dialect.supports_copy:
            copy = self.COPY_PATTERN.match(body)
            if copy:
                return self._read_copy_block(copy, ctx, table_filter, reader)

        if table_filter is not None:
            match = self.INSERT_TABLE_PATTERN.match(body)
            if match is None or self._filter_name(match.group("table")) != table_filter:
                return []

        keyed_index = self.CREATE_INDEX_KIND_PATTERN.match(body)
        if keyed_index:
            # CREATE FULLTEXT|SPATIAL INDEX: parse as a plain index, keep the kind
            result = self._parse(self.CREATE_INDEX_KIND_PATTERN.sub(r"\1", body, count=1), ctx)
            if result is not NEED_MORE:
                _mark_index_kind(result, None, keyed_index.group(2).upper())
            return result

        return self._parse(body, ctx)

    def _filter_name(self, raw: str) -> str:
        parts = [p.strip().strip('`"') for p in raw.split(".")]
        table = TableName(name=parts[-1], namespace=parts[0] if len(parts) > 1 else "")
        return str(self.dialect.normalize_table(table))

    # -- parsing and repair --------------------------------------------------

    def _parse_trees(self, sql: str) -> List[Statement]:
        trees = sqlglot.parse(sql, read=self.dialect.sqlglot_dialect, error_level=ErrorLevel.IMMEDIATE)
        statements: List[Statement] = []
        for tree in trees:
            if tree is None:
                continue
            statements.extend(self.translator.translate(tree))
        return [self._normalize(s) for s in statements]

    def _normalize(self, statement: Statement) -> Statement:
        table = getattr(statement, "table", None)
        if isinstance(table, TableName):
            statement.table = self.dialect.normalize_table(table)  # type: ignore[union-attr]
        return statement

    def _parse(self, body: str, ctx: ConversionContext):
        try:
            return self._parse_trees(body)
        except SqlglotError as e:
            logger.debug("parser.parse_failed", error=str(e)[:200], chunk=body[:200])

        if self.INSERT_TABLE_PATTERN.match(body):
            repaired = self._split_insert(body, ctx)
            if repaired is not None:
                return repaired

        if self.SPATIAL_TYPE_PATTERN.search(body):
            repaired = self._rewrite_spatial(body, ctx)
            if repaired is not None:
                return repaired

        return NEED_MORE

    def _split_insert(self, body: str, ctx: ConversionContext) -> Optional[List[Statement]]:
        split = split_insert(body, self.dialect.backslash_escapes)
        if split is None or not split[1]:
            return None
        prefix, tuples = split
        try:
            header = self._parse_trees(f"{prefix} (NULL);")
        except SqlglotError:
            return None
        if len(header) != 1 or not isinstance(header[0], Insert):
            return None

        ctx.stats.reparsed += 1
        template = header[0]
        rows: List[List[RowValue]] = []
        bad: List[Statement] = []
        for text in tuples:
            try:
                parsed = self._parse_trees(f"{prefix} {text};")
            except SqlglotError:
                parsed = []
            if len(parsed) == 1 and isinstance(parsed[0], Insert) and len(parsed[0].rows) == 1:
                rows.append(parsed[0].rows[0])
            else:
                bad.append(UnparsableRow(table=template.table, columns=template.columns, text=text))
        logger.info(
            "parser.insert_split",
            table=str(template.table),
            rows=len(rows),
            bad_rows=len(bad),
        )
        statements: List[Statement] = []
        if rows:
            statements.append(Insert(table=template.table, columns=template.columns, rows=rows))
        statements.extend(bad)
        for statement in statements[1:]:
            statement.continued = True  # type: ignore[union-attr]
        return statements

    def _rewrite_spatial(self, body: str, ctx: ConversionContext) -> Optional[List[Statement]]:
        columns = self.SPATIAL_COLUMN_PATTERN.findall(body)
        index_names = set(self.SPATIAL_INDEX_NAME_PATTERN.findall(body))
        rewritten = self.SPATIAL_TYPE_PATTERN.sub(" text", body)
        rewritten = self.SPATIAL_KEYWORD_PATTERN.sub(" ", rewritten)
        rewritten = self.SRID_PATTERN.sub(" ", rewritten)
        try:
            statements = self._parse_trees(rewritten)
        except SqlglotError as e:
            logger.debug("parser.spatial_rewrite_failed", error=str(e)[:200])
            return None
        ctx.stats.reparsed += 1
        for statement in statements:
            if isinstance(statement, CreateTable):
                statement.spatial_columns = list(columns)
        _mark_index_kind(statements, index_names, "SPATIAL")
        logger.info("parser.spatial_rewrite", columns=columns, spatial_indexes=sorted(index_names))
        return statements

    def _read_copy_block(
        self,
        match: "re.Match[str]",
        ctx: ConversionContext,
        table_filter: Optional[str],
        reader: StatementReader,
    ) -> Iterator[Statement]:
        """Consume the COPY data lines up to the ``\\.`` terminator.

        Rows are yielded as Insert statements of at most COPY_BATCH_ROWS rows.
        """
        raw_table = match.group("table")
        parts = [p.strip('"') for p in raw_table.split(".")]
        table = self.dialect.normalize_table(
            TableName(name=parts[-1], namespace=parts[0] if len(parts) > 1 else "")
        )
        columns = [c.strip().strip('"') for c in (match.group("columns") or "").split(",") if c.strip()]
        wanted = table_filter is None or str(table) == table_filter
        if wanted:
            # The block counts as one insert however many batches it yields
            ctx.count_statement("insert")

        rows: List[List[RowValue]] = []
        while True:
            line = reader.read_line()
            if reader.eof and not line:
                raise DumpParseError(1, reader.line_number, reader.byte_offset)
            if line.rstrip("\r\n") == "\\.":
                break
            if not wanted:
                continue
            rows.append(
                [
                    RowValue(None, ValueKind.NULL) if v is None else RowValue(v, ValueKind.TEXT)
                    for v in decode_copy_line(line)
                ]
            )
            if len(rows) >= COPY_BATCH_ROWS:
                yield Insert(table=table, columns=columns, rows=rows, continued=True)
                rows = []
        if rows:
            yield Insert(table=table, columns=columns, rows=rows, continued=True)
