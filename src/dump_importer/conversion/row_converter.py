"""
Row converter for the data pass.

Maps each parsed insert row onto the target table: column names are
resolved to ids (declared order when the insert omits them), columns
dropped from the target are silently excluded, and every cell goes through
the value conversion for its target type. A failing cell marks the whole
row bad; the rest of the statement is still processed.
"""

import uuid
from typing import List, Optional, Tuple

import structlog

from dump_importer.conversion.values import convert_value, parse_timezone
from dump_importer.domain.context import ConversionContext
from dump_importer.domain.errors import ValueConversionError
from dump_importer.domain.source_schema import SourceTable
from dump_importer.domain.statements import Insert, RowValue, Statement, UnparsableRow
from dump_importer.domain.target_schema import TargetColumn, TargetTable

logger = structlog.get_logger(__name__)


class RowConverter:
    """Convert insert statements into target rows and hand them to the data sink."""

    def __init__(self, ctx: ConversionContext):
        self.ctx = ctx
        self.session_tz = parse_timezone(ctx.timezone_offset)

    def process(self, statement: Statement) -> None:
        if isinstance(statement, Insert):
            self.process_insert(statement)
        elif isinstance(statement, UnparsableRow):
            self._process_unparsable(statement)

    def _tables(self, statement) -> Optional[Tuple[SourceTable, TargetTable]]:
        name = str(statement.table)
        source = self.ctx.source.table_by_name(name)
        target = self.ctx.target.tables.get(source.id) if source is not None and self.ctx.target else None
        if source is None or target is None:
            self.ctx.skip_statement("insert_unknown_table")
            self.ctx.unexpected(f"Data for table {name} with no schema")
            return None
        return source, target

    def _process_unparsable(self, statement: UnparsableRow) -> None:
        tables = self._tables(statement)
        if tables is None:
            return
        source, _ = tables
        self.ctx.stats.rows[source.name] += 1
        self._bad_row(source.name, statement.columns, [statement.text], "row could not be parsed")

    def process_insert(self, statement: Insert) -> None:
        tables = self._tables(statement)
        if tables is None:
            return
        source, target = tables

        column_ids: List[Optional[str]]
        if statement.columns:
            column_ids = []
            for name in statement.columns:
                column = source.column_by_name(name)
                column_ids.append(column.id if column is not None else None)
        else:
            column_ids = list(source.column_ids)
        column_names = statement.columns or [source.columns[c].name for c in source.column_ids]

        unknown = [n for n, cid in zip(column_names, column_ids) if cid is None]
        plan: List[Tuple[int, TargetColumn]] = [
            (position, target.columns[cid])
            for position, cid in enumerate(column_ids)
            if cid is not None and cid in target.columns
        ]
        target_names = [column.name for _, column in plan]
        synthetic = target.columns.get(target.synthetic_pk_column_id) if target.synthetic_pk_column_id else None
        if synthetic is not None:
            target_names.append(synthetic.name)

        for row in statement.rows:
            self.ctx.stats.rows[source.name] += 1
            if unknown:
                self._bad_row(source.name, column_names, row, f"unknown columns {', '.join(unknown)}")
                continue
            if len(row) != len(column_ids):
                self._bad_row(
                    source.name, column_names, row, f"expected {len(column_ids)} values, got {len(row)}"
                )
                continue
            try:
                values = [convert_value(row[position], column, self.session_tz) for position, column in plan]
            except ValueConversionError as e:
                self._bad_row(source.name, column_names, row, str(e))
                continue
            if synthetic is not None:
                values.append(str(uuid.uuid4()))
            self.ctx.write_row(target.name, target_names, values)
            self.ctx.stats.good_rows[source.name] += 1

    def _bad_row(self, table: str, columns: List[str], values: List, reason: str) -> None:
        raw = [v.value if isinstance(v, RowValue) else v for v in values]
        self.ctx.bad_rows.collect_bad_row(table=table, columns=columns, values=raw, reason=reason)
        self.ctx.unexpected(f"Bad row for table {table}")
        logger.debug("row_converter.bad_row", table=table, reason=reason)
