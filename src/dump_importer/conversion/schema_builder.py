"""
Source schema builder.

Consumes DDL statements from the schema pass and grows the source schema
graph in the conversion context. Every table, column, key, index and
constraint gets a fresh id from the context when it is created.

Malformed or unsupported statements never abort the pass: they are logged,
counted as unexpected or skipped, and the next statement is processed.
"""

import re
from typing import TYPE_CHECKING, List, Optional

import structlog

from dump_importer.conversion.type_text import parse_type_text
from dump_importer.domain.context import ConversionContext
from dump_importer.domain.issues import IssueKind
from dump_importer.domain.source_schema import (
    CheckConstraint,
    DefaultValue,
    ForeignKey,
    Ignored,
    Index,
    Key,
    SourceColumn,
    SourceTable,
)
from dump_importer.domain.statements import (
    AddColumn,
    AddConstraint,
    AlterTable,
    ColumnSpec,
    ConstraintKind,
    ConstraintSpec,
    CreateIndex,
    CreateTable,
    DefaultSpec,
    Insert,
    KeyPart,
    ModifyColumn,
    Other,
    ReferenceSpec,
    SetColumnDefault,
    SetVariable,
    Statement,
    UnparsableRow,
    UnsupportedAction,
)

if TYPE_CHECKING:
    from dump_importer.dialects.base import SourceDialect

logger = structlog.get_logger(__name__)

# Collation introducers such as _utf8mb4'abc' in MySQL check constraints
CHARSET_INTRODUCER = re.compile(r"\b_[A-Za-z0-9]+\s*(?=')")

TIME_ZONE_VARIABLES = ("time_zone", "timezone", "time zone")

# Index kinds the target has no equivalent for
DROPPED_INDEX_KINDS = ("FULLTEXT", "SPATIAL")


def _is_wrapped(expression: str) -> bool:
    """True if the whole expression sits inside one pair of parentheses."""
    if not (expression.startswith("(") and expression.endswith(")")):
        return False
    depth = 0
    quote = ""
    for i, ch in enumerate(expression):
        if quote:
            if ch == quote:
                quote = ""
            continue
        if ch in ("'", '"', "`"):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i != len(expression) - 1:
                return False
    return depth == 0


def normalize_check_expression(expression: str) -> str:
    """Strip collation introducers and make sure the expression is parenthesized."""
    text = CHARSET_INTRODUCER.sub("", expression.strip())
    if not _is_wrapped(text):
        text = f"({text})"
    return text


class SchemaBuilder:
    """Build the source schema from schema-pass statements."""

    def __init__(self, ctx: ConversionContext, dialect: "SourceDialect"):
        self.ctx = ctx
        self.dialect = dialect

    def process(self, statement: Statement) -> None:
        if isinstance(statement, CreateTable):
            self._create_table(statement)
        elif isinstance(statement, AlterTable):
            self._alter_table(statement)
        elif isinstance(statement, CreateIndex):
            self._create_index(statement)
        elif isinstance(statement, SetVariable):
            self._set_variable(statement)
        elif isinstance(statement, Insert):
            self.ctx.stats.rows[str(statement.table)] += len(statement.rows)
        elif isinstance(statement, UnparsableRow):
            self.ctx.stats.rows[str(statement.table)] += 1
        elif isinstance(statement, Other):
            self.ctx.skip_statement(statement.kind)
        else:
            self.ctx.unexpected(f"Unhandled statement type {type(statement).__name__}")

    def finalize(self) -> None:
        """Resolve foreign key ids and freeze the source schema."""
        for table in self.ctx.source.tables.values():
            table.foreign_keys = [fk for fk in table.foreign_keys if self._resolve_foreign_key(table, fk)]
        self.ctx.source.frozen = True
        logger.info(
            "schema_builder.finalized",
            tables=len(self.ctx.source.tables),
            columns=sum(len(t.columns) for t in self.ctx.source.tables.values()),
        )

    # -- statements ----------------------------------------------------------

    def _frozen(self) -> bool:
        if self.ctx.source.frozen:
            self.ctx.unexpected("DDL statement after the source schema was frozen")
            return True
        return False

    def _lookup(self, statement_table, kind: str) -> Optional[SourceTable]:
        table = self.ctx.source.table_by_name(str(statement_table))
        if table is None:
            self.ctx.skip_statement(f"{kind}_unknown_table")
            logger.info("schema_builder.unknown_table", table=str(statement_table), statement=kind)
        return table

    def _create_table(self, statement: CreateTable) -> None:
        if self._frozen():
            return
        name = str(statement.table)
        if not statement.table.name:
            self.ctx.unexpected("CREATE TABLE without a table name")
            return
        if self.ctx.source.table_by_name(name) is not None:
            self.ctx.unexpected(f"Duplicate CREATE TABLE for {name}")
            logger.warning("schema_builder.duplicate_table", table=name)
            return

        table = SourceTable(id=self.ctx.new_id("t"), name=name, namespace=statement.table.namespace)
        self.ctx.source.tables[table.id] = table
        for spec in statement.columns:
            self._add_column(table, spec)
        for constraint in statement.constraints:
            self._apply_constraint(table, constraint)
        for column_name in statement.spatial_columns:
            column = table.column_by_name(column_name)
            if column is not None:
                self.ctx.issues.add(table.id, IssueKind.SPATIAL, column_id=column.id)
        logger.debug("schema_builder.table_created", table=name, columns=len(table.columns))

    def _alter_table(self, statement: AlterTable) -> None:
        if self._frozen():
            return
        table = self._lookup(statement.table, "alter_table")
        if table is None:
            return
        for action in statement.actions:
            if isinstance(action, AddConstraint):
                self._apply_constraint(table, action.constraint)
            elif isinstance(action, AddColumn):
                self._add_column(table, action.column)
            elif isinstance(action, ModifyColumn):
                self._modify_column(table, action)
            elif isinstance(action, SetColumnDefault):
                self._set_default(table, action)
            elif isinstance(action, UnsupportedAction):
                self.ctx.unexpected(f"Unsupported ALTER TABLE action {action.description}")

    def _create_index(self, statement: CreateIndex) -> None:
        if self._frozen():
            return
        table = self._lookup(statement.table, "create_index")
        if table is None:
            return
        name = statement.name or f"{self._base_name(table)}_{'_'.join(k.column for k in statement.keys)}_idx"
        if statement.index_kind in DROPPED_INDEX_KINDS:
            self._drop_index(table, name, statement.index_kind)
            return
        keys = self._keys(table, statement.keys)
        if keys is None:
            return
        table.indexes.append(Index(id=self.ctx.new_id("i"), name=name, keys=keys, unique=statement.unique))

    def _set_variable(self, statement: SetVariable) -> None:
        name = statement.name.lower().lstrip("@").replace("session.", "")
        if name not in TIME_ZONE_VARIABLES:
            return
        if not statement.is_literal or not statement.value:
            logger.debug("schema_builder.time_zone_ignored", value=statement.value)
            return
        self.ctx.timezone_offset = statement.value
        logger.info("schema_builder.time_zone_set", time_zone=statement.value)

    # -- columns -------------------------------------------------------------

    def _default_value(self, spec: Optional[DefaultSpec]) -> Optional[DefaultValue]:
        if spec is None:
            return None
        return DefaultValue(
            expression_id=self.ctx.new_id("e"),
            statement=spec.expression,
            literal=spec.literal,
            is_literal=spec.literal is not None,
        )

    def _add_column(self, table: SourceTable, spec: ColumnSpec) -> None:
        if not spec.name or not spec.type_text:
            self.ctx.unexpected(f"Column without name or type in {table.name}")
            return
        if table.column_by_name(spec.name) is not None:
            self.ctx.unexpected(f"Duplicate column {spec.name} in {table.name}")
            return

        column = SourceColumn(
            id=self.ctx.new_id("c"),
            name=spec.name,
            type=parse_type_text(spec.type_text),
            not_null=spec.not_null or spec.primary_key,
            ignored=Ignored(
                default=spec.default is not None,
                check=spec.check is not None,
                foreign_key=spec.reference is not None,
                auto_increment=spec.auto_increment or spec.identity,
            ),
            default=self._default_value(spec.default),
            comment=spec.comment,
        )
        column.auto_gen = self.dialect.get_auto_gen_strategy(column)
        table.add_column(column)

        base = self._base_name(table)
        if spec.primary_key:
            self._set_primary_key(table, [Key(column_id=column.id, order=1)])
        if spec.unique:
            table.indexes.append(
                Index(
                    id=self.ctx.new_id("i"),
                    name=f"{base}_{spec.name}_key",
                    keys=[Key(column_id=column.id, order=1)],
                    unique=True,
                )
            )
        if spec.check is not None:
            table.checks.append(
                CheckConstraint(
                    id=self.ctx.new_id("k"),
                    name=f"{base}_{spec.name}_check",
                    expression=normalize_check_expression(spec.check),
                    expression_id=self.ctx.new_id("e"),
                )
            )
        if spec.reference is not None:
            self._add_foreign_key(table, f"{base}_{spec.name}_fkey", [spec.name], spec.reference)

    def _modify_column(self, table: SourceTable, action: ModifyColumn) -> None:
        spec = action.column
        column = table.column_by_name(action.rename_from or spec.name)
        if column is None:
            self.ctx.unexpected(f"ALTER TABLE {table.name} modifies unknown column {action.rename_from or spec.name}")
            return
        column.name = spec.name
        if spec.type_text:
            column.type = parse_type_text(spec.type_text)
        column.not_null = spec.not_null or spec.primary_key
        column.default = self._default_value(spec.default)
        column.comment = spec.comment
        column.ignored = Ignored(
            default=spec.default is not None,
            check=spec.check is not None,
            foreign_key=spec.reference is not None,
            auto_increment=spec.auto_increment or spec.identity,
        )
        column.auto_gen = self.dialect.get_auto_gen_strategy(column)
        if spec.primary_key:
            self._set_primary_key(table, [Key(column_id=column.id, order=1)])

    def _set_default(self, table: SourceTable, action: SetColumnDefault) -> None:
        column = table.column_by_name(action.column)
        if column is None:
            self.ctx.unexpected(f"ALTER TABLE {table.name} sets default on unknown column {action.column}")
            return
        column.default = self._default_value(action.default)
        column.ignored.default = action.default is not None
        column.auto_gen = self.dialect.get_auto_gen_strategy(column)

    # -- constraints ---------------------------------------------------------

    def _base_name(self, table: SourceTable) -> str:
        return table.name.rsplit(".", 1)[-1]

    def _keys(self, table: SourceTable, parts: List[KeyPart]) -> Optional[List[Key]]:
        keys = []
        for order, part in enumerate(parts, start=1):
            column = table.column_by_name(part.column)
            if column is None:
                self.ctx.unexpected(f"Key on {table.name} names unknown column {part.column}")
                return None
            keys.append(Key(column_id=column.id, desc=part.desc, order=order))
        if not keys:
            self.ctx.unexpected(f"Key on {table.name} has no columns")
            return None
        return keys

    def _set_primary_key(self, table: SourceTable, keys: List[Key]) -> None:
        if table.primary_keys:
            # The last declaration wins
            logger.warning("schema_builder.multiple_primary_keys", table=table.name, msg="Multiple primary keys found")
        table.primary_keys = keys
        for key in keys:
            table.columns[key.column_id].not_null = True

    def _add_foreign_key(
        self, table: SourceTable, name: str, column_names: List[str], reference: Optional[ReferenceSpec]
    ) -> None:
        if reference is None:
            self.ctx.unexpected(f"Foreign key {name} on {table.name} has no referenced table")
            return
        refer_table = self.dialect.normalize_table(reference.table)
        table.foreign_keys.append(
            ForeignKey(
                id=self.ctx.new_id("f"),
                name=name,
                column_names=list(column_names),
                refer_table_name=str(refer_table),
                refer_column_names=list(reference.columns),
                on_delete=reference.on_delete,
                on_update=reference.on_update,
            )
        )

    def _drop_index(self, table: SourceTable, name: str, kind: str) -> None:
        self.ctx.issues.add(table.id, IssueKind.INDEX_DROPPED, detail=f"{kind} {name}")
        logger.info("schema_builder.index_dropped", table=table.name, index=name, kind=kind)

    def _apply_constraint(self, table: SourceTable, constraint: ConstraintSpec) -> None:
        base = self._base_name(table)
        column_part = "_".join(k.column for k in constraint.columns)

        if constraint.kind == ConstraintKind.PRIMARY_KEY:
            keys = self._keys(table, constraint.columns)
            if keys is not None:
                self._set_primary_key(table, keys)
        elif constraint.kind == ConstraintKind.FOREIGN_KEY:
            name = constraint.name or f"{base}_{column_part}_fkey"
            self._add_foreign_key(table, name, [k.column for k in constraint.columns], constraint.reference)
        elif constraint.kind in (ConstraintKind.UNIQUE, ConstraintKind.INDEX):
            name = constraint.name or f"{base}_{column_part}_{'key' if constraint.kind == ConstraintKind.UNIQUE else 'idx'}"
            if constraint.index_kind in DROPPED_INDEX_KINDS:
                self._drop_index(table, name, constraint.index_kind)
                return
            keys = self._keys(table, constraint.columns)
            if keys is not None:
                table.indexes.append(
                    Index(
                        id=self.ctx.new_id("i"),
                        name=name,
                        keys=keys,
                        unique=constraint.kind == ConstraintKind.UNIQUE,
                    )
                )
        elif constraint.kind == ConstraintKind.CHECK:
            if not constraint.expression:
                self.ctx.unexpected(f"Check constraint without expression on {table.name}")
                return
            table.checks.append(
                CheckConstraint(
                    id=self.ctx.new_id("k"),
                    name=constraint.name or f"{base}_check{len(table.checks) + 1}",
                    expression=normalize_check_expression(constraint.expression),
                    expression_id=self.ctx.new_id("e"),
                )
            )

    def _resolve_foreign_key(self, table: SourceTable, fk: ForeignKey) -> bool:
        refer = self.ctx.source.table_by_name(fk.refer_table_name)
        if refer is None:
            self.ctx.unexpected(f"Foreign key {fk.name} on {table.name} references unknown table {fk.refer_table_name}")
            return False

        column_ids = []
        for name in fk.column_names:
            column = table.column_by_name(name)
            if column is None:
                self.ctx.unexpected(f"Foreign key {fk.name} on {table.name} names unknown column {name}")
                return False
            column_ids.append(column.id)

        if fk.refer_column_names:
            refer_ids = []
            for name in fk.refer_column_names:
                column = refer.column_by_name(name)
                if column is None:
                    self.ctx.unexpected(f"Foreign key {fk.name} references unknown column {refer.name}.{name}")
                    return False
                refer_ids.append(column.id)
        else:
            refer_ids = [k.column_id for k in sorted(refer.primary_keys, key=lambda k: k.order)]

        if len(refer_ids) != len(column_ids):
            self.ctx.unexpected(f"Foreign key {fk.name} on {table.name} has mismatched column counts")
            return False

        fk.column_ids = column_ids
        fk.refer_table_id = refer.id
        fk.refer_column_ids = refer_ids
        return True
