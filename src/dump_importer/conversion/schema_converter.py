"""
Schema-to-target converter.

Runs once, after the schema pass has frozen the source schema, and produces
the target schema graph in a single pass over the source tables:

1. map column types through the dialect (or a type override) and record
   lossy conversions as issues
2. sanitize table, column and object names for the target
3. carry over literal defaults, rewrite check constraints onto target names
4. remap primary keys, foreign keys and indexes by id
5. emit sequences for auto-increment columns
6. apply column exclusions and renames from the override file
7. synthesize a surrogate primary key where none is declared
8. detect interleaved parent/child tables

Table and column ids are reused from the source schema so issues recorded
during the schema pass stay attached to the right target entities.
"""

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import structlog

from dump_importer.config.overrides import SchemaOverrides
from dump_importer.conversion.naming import NameAllocator
from dump_importer.domain.context import ConversionContext
from dump_importer.domain.ddl import EXPRESSION_DIALECTS, GOOGLE_SQL, POSTGRESQL, quoter
from dump_importer.domain.expressions import rewrite_identifiers
from dump_importer.domain.issues import IssueKind
from dump_importer.domain.source_schema import (
    AutoGen,
    AutoGenStrategy,
    ForeignKey,
    SourceColumn,
    SourceTable,
)
from dump_importer.domain.target_schema import (
    MAX_LENGTH,
    IndexKey,
    InterleaveParent,
    Sequence,
    TargetCheck,
    TargetColumn,
    TargetForeignKey,
    TargetIndex,
    TargetSchema,
    TargetTable,
    TargetType,
)

if TYPE_CHECKING:
    from dump_importer.dialects.base import SourceDialect

logger = structlog.get_logger(__name__)

SYNTHETIC_PK_NAME = "synth_id"
SYNTHETIC_PK_TYPE = TargetType("STRING", 50)

ON_DELETE_ACTIONS = ("CASCADE", "NO ACTION")
ON_UPDATE_ACTIONS = ("NO ACTION",)
# Same semantics as NO ACTION for an immediately checked constraint
EQUIVALENT_ACTIONS = {"RESTRICT": "NO ACTION"}

TRUE_LITERALS = ("1", "true", "t", "yes", "on")
FALSE_LITERALS = ("0", "false", "f", "no", "off")


def parse_target_type(text: str) -> TargetType:
    """Parse an override such as ``STRING(36)``, ``BYTES(MAX)`` or ``INT64``."""
    text = text.strip().upper()
    if "(" not in text:
        return TargetType(text)
    name, _, rest = text.partition("(")
    length_text = rest.rstrip(")").strip()
    length = MAX_LENGTH if length_text == "MAX" else int(length_text)
    return TargetType(name.strip(), length)


def render_string_literal(value: str, target_dialect: str) -> str:
    if target_dialect == POSTGRESQL:
        return "'" + value.replace("'", "''") + "'"
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class SchemaConverter:
    """Convert the frozen source schema into the target schema."""

    def __init__(
        self,
        ctx: ConversionContext,
        dialect: "SourceDialect",
        overrides: Optional[SchemaOverrides] = None,
        target_dialect: str = GOOGLE_SQL,
        detect_interleaving: bool = True,
    ):
        self.ctx = ctx
        self.dialect = dialect
        self.overrides = overrides or SchemaOverrides()
        self.target_dialect = target_dialect
        self.detect_interleaving = detect_interleaving
        self.schema = TargetSchema(
            expression_dialect=EXPRESSION_DIALECTS[target_dialect],
            quote=quoter(target_dialect),
        )
        self._table_names = NameAllocator()
        self._object_names = NameAllocator()
        self._column_names: Dict[str, NameAllocator] = {}
        # source sequence name -> target sequence
        self._sequences: Dict[str, Sequence] = {}

    def convert(self) -> TargetSchema:
        source = self.ctx.source
        if not source.frozen:
            logger.warning("converter.source_not_frozen")

        tables = list(source.tables.values())
        for src in tables:
            self._convert_table(src)
        for src in tables:
            self._convert_keys(src)
        for src in tables:
            self._convert_sequences(src)
        for src in tables:
            self._apply_overrides(src)
        for table in self.schema.tables.values():
            if not table.primary_keys:
                self._add_synthetic_key(table)
        if self.detect_interleaving:
            self._detect_interleaving()

        self.ctx.target = self.schema
        logger.info(
            "converter.completed",
            tables=len(self.schema.tables),
            sequences=len(self.schema.sequences),
            issues=len(self.ctx.issues),
        )
        return self.schema

    # -- names ---------------------------------------------------------------

    def _allocate(self, allocator: NameAllocator, name: str, table_id: str, column_id: Optional[str] = None) -> str:
        allocated = allocator.allocate(name)
        if allocated != name:
            self.ctx.issues.add(table_id, IssueKind.ILLEGAL_NAME, column_id=column_id, detail=f"{name} -> {allocated}")
        return allocated

    # -- tables and columns --------------------------------------------------

    def _convert_table(self, src: SourceTable) -> None:
        table = TargetTable(id=src.id, name=self._allocate(self._table_names, src.name, src.id))
        self._object_names.reserve(table.name)
        columns = NameAllocator()
        self._column_names[table.id] = columns

        for col in src.ordered_columns():
            target_type = self._map_type(src, col)
            table.add_column(
                TargetColumn(
                    id=col.id,
                    name=self._allocate(columns, col.name, src.id, col.id),
                    type=target_type,
                    not_null=col.not_null,
                    default=self._default(src, col, target_type),
                    auto_gen=AutoGen(strategy=col.auto_gen.strategy, name=col.auto_gen.name),
                    comment=col.comment,
                )
            )

        renames = {col.name: table.columns[col.id].name for col in src.ordered_columns()}
        for check in src.checks:
            table.checks.append(
                TargetCheck(
                    id=check.id,
                    name=self._allocate(self._object_names, check.name, src.id),
                    expression=rewrite_identifiers(
                        check.expression, renames, self.dialect.sqlglot_dialect, self.schema.quote
                    ),
                    expression_id=check.expression_id,
                )
            )
        self.schema.tables[table.id] = table

    def _map_type(self, src: SourceTable, col: SourceColumn) -> TargetType:
        override = self.overrides.type_overrides.get(col.type.name)
        if override is not None:
            self.ctx.issues.add(src.id, IssueKind.TYPE_OVERRIDE, column_id=col.id, detail=override)
            return parse_target_type(override)
        target_type, issues = self.dialect.map_type(col.type, col)
        for kind in issues:
            self.ctx.issues.add(src.id, kind, column_id=col.id)
        return target_type

    def _default(self, src: SourceTable, col: SourceColumn, target_type: TargetType) -> Optional[str]:
        if col.default is None or col.auto_gen.strategy != AutoGenStrategy.NONE:
            return None
        rendered = self._render_default(col.default.literal, target_type) if col.default.is_literal else None
        if rendered is None:
            self.ctx.issues.add(src.id, IssueKind.DEFAULT_VALUE, column_id=col.id, detail=col.default.statement)
        return rendered

    def _render_default(self, literal: Optional[str], target_type: TargetType) -> Optional[str]:
        if literal is None or target_type.is_array:
            return None
        name = target_type.name
        if name == "STRING":
            return render_string_literal(literal, self.target_dialect)
        if name == "BOOL":
            lowered = literal.strip().lower()
            if lowered in TRUE_LITERALS:
                return "TRUE"
            if lowered in FALSE_LITERALS:
                return "FALSE"
            return None
        if name == "INT64":
            try:
                return str(int(literal.strip()))
            except ValueError:
                return None
        if name in ("FLOAT64", "FLOAT32"):
            try:
                float(literal)
            except ValueError:
                return None
            return literal.strip()
        if name == "NUMERIC":
            try:
                value = Decimal(literal.strip())
            except InvalidOperation:
                return None
            if self.target_dialect == POSTGRESQL:
                return str(value)
            return f"NUMERIC '{value}'"
        return None

    # -- keys ----------------------------------------------------------------

    def _convert_keys(self, src: SourceTable) -> None:
        table = self.schema.tables[src.id]
        table.primary_keys = [IndexKey(column_id=k.column_id, desc=k.desc, order=k.order) for k in src.primary_keys]

        for fk in src.foreign_keys:
            if fk.refer_table_id not in self.schema.tables:
                self.ctx.unexpected(f"Foreign key {fk.name} references a table missing from the target")
                continue
            on_delete, on_update = self._foreign_key_actions(src, fk)
            table.foreign_keys.append(
                TargetForeignKey(
                    id=fk.id,
                    name=self._allocate(self._object_names, fk.name, src.id),
                    column_ids=list(fk.column_ids),
                    refer_table_id=fk.refer_table_id,
                    refer_column_ids=list(fk.refer_column_ids),
                    on_delete=on_delete,
                    on_update=on_update,
                )
            )

        for index in src.indexes:
            table.indexes.append(
                TargetIndex(
                    id=index.id,
                    name=self._allocate(self._object_names, index.name, src.id),
                    table_id=table.id,
                    keys=[IndexKey(column_id=k.column_id, desc=k.desc, order=k.order) for k in index.keys],
                    unique=index.unique,
                    stored_column_ids=list(index.stored_column_ids),
                )
            )

    def _foreign_key_actions(self, src: SourceTable, fk: ForeignKey) -> Tuple[str, str]:
        actions = []
        for clause, action, allowed in (
            ("ON DELETE", fk.on_delete, ON_DELETE_ACTIONS),
            ("ON UPDATE", fk.on_update, ON_UPDATE_ACTIONS),
        ):
            action = " ".join((action or "NO ACTION").upper().split())
            action = EQUIVALENT_ACTIONS.get(action, action)
            if action not in allowed:
                self.ctx.issues.add(src.id, IssueKind.FOREIGN_KEY_ACTION, detail=f"{fk.name}: {clause} {action}")
                action = "NO ACTION"
            actions.append(action)
        return actions[0], actions[1]

    # -- auto-generated values -----------------------------------------------

    def _convert_sequences(self, src: SourceTable) -> None:
        table = self.schema.tables[src.id]
        for column in table.ordered_columns():
            strategy = column.auto_gen.strategy
            if strategy == AutoGenStrategy.SEQUENCE:
                self._attach_sequence(src, table, column)
            elif strategy == AutoGenStrategy.PRE_DEFINED:
                if column.type.name != "STRING" or column.type.is_array:
                    self.ctx.issues.add(
                        table.id, IssueKind.DEFAULT_VALUE, column_id=column.id, detail=column.auto_gen.name
                    )
                    column.auto_gen = AutoGen()
                else:
                    self.ctx.issues.add(
                        table.id, IssueKind.AUTO_GENERATED, column_id=column.id, detail=column.auto_gen.name
                    )

    def _attach_sequence(self, src: SourceTable, table: TargetTable, column: TargetColumn) -> None:
        if column.type.name != "INT64" or column.type.is_array:
            self.ctx.issues.add(table.id, IssueKind.SEQUENCE, column_id=column.id, detail=f"unsupported for {column.type}")
            column.auto_gen = AutoGen()
            return

        source_column = src.columns[column.id]
        source_name = column.auto_gen.name or f"{src.name.rsplit('.', 1)[-1]}_{source_column.name}_seq"
        sequence = self._sequences.get(source_name)
        if sequence is None:
            sequence = Sequence(
                id=self.ctx.new_id("s"),
                name=self._allocate(self._object_names, source_name, table.id),
            )
            self._sequences[source_name] = sequence
            self.schema.sequences[sequence.id] = sequence
        sequence.columns_using.setdefault(table.id, []).append(column.id)
        column.auto_gen = AutoGen(strategy=AutoGenStrategy.SEQUENCE, name=sequence.name)
        self.ctx.issues.add(table.id, IssueKind.SEQUENCE, column_id=column.id, detail=sequence.name)

    # -- overrides -----------------------------------------------------------

    def _apply_overrides(self, src: SourceTable) -> None:
        table = self.schema.tables[src.id]
        for name in self.overrides.excluded(src.name):
            column = src.column_by_name(name)
            if column is None or column.id not in table.columns:
                logger.warning("converter.override_unknown_column", table=src.name, column=name)
                continue
            self._column_names[table.id].release(table.columns[column.id].name)
            self.schema.remove_column(table.id, column.id, self.ctx.issues)
            logger.info("converter.column_excluded", table=table.name, column=name)

        for old, new in self.overrides.renames(src.name).items():
            column = src.column_by_name(old)
            if column is None or column.id not in table.columns:
                logger.warning("converter.override_unknown_column", table=src.name, column=old)
                continue
            allocator = self._column_names[table.id]
            allocator.release(table.columns[column.id].name)
            new_name = self._allocate(allocator, new, table.id, column.id)
            self.schema.rename_column(table.id, column.id, new_name, self.ctx.issues)

    def _add_synthetic_key(self, table: TargetTable) -> None:
        name = self._column_names[table.id].allocate(SYNTHETIC_PK_NAME)
        column = TargetColumn(id=self.ctx.new_id("c"), name=name, type=SYNTHETIC_PK_TYPE, not_null=True)
        table.add_column(column)
        table.primary_keys = [IndexKey(column_id=column.id, order=1)]
        table.synthetic_pk_column_id = column.id
        self.ctx.issues.add(table.id, IssueKind.SYNTHETIC_PRIMARY_KEY, column_id=column.id, detail=name)
        logger.debug("converter.synthetic_key_added", table=table.name, column=name)

    # -- interleaving --------------------------------------------------------

    def _is_prefix(self, parent: TargetTable, child: TargetTable) -> bool:
        parent_pk = parent.pk_column_ids()
        child_pk = child.pk_column_ids()
        if not parent_pk or len(parent_pk) >= len(child_pk):
            return False
        for parent_id, child_id in zip(parent_pk, child_pk):
            parent_col = parent.columns[parent_id]
            child_col = child.columns[child_id]
            if parent_col.name.lower() != child_col.name.lower() or parent_col.type != child_col.type:
                return False
        return True

    def _backing_foreign_key(self, parent: TargetTable, child: TargetTable) -> Optional[TargetForeignKey]:
        prefix = child.pk_column_ids()[: len(parent.primary_keys)]
        parent_pk = parent.pk_column_ids()
        for fk in child.foreign_keys:
            if fk.refer_table_id != parent.id:
                continue
            pairs = dict(zip(fk.column_ids, fk.refer_column_ids))
            if sorted(fk.column_ids) == sorted(prefix) and [pairs[c] for c in prefix] == parent_pk:
                return fk
        return None

    def _detect_interleaving(self) -> None:
        tables = list(self.schema.tables.values())
        for child in tables:
            if child.synthetic_pk_column_id is not None:
                continue
            candidates: List[TargetTable] = [
                parent
                for parent in tables
                if parent.id != child.id and parent.synthetic_pk_column_id is None and self._is_prefix(parent, child)
            ]
            if not candidates:
                continue

            backed = [(p, self._backing_foreign_key(p, child)) for p in candidates]
            backed = [(p, fk) for p, fk in backed if fk is not None]
            if backed:
                parent, fk = max(backed, key=lambda pair: len(pair[0].primary_keys))
                child.foreign_keys.remove(fk)
                child.parent = InterleaveParent(table_id=parent.id, on_delete=fk.on_delete)
            else:
                longest = max(len(p.primary_keys) for p in candidates)
                best = [p for p in candidates if len(p.primary_keys) == longest]
                if len(best) != 1:
                    logger.info("converter.interleave_ambiguous", table=child.name, candidates=[p.name for p in best])
                    continue
                parent = best[0]
                child.parent = InterleaveParent(table_id=parent.id)

            self.ctx.issues.add(child.id, IssueKind.INTERLEAVED, detail=parent.name)
            logger.info("converter.interleaved", table=child.name, parent=parent.name)
