"""
Target schema graph.

Column ids are shared with the source schema; the only ids that exist on the
target side alone are synthetic primary key columns and sequences.

Structural edits go through TargetSchema.remove_column / rename_column so
that keys, indexes, sequences, checks and interleaving stay consistent.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from dump_importer.domain.expressions import references_identifier, rewrite_identifiers
from dump_importer.domain.issues import IssueKind, IssueRegistry
from dump_importer.domain.source_schema import AutoGen

logger = structlog.get_logger(__name__)

MAX_LENGTH = -1


@dataclass(frozen=True)
class TargetType:
    """Target column type.

    length is None for types without one, MAX_LENGTH for STRING(MAX) /
    BYTES(MAX), otherwise the declared length.
    """

    name: str
    length: Optional[int] = None
    is_array: bool = False

    def __str__(self) -> str:
        base = self.name
        if self.length is not None:
            base += "(MAX)" if self.length == MAX_LENGTH else f"({self.length})"
        return f"ARRAY<{base}>" if self.is_array else base


@dataclass
class TargetColumn:
    id: str
    name: str
    type: TargetType
    not_null: bool = False
    # SQL literal text, already rendered for the target
    default: Optional[str] = None
    auto_gen: AutoGen = field(default_factory=AutoGen)
    comment: Optional[str] = None


@dataclass
class IndexKey:
    column_id: str
    desc: bool = False
    order: int = 0


@dataclass
class TargetForeignKey:
    id: str
    name: str
    column_ids: List[str]
    refer_table_id: str
    refer_column_ids: List[str]
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


@dataclass
class TargetIndex:
    id: str
    name: str
    table_id: str
    keys: List[IndexKey]
    unique: bool = False
    stored_column_ids: List[str] = field(default_factory=list)


@dataclass
class TargetCheck:
    id: str
    name: str
    expression: str
    expression_id: str


@dataclass
class InterleaveParent:
    table_id: str
    on_delete: str = "NO ACTION"


@dataclass
class TargetTable:
    id: str
    name: str
    column_ids: List[str] = field(default_factory=list)
    columns: Dict[str, TargetColumn] = field(default_factory=dict)
    primary_keys: List[IndexKey] = field(default_factory=list)
    foreign_keys: List[TargetForeignKey] = field(default_factory=list)
    indexes: List[TargetIndex] = field(default_factory=list)
    checks: List[TargetCheck] = field(default_factory=list)
    parent: Optional[InterleaveParent] = None
    synthetic_pk_column_id: Optional[str] = None
    comment: Optional[str] = None

    def add_column(self, column: TargetColumn) -> None:
        self.columns[column.id] = column
        self.column_ids.append(column.id)

    def ordered_columns(self) -> List[TargetColumn]:
        return [self.columns[cid] for cid in self.column_ids]

    def column_by_name(self, name: str) -> Optional[TargetColumn]:
        for col in self.columns.values():
            if col.name == name:
                return col
        return None

    def pk_column_ids(self) -> List[str]:
        return [k.column_id for k in sorted(self.primary_keys, key=lambda k: k.order)]


@dataclass
class Sequence:
    """Bit-reversed sequence backing one or more auto-increment columns."""

    id: str
    name: str
    kind: str = "BIT REVERSED POSITIVE"
    columns_using: Dict[str, List[str]] = field(default_factory=dict)


def _strip_pairs(
    keep_from: List[str], paired: List[str], drop: Callable[[str], bool]
) -> None:
    """Remove entries from keep_from (and the same positions in paired) where drop(id)."""
    for i in reversed(range(len(keep_from))):
        if drop(keep_from[i]):
            del keep_from[i]
            if i < len(paired):
                del paired[i]


@dataclass
class TargetSchema:
    tables: Dict[str, TargetTable] = field(default_factory=dict)
    sequences: Dict[str, Sequence] = field(default_factory=dict)
    # sqlglot dialect used to tokenize check expressions
    expression_dialect: str = "bigquery"
    quote: Callable[[str], str] = field(default=lambda name: f"`{name}`", repr=False)

    def table_by_name(self, name: str) -> Optional[TargetTable]:
        for table in self.tables.values():
            if table.name == name:
                return table
        return None

    def children_of(self, table_id: str) -> List[TargetTable]:
        return [t for t in self.tables.values() if t.parent and t.parent.table_id == table_id]

    def ordered_tables(self) -> List[TargetTable]:
        """Tables with every interleave parent ahead of its children."""
        ordered: List[TargetTable] = []
        seen = set()

        def visit(table: TargetTable) -> None:
            if table.id in seen:
                return
            seen.add(table.id)
            if table.parent and table.parent.table_id in self.tables:
                visit(self.tables[table.parent.table_id])
            ordered.append(table)

        for table in self.tables.values():
            visit(table)
        return ordered

    def remove_column(
        self,
        table_id: str,
        column_id: str,
        issues: Optional[IssueRegistry] = None,
    ) -> None:
        """Remove a column and rewrite every structure that references it.

        Primary key, foreign keys (both directions), indexes and sequences lose
        the column and are dropped once empty. Check constraints that mention
        the column are dropped. Interleaving that depended on the primary key
        is dissolved.
        """
        table = self.tables[table_id]
        column = table.columns.pop(column_id, None)
        if column is None:
            return
        table.column_ids.remove(column_id)

        in_pk = any(k.column_id == column_id for k in table.primary_keys)
        table.primary_keys = [k for k in table.primary_keys if k.column_id != column_id]
        for order, key in enumerate(sorted(table.primary_keys, key=lambda k: k.order)):
            key.order = order + 1

        if in_pk:
            if table.parent is not None:
                logger.info("target_schema.interleave_dissolved", table=table.name)
                table.parent = None
            for child in self.children_of(table_id):
                logger.info("target_schema.interleave_dissolved", table=child.name)
                child.parent = None

        for fk in list(table.foreign_keys):
            _strip_pairs(fk.column_ids, fk.refer_column_ids, lambda cid: cid == column_id)
            if not fk.column_ids:
                table.foreign_keys.remove(fk)
                if issues is not None:
                    issues.add(table_id, IssueKind.FOREIGN_KEY_DROPPED, detail=fk.name)

        for other in self.tables.values():
            for fk in list(other.foreign_keys):
                if fk.refer_table_id != table_id:
                    continue
                _strip_pairs(fk.refer_column_ids, fk.column_ids, lambda cid: cid == column_id)
                if not fk.refer_column_ids:
                    other.foreign_keys.remove(fk)
                    if issues is not None:
                        issues.add(other.id, IssueKind.FOREIGN_KEY_DROPPED, detail=fk.name)

        for index in list(table.indexes):
            index.keys = [k for k in index.keys if k.column_id != column_id]
            index.stored_column_ids = [c for c in index.stored_column_ids if c != column_id]
            if not index.keys:
                table.indexes.remove(index)

        for seq_id, seq in list(self.sequences.items()):
            using = seq.columns_using.get(table_id)
            if not using or column_id not in using:
                continue
            using.remove(column_id)
            if not using:
                del seq.columns_using[table_id]
            if not seq.columns_using:
                del self.sequences[seq_id]

        for check in list(table.checks):
            if references_identifier(check.expression, column.name, self.expression_dialect):
                table.checks.remove(check)
                if issues is not None:
                    issues.add(table_id, IssueKind.CHECK_DROPPED, detail=check.name)

        if issues is not None:
            issues.add(table_id, IssueKind.COLUMN_REMOVED, detail=column.name)

    def rename_column(
        self,
        table_id: str,
        column_id: str,
        new_name: str,
        issues: Optional[IssueRegistry] = None,
    ) -> None:
        """Rename a column and rewrite its references in check constraints."""
        table = self.tables[table_id]
        column = table.columns[column_id]
        old_name = column.name
        if old_name == new_name:
            return
        column.name = new_name
        for check in table.checks:
            check.expression = rewrite_identifiers(
                check.expression, {old_name: new_name}, self.expression_dialect, self.quote
            )
        if issues is not None:
            issues.add(
                table_id,
                IssueKind.COLUMN_RENAMED,
                column_id=column_id,
                detail=f"{old_name} -> {new_name}",
            )
