"""
Source schema graph.

Tables, columns, keys and constraints are referenced by stable id. Edges
between tables (foreign keys) carry ids, never object references, so the
graph can be copied and reordered freely.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


@dataclass
class SourceType:
    """Declared column type split into id, modifiers and array bounds.

    Example: ``varchar(20)`` -> name="varchar", mods=[20];
    ``integer[][]`` -> name="integer", array_bounds=[-1, -1].
    """

    name: str
    mods: List[int] = field(default_factory=list)
    array_bounds: List[int] = field(default_factory=list)
    # Members of enum/set types
    members: List[str] = field(default_factory=list)


@dataclass
class Ignored:
    """Source features present on a column that are not carried over as-is."""

    default: bool = False
    check: bool = False
    foreign_key: bool = False
    auto_increment: bool = False


class AutoGenStrategy(str, Enum):
    NONE = "none"
    SEQUENCE = "sequence"
    PRE_DEFINED = "pre_defined"


@dataclass
class AutoGen:
    strategy: AutoGenStrategy = AutoGenStrategy.NONE
    # Function name for PRE_DEFINED (e.g. "uuid"), sequence name otherwise
    name: str = ""


@dataclass
class DefaultValue:
    expression_id: str
    statement: str
    literal: Optional[str] = None
    is_literal: bool = False


@dataclass
class SourceColumn:
    id: str
    name: str
    type: SourceType
    not_null: bool = False
    ignored: Ignored = field(default_factory=Ignored)
    default: Optional[DefaultValue] = None
    auto_gen: AutoGen = field(default_factory=AutoGen)
    comment: Optional[str] = None


@dataclass
class Key:
    column_id: str
    desc: bool = False
    order: int = 0


@dataclass
class ForeignKey:
    """Foreign key; names are kept until ids can be resolved by finalize()."""

    id: str
    name: str
    column_names: List[str]
    refer_table_name: str
    refer_column_names: List[str]
    column_ids: List[str] = field(default_factory=list)
    refer_table_id: str = ""
    refer_column_ids: List[str] = field(default_factory=list)
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


@dataclass
class Index:
    id: str
    name: str
    keys: List[Key]
    unique: bool = False
    stored_column_ids: List[str] = field(default_factory=list)


@dataclass
class CheckConstraint:
    id: str
    name: str
    expression: str
    expression_id: str


@dataclass
class SourceTable:
    id: str
    name: str
    namespace: str = ""
    column_ids: List[str] = field(default_factory=list)
    columns: Dict[str, SourceColumn] = field(default_factory=dict)
    primary_keys: List[Key] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    checks: List[CheckConstraint] = field(default_factory=list)

    def column_by_name(self, name: str) -> Optional[SourceColumn]:
        for col in self.columns.values():
            if col.name == name:
                return col
        # Identifier comparison is case-insensitive in both source dialects
        lowered = name.lower()
        for col in self.columns.values():
            if col.name.lower() == lowered:
                return col
        return None

    def add_column(self, column: SourceColumn) -> None:
        self.columns[column.id] = column
        self.column_ids.append(column.id)

    def ordered_columns(self) -> List[SourceColumn]:
        return [self.columns[cid] for cid in self.column_ids]


@dataclass
class SourceSchema:
    tables: Dict[str, SourceTable] = field(default_factory=dict)
    frozen: bool = False

    def table_by_name(self, name: str) -> Optional[SourceTable]:
        for table in self.tables.values():
            if table.name == name:
                return table
        lowered = name.lower()
        for table in self.tables.values():
            if table.name.lower() == lowered:
                return table
        return None
