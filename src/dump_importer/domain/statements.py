"""
Dialect-neutral statement model produced by the parser adapter.

The adapter turns every parsed dump chunk into one of these records so that
the schema builder and row converter never touch the SQL parser's own tree.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


@dataclass(frozen=True)
class TableName:
    """Possibly schema-qualified table name."""

    name: str
    namespace: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name


class ValueKind(str, Enum):
    NULL = "null"
    STRING = "string"
    NUMBER = "number"
    HEX = "hex"
    BIT = "bit"
    BOOL = "bool"
    TEXT = "text"  # COPY field or other untyped text
    INVALID = "invalid"  # unquoted identifiers, expressions, anything non-literal


@dataclass(frozen=True)
class RowValue:
    value: Optional[str]
    kind: ValueKind

    @property
    def is_null(self) -> bool:
        return self.kind == ValueKind.NULL


@dataclass
class KeyPart:
    column: str
    desc: bool = False


@dataclass
class ReferenceSpec:
    table: TableName
    columns: List[str]
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


@dataclass
class DefaultSpec:
    """Column default as captured from DDL.

    literal is the unquoted value for simple literals; expression is the
    verbatim SQL text and is always set.
    """

    expression: str
    literal: Optional[str] = None
    kind: ValueKind = ValueKind.INVALID


@dataclass
class ColumnSpec:
    name: str
    type_text: str
    not_null: bool = False
    primary_key: bool = False
    unique: bool = False
    default: Optional[DefaultSpec] = None
    auto_increment: bool = False
    identity: bool = False
    check: Optional[str] = None
    reference: Optional[ReferenceSpec] = None
    comment: Optional[str] = None


class ConstraintKind(str, Enum):
    PRIMARY_KEY = "primary_key"
    FOREIGN_KEY = "foreign_key"
    UNIQUE = "unique"
    INDEX = "index"
    CHECK = "check"


@dataclass
class ConstraintSpec:
    kind: ConstraintKind
    name: str = ""
    columns: List[KeyPart] = field(default_factory=list)
    reference: Optional[ReferenceSpec] = None
    expression: Optional[str] = None
    # FULLTEXT / SPATIAL for MySQL secondary keys, empty otherwise
    index_kind: str = ""


@dataclass
class CreateTable:
    table: TableName
    columns: List[ColumnSpec]
    constraints: List[ConstraintSpec] = field(default_factory=list)
    # Columns whose spatial type was rewritten to text before parsing
    spatial_columns: List[str] = field(default_factory=list)


@dataclass
class AddConstraint:
    constraint: ConstraintSpec


@dataclass
class AddColumn:
    column: ColumnSpec


@dataclass
class ModifyColumn:
    column: ColumnSpec
    rename_from: Optional[str] = None


@dataclass
class SetColumnDefault:
    column: str
    default: Optional[DefaultSpec]


@dataclass
class UnsupportedAction:
    description: str


AlterAction = Union[AddConstraint, AddColumn, ModifyColumn, SetColumnDefault, UnsupportedAction]


@dataclass
class AlterTable:
    table: TableName
    actions: List[AlterAction]


@dataclass
class CreateIndex:
    table: TableName
    name: str
    keys: List[KeyPart]
    unique: bool = False
    # FULLTEXT / SPATIAL for CREATE FULLTEXT|SPATIAL INDEX, empty otherwise
    index_kind: str = ""


@dataclass
class SetVariable:
    name: str
    value: Optional[str]
    is_literal: bool


@dataclass
class Insert:
    """Multi-row insert (or one COPY block); columns is empty when omitted."""

    table: TableName
    columns: List[str]
    rows: List[List[RowValue]]
    # Further piece of a source statement that was already counted
    continued: bool = False


@dataclass
class UnparsableRow:
    """One value tuple of a split insert that still failed to parse."""

    table: TableName
    columns: List[str]
    text: str
    continued: bool = False


@dataclass
class Other:
    """Any statement kind that has no effect on schema or data."""

    kind: str


Statement = Union[
    CreateTable,
    AlterTable,
    CreateIndex,
    SetVariable,
    Insert,
    UnparsableRow,
    Other,
]
