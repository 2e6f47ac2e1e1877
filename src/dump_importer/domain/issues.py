"""Schema issue kinds and the registry that records them per table/column."""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class IssueKind(str, Enum):
    """Non-fatal, lossy or noteworthy outcomes of a conversion decision."""

    WIDENED = "widened"
    NO_GOOD_TYPE = "no_good_type"
    DATETIME = "datetime"
    TIMESTAMP = "timestamp"
    TIME = "time"
    DECIMAL_PRECISION = "decimal_precision"
    MULTI_DIMENSIONAL_ARRAY = "multi_dimensional_array"
    SPATIAL = "spatial"
    DEFAULT_VALUE = "default_value"
    FOREIGN_KEY_ACTION = "foreign_key_action"
    FOREIGN_KEY_DROPPED = "foreign_key_dropped"
    CHECK_DROPPED = "check_dropped"
    INDEX_DROPPED = "index_dropped"
    SEQUENCE = "sequence"
    AUTO_GENERATED = "auto_generated"
    SYNTHETIC_PRIMARY_KEY = "synthetic_primary_key"
    ILLEGAL_NAME = "illegal_name"
    INTERLEAVED = "interleaved"
    TYPE_OVERRIDE = "type_override"
    COLUMN_REMOVED = "column_removed"
    COLUMN_RENAMED = "column_renamed"

    @property
    def description(self) -> str:
        return ISSUE_DESCRIPTIONS[self]


ISSUE_DESCRIPTIONS: Dict[IssueKind, str] = {
    IssueKind.WIDENED: "Several source types collapse onto one broader target type",
    IssueKind.NO_GOOD_TYPE: "No good target type for this source type; stored as text",
    IssueKind.DATETIME: "DATETIME has no time zone; values are interpreted in the session time zone",
    IssueKind.TIMESTAMP: "Timestamp without time zone converted to a zoned timestamp",
    IssueKind.TIME: "Time-of-day/interval types are stored as text",
    IssueKind.DECIMAL_PRECISION: "Precision or scale exceeds the target NUMERIC range; stored as text",
    IssueKind.MULTI_DIMENSIONAL_ARRAY: "Multi-dimensional arrays are stored as text",
    IssueKind.SPATIAL: "Spatial type rewritten to text",
    IssueKind.DEFAULT_VALUE: "Default value could not be converted and was dropped",
    IssueKind.FOREIGN_KEY_ACTION: "Referential action not supported; degraded to NO ACTION",
    IssueKind.FOREIGN_KEY_DROPPED: "Foreign key dropped",
    IssueKind.CHECK_DROPPED: "Check constraint dropped",
    IssueKind.INDEX_DROPPED: "Index type not supported; index dropped",
    IssueKind.SEQUENCE: "Auto-increment converted to a bit-reversed sequence",
    IssueKind.AUTO_GENERATED: "Column value generated by a predefined function",
    IssueKind.SYNTHETIC_PRIMARY_KEY: "No primary key; synthetic key column added",
    IssueKind.ILLEGAL_NAME: "Name is not valid for the target and was changed",
    IssueKind.INTERLEAVED: "Table interleaved in its parent table",
    IssueKind.TYPE_OVERRIDE: "Target type forced by an override",
    IssueKind.COLUMN_REMOVED: "Column removed from the target schema",
    IssueKind.COLUMN_RENAMED: "Column renamed in the target schema",
}


@dataclass(frozen=True)
class Issue:
    """A recorded issue; column_id is None for table-level issues."""

    table_id: str
    column_id: Optional[str]
    kind: IssueKind
    detail: str = ""


class IssueRegistry:
    """Ordered store of issues, queryable by table and column."""

    def __init__(self) -> None:
        self._issues: List[Issue] = []
        self._by_table: Dict[str, List[Issue]] = defaultdict(list)

    def add(
        self,
        table_id: str,
        kind: IssueKind,
        column_id: Optional[str] = None,
        detail: str = "",
    ) -> Issue:
        issue = Issue(table_id=table_id, column_id=column_id, kind=kind, detail=detail)
        if issue in self._by_table[table_id]:
            return issue
        self._issues.append(issue)
        self._by_table[table_id].append(issue)
        return issue

    def for_table(self, table_id: str) -> List[Issue]:
        return list(self._by_table.get(table_id, []))

    def for_column(self, table_id: str, column_id: str) -> List[IssueKind]:
        return [i.kind for i in self._by_table.get(table_id, []) if i.column_id == column_id]

    def all(self) -> List[Issue]:
        return list(self._issues)

    def __len__(self) -> int:
        return len(self._issues)
