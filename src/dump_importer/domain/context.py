"""
Conversion context shared by every stage of one import run.

The context is created by the caller and passed explicitly; nothing in the
package keeps conversion state at module level.
"""

import itertools
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from dump_importer.domain.errors import ImportCancelledError
from dump_importer.domain.issues import IssueRegistry
from dump_importer.domain.source_schema import SourceSchema
from dump_importer.domain.target_schema import TargetSchema
from dump_importer.utils.bad_rows import BadRowReporter

logger = structlog.get_logger(__name__)

# table name, target column names, converted values
DataSink = Callable[[str, List[str], List[Any]], None]


class Mode(str, Enum):
    SCHEMA = "schema"
    DATA = "data"


@dataclass
class ConversionStats:
    """Running counters for one pass (or one table task in parallel mode)."""

    statements: Counter = field(default_factory=Counter)
    skipped: Counter = field(default_factory=Counter)
    rows: Counter = field(default_factory=Counter)
    good_rows: Counter = field(default_factory=Counter)
    unexpected: Counter = field(default_factory=Counter)
    reparsed: int = 0

    def merge(self, other: "ConversionStats") -> None:
        self.statements.update(other.statements)
        self.skipped.update(other.skipped)
        self.rows.update(other.rows)
        self.good_rows.update(other.good_rows)
        self.unexpected.update(other.unexpected)
        self.reparsed += other.reparsed

    def reset(self) -> None:
        self.statements.clear()
        self.skipped.clear()
        self.rows.clear()
        self.good_rows.clear()
        self.unexpected.clear()
        self.reparsed = 0


class ConversionContext:
    """Mutable state threaded through reader, parser, builder, converter and writer.

    Attributes:
        mode: SCHEMA during the first pass, DATA during the second
        source: Source schema graph, frozen after the schema pass
        target: Target schema graph, set once by the converter
        issues: Issue registry keyed by table/column id
        stats: Statement, row and unexpected-condition counters
        bad_rows: Bad-row counts and bounded samples
        data_sink: Callback receiving every converted row in data mode
        timezone_offset: Session time zone from SET TIME_ZONE, e.g. "+02:00"
    """

    def __init__(self, bad_row_sample_size: int = 100) -> None:
        self.mode = Mode.SCHEMA
        self.source = SourceSchema()
        self.target: Optional[TargetSchema] = None
        self.issues = IssueRegistry()
        self.stats = ConversionStats()
        # Snapshot of the schema pass counters, kept once the data pass starts
        self.schema_stats: Optional[ConversionStats] = None
        self.bad_rows = BadRowReporter(sample_size=bad_row_sample_size)
        self.data_sink: Optional[DataSink] = None
        self.timezone_offset: Optional[str] = None
        self.cancel_event = threading.Event()
        self._counter = itertools.count(1)
        self._id_lock = threading.Lock()

    def new_id(self, prefix: str) -> str:
        """Allocate a stable id such as t1, c2 or f3. Ids are never reused."""
        with self._id_lock:
            return f"{prefix}{next(self._counter)}"

    def unexpected(self, message: str) -> None:
        self.stats.unexpected[message] += 1
        logger.debug("context.unexpected", message=message)

    def skip_statement(self, kind: str) -> None:
        self.stats.skipped[kind] += 1

    def count_statement(self, kind: str) -> None:
        self.stats.statements[kind] += 1

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise ImportCancelledError("import cancelled")

    def write_row(self, table: str, columns: List[str], values: List[Any]) -> None:
        if self.data_sink is None:
            self.unexpected("Data row produced with no data sink configured")
            return
        self.data_sink(table, columns, values)

    def begin_data_pass(self) -> None:
        """Switch to data mode, keeping the schema pass counters aside."""
        self.schema_stats = self.stats
        self.stats = ConversionStats()
        self.mode = Mode.DATA

    def fork(self) -> "ConversionContext":
        """Create a child context for one table task.

        The child shares the frozen schemas, issues, id counter and the
        cancellation flag, and owns fresh statistics and bad-row state.
        """
        child = ConversionContext(bad_row_sample_size=self.bad_rows.sample_size)
        child.mode = self.mode
        child.source = self.source
        child.target = self.target
        child.issues = self.issues
        child.timezone_offset = self.timezone_offset
        child.cancel_event = self.cancel_event
        child._counter = self._counter
        child._id_lock = self._id_lock
        return child

    def merge(self, child: "ConversionContext") -> None:
        self.stats.merge(child.stats)
        self.bad_rows.merge(child.bad_rows)

    def summary(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "tables": len(self.source.tables),
            "statements": dict(self.stats.statements),
            "skipped": dict(self.stats.skipped),
            "rows": sum(self.stats.rows.values()),
            "bad_rows": self.bad_rows.total,
            "reparsed": self.stats.reparsed,
            "issues": len(self.issues),
        }
