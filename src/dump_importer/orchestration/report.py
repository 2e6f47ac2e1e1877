"""Import report: per-table row counts, statement counters, issues and writer statistics."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dump_importer.domain.context import ConversionContext, ConversionStats
from dump_importer.domain.issues import Issue
from dump_importer.writer.batch_writer import WriterStats

# Bad-row samples printed by print_summary
SUMMARY_SAMPLES = 5


@dataclass
class TableResult:
    """Row outcome for a single source table."""

    table_name: str
    rows: int = 0
    good_rows: int = 0
    bad_rows: int = 0

    @property
    def success(self) -> bool:
        return self.bad_rows == 0


@dataclass
class ImportReport:
    """Full import report."""

    source_name: str
    source_format: str
    target_dialect: str
    tables: List[TableResult] = field(default_factory=list)
    schema_statements: Dict[str, int] = field(default_factory=dict)
    data_statements: Dict[str, int] = field(default_factory=dict)
    skipped_statements: Dict[str, int] = field(default_factory=dict)
    unexpected: Dict[str, int] = field(default_factory=dict)
    reparsed: int = 0
    issues: List[Issue] = field(default_factory=list)
    bad_row_samples: List[str] = field(default_factory=list)
    ddl: List[str] = field(default_factory=list)
    writer: WriterStats = field(default_factory=WriterStats)
    cancelled: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @classmethod
    def from_context(
        cls,
        ctx: ConversionContext,
        source_name: str,
        source_format: str,
        target_dialect: str,
        ddl: Optional[List[str]] = None,
        writer: Optional[WriterStats] = None,
        cancelled: bool = False,
        start_time: Optional[datetime] = None,
    ) -> "ImportReport":
        schema_stats = ctx.schema_stats if ctx.schema_stats is not None else ctx.stats
        data_stats = ctx.stats if ctx.schema_stats is not None else ConversionStats()

        skipped = dict(schema_stats.skipped)
        unexpected = dict(schema_stats.unexpected)
        if data_stats is not schema_stats:
            for kind, count in data_stats.skipped.items():
                skipped[kind] = skipped.get(kind, 0) + count
            for message, count in data_stats.unexpected.items():
                unexpected[message] = unexpected.get(message, 0) + count

        # Row counts come from the data pass once it ran, the schema pass otherwise
        row_stats = data_stats if ctx.schema_stats is not None else schema_stats
        bad_counts = ctx.bad_rows.by_table()
        names = list(dict.fromkeys(list(row_stats.rows) + list(bad_counts)))
        tables = [
            TableResult(
                table_name=name,
                rows=row_stats.rows.get(name, 0),
                good_rows=row_stats.good_rows.get(name, 0),
                bad_rows=bad_counts.get(name, 0),
            )
            for name in names
        ]

        return cls(
            source_name=source_name,
            source_format=source_format,
            target_dialect=target_dialect,
            tables=tables,
            schema_statements=dict(schema_stats.statements),
            data_statements=dict(data_stats.statements),
            skipped_statements=skipped,
            unexpected=unexpected,
            reparsed=schema_stats.reparsed + (data_stats.reparsed if data_stats is not schema_stats else 0),
            issues=ctx.issues.all(),
            bad_row_samples=ctx.bad_rows.sample_bad_rows(ctx.bad_rows.sample_size),
            ddl=list(ddl or []),
            writer=writer or WriterStats(),
            cancelled=cancelled,
            start_time=start_time,
            end_time=datetime.now(),
        )

    @property
    def duration_seconds(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    @property
    def total_rows(self) -> int:
        return sum(t.rows for t in self.tables)

    @property
    def total_bad_rows(self) -> int:
        return sum(t.bad_rows for t in self.tables)

    def issues_by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for issue in self.issues:
            counts[issue.kind.value] = counts.get(issue.kind.value, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source_name,
            "source_format": self.source_format,
            "target_dialect": self.target_dialect,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
            "tables": [
                {
                    "table": t.table_name,
                    "rows": t.rows,
                    "good_rows": t.good_rows,
                    "bad_rows": t.bad_rows,
                }
                for t in self.tables
            ],
            "statements": {
                "schema_pass": self.schema_statements,
                "data_pass": self.data_statements,
                "skipped": self.skipped_statements,
            },
            "reparsed": self.reparsed,
            "unexpected": self.unexpected,
            "issues": [
                {
                    "table_id": i.table_id,
                    "column_id": i.column_id,
                    "kind": i.kind.value,
                    "detail": i.detail,
                }
                for i in self.issues
            ],
            "bad_row_samples": self.bad_row_samples,
            "writer": {
                "flushes": self.writer.flushes,
                "retries": self.writer.retries,
                "rows_written": self.writer.rows_written,
                "bytes_written": self.writer.bytes_written,
                "abandoned_rows": self.writer.abandoned_rows,
            },
            "ddl_statements": len(self.ddl),
        }

    def print_summary(self) -> None:
        """Print human-readable summary."""
        print("\n" + "=" * 70)
        print("DUMP IMPORT REPORT")
        if self.cancelled:
            print(">>> CANCELLED - statistics are partial <<<")
        print("=" * 70)
        print(f"Source: {self.source_name} ({self.source_format}) → {self.target_dialect}")

        for table in self.tables:
            status = "✓" if table.success else "✗"
            print(f"\n{status} Table: {table.table_name}")
            print(f"  Rows: {table.rows:,} (good {table.good_rows:,}, bad {table.bad_rows:,})")

        if self.issues:
            print("\nISSUES:")
            for kind, count in sorted(self.issues_by_kind().items()):
                print(f"  {kind}: {count}")

        if self.skipped_statements:
            print("\nSKIPPED STATEMENTS:")
            for kind, count in sorted(self.skipped_statements.items()):
                print(f"  {kind}: {count}")

        if self.unexpected:
            print("\nUNEXPECTED CONDITIONS:")
            for message, count in sorted(self.unexpected.items()):
                print(f"  {message}: {count}")

        if self.bad_row_samples:
            print("\nBAD ROW SAMPLES:")
            for sample in self.bad_row_samples[:SUMMARY_SAMPLES]:
                print(f"  {sample.rstrip()}")

        print("\n" + "-" * 70)
        print("TOTALS:")
        print(f"  Tables: {len(self.tables)}")
        print(f"  Rows: {self.total_rows:,} (bad {self.total_bad_rows:,})")
        print(f"  Reparsed chunks: {self.reparsed}")
        print(f"  Batches: {self.writer.flushes} ({self.writer.retries} retries, {self.writer.rows_written:,} rows written)")
        print(f"  Duration: {self.duration_seconds:.2f}s")
        print("=" * 70 + "\n")
