"""Bad row collection and reporting.

Rows that cannot be converted are never fatal: they are counted per table,
and a bounded number of them are retained as samples so the final report can
show what went wrong without holding the whole failure set in memory.

Usage:
    >>> reporter = BadRowReporter(sample_size=10)
    >>> reporter.collect_bad_row(
    ...     table="te st",
    ...     columns=["a a", " b"],
    ...     values=["6.6", "2006-01-02"],
    ...     reason="invalid literal for INT64: '2006-01-02'",
    ... )
    >>> reporter.sample_bad_rows(5)
    ['table=te st cols=[a a  b] data=[6.6 2006-01-02]\\n']
"""

import csv
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Sequence

MAX_VALUE_LENGTH = 100


@dataclass
class BadRow:
    """Single rejected row.

    Attributes:
        table: Source table name the row belongs to
        columns: Source column names in statement order
        values: Sanitized raw values
        reason: Human-readable conversion failure
    """

    table: str
    columns: List[str]
    values: List[str]
    reason: str

    def format(self) -> str:
        return (
            f"table={self.table} cols=[{' '.join(self.columns)}] "
            f"data=[{' '.join(self.values)}]\n"
        )


class BadRowReporter:
    """Count rejected rows per table and keep a bounded sample of them."""

    def __init__(self, sample_size: int = 100) -> None:
        self.sample_size = sample_size
        self.samples: List[BadRow] = []
        self.counts: Counter = Counter()

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def add_bad_rows(self, table: str, count: int = 1) -> None:
        """Count rows as bad without retaining a sample."""
        self.counts[table] += count

    def collect_bad_row(
        self,
        table: str,
        columns: Sequence[str],
        values: Sequence[Any],
        reason: str = "",
    ) -> None:
        """Count a bad row and retain it as a sample while there is room."""
        self.counts[table] += 1
        if len(self.samples) >= self.sample_size:
            return
        self.samples.append(
            BadRow(
                table=table,
                columns=list(columns),
                values=[self._sanitize_value(v) for v in values],
                reason=reason,
            )
        )

    def sample_bad_rows(self, n: int) -> List[str]:
        """Return up to n formatted samples, oldest first."""
        return [row.format() for row in self.samples[:n]]

    def merge(self, other: "BadRowReporter") -> None:
        """Fold another reporter's counts and samples into this one."""
        self.counts.update(other.counts)
        room = self.sample_size - len(self.samples)
        if room > 0:
            self.samples.extend(other.samples[:room])

    def by_table(self) -> Dict[str, int]:
        return dict(self.counts)

    def export_to_csv(self, filepath: Path, source: str) -> None:
        """Export retained samples to CSV with a metadata header.

        CSV Format:
            # Bad Rows Export
            # Date: 2026-01-01T10:30:00
            # Source: dump.sql
            # Bad Rows: 50
            # Samples: 10
            table,columns,values,reason
            orders,id total,7 abc,"invalid literal for NUMERIC: 'abc'"
        """
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, "w", newline="", encoding="utf-8") as f:
            f.write("# Bad Rows Export\n")
            f.write(f"# Date: {datetime.now().isoformat()}\n")
            f.write(f"# Source: {source}\n")
            f.write(f"# Bad Rows: {self.total}\n")
            f.write(f"# Samples: {len(self.samples)}\n")

            writer = csv.DictWriter(f, fieldnames=["table", "columns", "values", "reason"])
            writer.writeheader()
            for row in self.samples:
                writer.writerow(
                    {
                        "table": row.table,
                        "columns": " ".join(row.columns),
                        "values": " ".join(row.values),
                        "reason": row.reason,
                    }
                )

    def _sanitize_value(self, value: Any) -> str:
        """Sanitize value for samples.

        Rules:
        - Convert None to "NULL"
        - Remove newlines and tabs (replace with space)
        - Truncate long strings to 97 chars + "..."
        """
        if value is None:
            return "NULL"

        str_value = str(value).replace("\n", " ").replace("\t", " ")

        if len(str_value) > MAX_VALUE_LENGTH:
            str_value = str_value[: MAX_VALUE_LENGTH - 3] + "..."

        return str_value
