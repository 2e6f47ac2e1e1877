"""Interfaces of the external target collaborators and the mutation record."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Protocol, Sequence

from dump_importer.domain.target_schema import TargetSchema

# Fixed per-value overhead used in the mutation size estimate
VALUE_OVERHEAD_BYTES = 8


def _value_size(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 8
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    if isinstance(value, str):
        return len(value.encode("utf-8", errors="surrogateescape"))
    if isinstance(value, (list, tuple)):
        return sum(_value_size(v) for v in value)
    if isinstance(value, (Decimal, date, datetime)):
        return len(str(value))
    return len(str(value))


@dataclass
class Mutation:
    """One insert-or-update of a single row."""

    table: str
    columns: List[str]
    values: List[Any]

    @property
    def size(self) -> int:
        """Approximate serialized size in bytes."""
        return (
            len(self.table)
            + sum(len(c) for c in self.columns)
            + sum(_value_size(v) + VALUE_OVERHEAD_BYTES for v in self.values)
        )


class TargetStore(Protocol):
    """Store client with an apply/commit primitive for a batch of mutations.

    Implementations raise TransientWriteError for failures that may succeed
    on retry; any other exception is treated as fatal by the writer.
    """

    def write(self, mutations: Sequence[Mutation]) -> None:
        ...


class SchemaApplier(Protocol):
    """Issues create/alter calls for a converted schema and awaits completion.

    Implementations raise SchemaApplicationError on failure.
    """

    def apply_schema(self, schema: TargetSchema, statements: List[str]) -> None:
        ...
