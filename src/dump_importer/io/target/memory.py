"""In-memory target store for dry runs and tests."""

import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

import structlog

from dump_importer.domain.target_schema import TargetSchema
from dump_importer.io.target.base import Mutation

logger = structlog.get_logger(__name__)


class InMemoryStore:
    """Records applied DDL and written rows.

    Implements both the TargetStore and the SchemaApplier interfaces.
    """

    def __init__(self) -> None:
        self.schema: Optional[TargetSchema] = None
        self.applied_ddl: List[str] = []
        self.rows: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.batches: List[int] = []
        self._lock = threading.Lock()

    def apply_schema(self, schema: TargetSchema, statements: List[str]) -> None:
        self.schema = schema
        self.applied_ddl.extend(statements)
        logger.debug("memory_store.schema_applied", statements=len(statements))

    def write(self, mutations: Sequence[Mutation]) -> None:
        with self._lock:
            for m in mutations:
                self.rows[m.table].append(dict(zip(m.columns, m.values)))
            self.batches.append(len(mutations))

    def row_count(self, table: str) -> int:
        return len(self.rows.get(table, []))
