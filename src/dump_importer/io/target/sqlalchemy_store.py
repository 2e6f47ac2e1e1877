"""
SQLAlchemy-backed target store.

Stages an import into any database SQLAlchemy can reach (SQLite, PostgreSQL,
...). Tables are built as ``sqlalchemy.Table`` objects from the converted
schema rather than by executing the rendered DDL, since that DDL targets the
distributed store's dialect.
"""

from contextlib import contextmanager
from typing import Dict, Generator, List, Optional, Sequence, Union

import structlog
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKeyConstraint,
    Index,
    LargeBinary,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.types import TypeEngine

from dump_importer.domain.errors import SchemaApplicationError, TransientWriteError
from dump_importer.domain.target_schema import MAX_LENGTH, TargetSchema, TargetTable, TargetType
from dump_importer.io.target.base import Mutation

logger = structlog.get_logger(__name__)


def sqlalchemy_type(target_type: TargetType) -> TypeEngine:
    """Map a target type onto a portable SQLAlchemy type.

    Arrays are stored as JSON. JSON values arrive as normalized text and are
    stored as Text so they are not encoded twice.
    """
    if target_type.is_array:
        return JSON()
    name = target_type.name
    if name == "INT64":
        return BigInteger()
    if name == "FLOAT64":
        return Float(precision=53)
    if name == "FLOAT32":
        return Float(precision=24)
    if name == "BOOL":
        return Boolean()
    if name == "BYTES":
        return LargeBinary()
    if name == "DATE":
        return Date()
    if name == "TIMESTAMP":
        return DateTime(timezone=True)
    if name == "NUMERIC":
        return Numeric(38, 9)
    if name == "STRING" and target_type.length not in (None, MAX_LENGTH):
        return String(target_type.length)
    return Text()


class SqlAlchemyStore:
    """Target store and schema applier over a SQLAlchemy engine.

    Each batch is written in its own transaction. OperationalError (lost
    connection, locked database, ...) is reported as TransientWriteError so
    the batch writer retries it.
    """

    def __init__(self, url_or_engine: Union[str, Engine]):
        if isinstance(url_or_engine, Engine):
            self._engine: Optional[Engine] = url_or_engine
            self._url = str(url_or_engine.url)
        else:
            self._engine = None
            self._url = url_or_engine
        self.metadata = MetaData()
        self._tables: Dict[str, Table] = {}

    @property
    def engine(self) -> Engine:
        """Get or create SQLAlchemy engine."""
        if self._engine is None:
            self._engine = create_engine(self._url)
        return self._engine

    @contextmanager
    def get_connection(self) -> Generator[Connection, None, None]:
        """Context manager for a transaction-scoped connection."""
        with self.engine.begin() as conn:
            yield conn

    def _build_table(self, table: TargetTable, schema: TargetSchema) -> Table:
        pk_ids = set(table.pk_column_ids())
        columns = [
            Column(
                col.name,
                sqlalchemy_type(col.type),
                primary_key=col.id in pk_ids,
                nullable=not col.not_null and col.id not in pk_ids,
                autoincrement=False,
            )
            for col in table.ordered_columns()
        ]
        constraints = []
        for fk in table.foreign_keys:
            refer = schema.tables.get(fk.refer_table_id)
            if refer is None:
                continue
            constraints.append(
                ForeignKeyConstraint(
                    [table.columns[c].name for c in fk.column_ids],
                    [f"{refer.name}.{refer.columns[c].name}" for c in fk.refer_column_ids],
                    name=fk.name,
                    ondelete=fk.on_delete,
                )
            )
        sa_table = Table(table.name, self.metadata, *columns, *constraints)
        for index in table.indexes:
            Index(
                index.name,
                *[sa_table.c[table.columns[k.column_id].name] for k in index.keys],
                unique=index.unique,
            )
        return sa_table

    def apply_schema(self, schema: TargetSchema, statements: List[str]) -> None:
        """Create all tables of the schema.

        Raises:
            SchemaApplicationError: If any table cannot be created
        """
        try:
            for table in schema.ordered_tables():
                self._tables[table.name] = self._build_table(table, schema)
            self.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error("sqlalchemy_store.apply_failed", url=self._url, error=str(e))
            raise SchemaApplicationError(f"Failed to apply schema: {e}") from e
        logger.info(
            "sqlalchemy_store.schema_applied",
            url=self._url,
            tables=len(self._tables),
            checks_skipped=sum(len(t.checks) for t in schema.tables.values()),
        )

    def write(self, mutations: Sequence[Mutation]) -> None:
        grouped: Dict[str, List[dict]] = {}
        for m in mutations:
            grouped.setdefault(m.table, []).append(dict(zip(m.columns, m.values)))
        try:
            with self.get_connection() as conn:
                for table_name, rows in grouped.items():
                    conn.execute(self._tables[table_name].insert(), rows)
        except OperationalError as e:
            raise TransientWriteError(str(e)) from e

    def row_count(self, table: str) -> int:
        with self.engine.connect() as conn:
            return len(conn.execute(self._tables[table].select()).fetchall())
