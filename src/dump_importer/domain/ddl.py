"""
Render a TargetSchema as DDL statements for the target store.

Two dialects are supported:
- google_standard_sql: backtick identifiers, STRING(n)/INT64/ARRAY<T> types,
  PRIMARY KEY after the column list, INTERLEAVE IN PARENT
- postgresql: double-quoted identifiers, VARCHAR(n)/INT8/T[] types,
  PRIMARY KEY inside the column list

Statement order: sequences, tables (parents before interleaved children),
indexes, then foreign keys so forward references always resolve.
"""

from typing import Callable, Dict, List

from dump_importer.domain.source_schema import AutoGenStrategy
from dump_importer.domain.target_schema import (
    MAX_LENGTH,
    IndexKey,
    TargetColumn,
    TargetSchema,
    TargetTable,
    TargetType,
)

GOOGLE_SQL = "google_standard_sql"
POSTGRESQL = "postgresql"
TARGET_DIALECTS = (GOOGLE_SQL, POSTGRESQL)

# sqlglot dialect used to tokenize expressions written for each target
EXPRESSION_DIALECTS = {GOOGLE_SQL: "bigquery", POSTGRESQL: "postgres"}

PG_TYPE_NAMES: Dict[str, str] = {
    "BOOL": "BOOL",
    "BYTES": "BYTEA",
    "DATE": "DATE",
    "FLOAT32": "FLOAT4",
    "FLOAT64": "FLOAT8",
    "INT64": "INT8",
    "JSON": "JSONB",
    "NUMERIC": "NUMERIC",
    "STRING": "VARCHAR",
    "TIMESTAMP": "TIMESTAMPTZ",
}


def _check_dialect(target_dialect: str) -> None:
    if target_dialect not in TARGET_DIALECTS:
        raise ValueError(
            f"Unknown target dialect '{target_dialect}'. Expected one of {', '.join(TARGET_DIALECTS)}"
        )


def quote_identifier(name: str, target_dialect: str) -> str:
    if target_dialect == POSTGRESQL:
        return '"' + name.replace('"', '""') + '"'
    return "`" + name.replace("`", "\\`") + "`"


def quoter(target_dialect: str) -> Callable[[str], str]:
    _check_dialect(target_dialect)
    return lambda name: quote_identifier(name, target_dialect)


def render_type(target_type: TargetType, target_dialect: str) -> str:
    if target_dialect == GOOGLE_SQL:
        return str(target_type)
    base = PG_TYPE_NAMES[target_type.name]
    if target_type.length is not None and target_type.length != MAX_LENGTH and base == "VARCHAR":
        base += f"({target_type.length})"
    return base + "[]" if target_type.is_array else base


def _default_clause(column: TargetColumn, schema: TargetSchema, target_dialect: str) -> str:
    q = quoter(target_dialect)
    strategy = column.auto_gen.strategy
    if strategy == AutoGenStrategy.SEQUENCE and column.auto_gen.name:
        if target_dialect == POSTGRESQL:
            return f" DEFAULT nextval('{column.auto_gen.name}')"
        return f" DEFAULT (GET_NEXT_SEQUENCE_VALUE(SEQUENCE {q(column.auto_gen.name)}))"
    if strategy == AutoGenStrategy.PRE_DEFINED:
        if target_dialect == POSTGRESQL:
            return " DEFAULT spanner.generate_uuid()"
        return " DEFAULT (GENERATE_UUID())"
    if column.default is not None:
        if target_dialect == POSTGRESQL:
            return f" DEFAULT {column.default}"
        return f" DEFAULT ({column.default})"
    return ""


def render_column(column: TargetColumn, schema: TargetSchema, target_dialect: str) -> str:
    q = quoter(target_dialect)
    parts = [q(column.name), render_type(column.type, target_dialect)]
    if column.not_null:
        parts.append("NOT NULL")
    return " ".join(parts) + _default_clause(column, schema, target_dialect)


def _key_list(table: TargetTable, keys: List[IndexKey], target_dialect: str, with_desc: bool) -> str:
    q = quoter(target_dialect)
    rendered = []
    for key in sorted(keys, key=lambda k: k.order):
        text = q(table.columns[key.column_id].name)
        if with_desc and key.desc:
            text += " DESC"
        rendered.append(text)
    return ", ".join(rendered)


def render_create_table(table: TargetTable, schema: TargetSchema, target_dialect: str) -> str:
    _check_dialect(target_dialect)
    q = quoter(target_dialect)
    lines = [render_column(col, schema, target_dialect) for col in table.ordered_columns()]
    for check in table.checks:
        lines.append(f"CONSTRAINT {q(check.name)} CHECK {check.expression}")

    interleave = ""
    if table.parent is not None and table.parent.table_id in schema.tables:
        parent_name = q(schema.tables[table.parent.table_id].name)
        interleave = f"INTERLEAVE IN PARENT {parent_name} ON DELETE {table.parent.on_delete}"

    if target_dialect == POSTGRESQL:
        if table.primary_keys:
            lines.append(f"PRIMARY KEY ({_key_list(table, table.primary_keys, target_dialect, False)})")
        body = ",\n".join(f"\t{line}" for line in lines)
        ddl = f"CREATE TABLE {q(table.name)} (\n{body}\n)"
        if interleave:
            ddl += f" {interleave}"
        return ddl

    body = "".join(f"\t{line},\n" for line in lines)
    ddl = (
        f"CREATE TABLE {q(table.name)} (\n{body}) "
        f"PRIMARY KEY ({_key_list(table, table.primary_keys, target_dialect, True)})"
    )
    if interleave:
        ddl += f",\n{interleave}"
    return ddl


def render_indexes(table: TargetTable, target_dialect: str) -> List[str]:
    q = quoter(target_dialect)
    statements = []
    for index in table.indexes:
        unique = "UNIQUE " if index.unique else ""
        ddl = (
            f"CREATE {unique}INDEX {q(index.name)} ON {q(table.name)} "
            f"({_key_list(table, index.keys, target_dialect, True)})"
        )
        if index.stored_column_ids:
            stored = ", ".join(q(table.columns[c].name) for c in index.stored_column_ids)
            keyword = "INCLUDE" if target_dialect == POSTGRESQL else "STORING"
            ddl += f" {keyword} ({stored})"
        statements.append(ddl)
    return statements


def render_foreign_keys(table: TargetTable, schema: TargetSchema, target_dialect: str) -> List[str]:
    q = quoter(target_dialect)
    statements = []
    for fk in table.foreign_keys:
        refer = schema.tables.get(fk.refer_table_id)
        if refer is None:
            continue
        cols = ", ".join(q(table.columns[c].name) for c in fk.column_ids)
        refer_cols = ", ".join(q(refer.columns[c].name) for c in fk.refer_column_ids)
        statements.append(
            f"ALTER TABLE {q(table.name)} ADD CONSTRAINT {q(fk.name)} "
            f"FOREIGN KEY ({cols}) REFERENCES {q(refer.name)} ({refer_cols}) "
            f"ON DELETE {fk.on_delete}"
        )
    return statements


def render_sequences(schema: TargetSchema, target_dialect: str) -> List[str]:
    q = quoter(target_dialect)
    statements = []
    for seq in schema.sequences.values():
        if target_dialect == POSTGRESQL:
            statements.append(f"CREATE SEQUENCE {q(seq.name)} BIT_REVERSED_POSITIVE")
        else:
            statements.append(
                f"CREATE SEQUENCE {q(seq.name)} OPTIONS (sequence_kind='bit_reversed_positive')"
            )
    return statements


def render_schema_ddl(schema: TargetSchema, target_dialect: str = GOOGLE_SQL) -> List[str]:
    """Render the whole schema as an ordered list of DDL statements."""
    _check_dialect(target_dialect)
    tables = schema.ordered_tables()
    statements = render_sequences(schema, target_dialect)
    statements.extend(render_create_table(t, schema, target_dialect) for t in tables)
    for table in tables:
        statements.extend(render_indexes(table, target_dialect))
    for table in tables:
        statements.extend(render_foreign_keys(table, schema, target_dialect))
    return statements
