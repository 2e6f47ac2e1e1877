"""pg_dump dialect: type mapping, serial/identity detection and COPY support."""

import re
from typing import Optional

from dump_importer.dialects.base import (
    BYTES_MAX,
    STRING_MAX,
    SourceDialect,
    TypeMapping,
    register_dialect,
)
from dump_importer.domain.issues import IssueKind
from dump_importer.domain.source_schema import AutoGen, AutoGenStrategy, SourceColumn, SourceType
from dump_importer.domain.statements import TableName
from dump_importer.domain.target_schema import TargetType

INT64 = TargetType("INT64")

SERIAL_TYPES = frozenset({"smallserial", "serial2", "serial", "serial4", "bigserial", "serial8"})

NEXTVAL_DEFAULT = re.compile(r"nextval\s*\(\s*(?:CAST\s*\(\s*)?'([^']+)'", re.IGNORECASE)
UUID_DEFAULT = re.compile(r"\b(?:gen_random_uuid|uuid_generate_v4)\s*\(\s*\)", re.IGNORECASE)

DEFAULT_NAMESPACE = "public"


@register_dialect
class PostgresDialect(SourceDialect):
    """Plain-text dumps produced by pg_dump."""

    name = "pg_dump"
    sqlglot_dialect = "postgres"
    backslash_escapes = False
    hash_comments = False
    supports_delimiter = False
    supports_copy = True

    ADMIN_STATEMENT_PATTERNS = [
        (r"^\s*SELECT\s+pg_catalog\.", "select_pg_catalog"),
        (r"^\s*ALTER\s+[^;]*\bOWNER\s+TO\b", "owner_to"),
        (r"^\s*(?:COMMENT\s+ON|GRANT|REVOKE)\b", "privileges"),
        (r"^\s*CREATE\s+(?:SCHEMA|EXTENSION|DATABASE)\b", "create_schema"),
        (r"^\s*SET\s+(?!TIME\s+ZONE\b|timezone\b)", "set"),
        (r"^\s*DROP\s", "drop"),
        (r"^\s*(?:BEGIN|COMMIT|START\s+TRANSACTION)\b", "transaction"),
        (r"^\s*(?:CREATE|ALTER)\s+SEQUENCE\b", "sequence"),
        (r"^\s*CREATE\s+(?:OR\s+REPLACE\s+)?(?:MATERIALIZED\s+)?VIEW\b", "create_view"),
        (r"^\s*CREATE\s+TYPE\b", "create_type"),
    ]

    def normalize_table(self, table: TableName) -> TableName:
        if table.namespace == DEFAULT_NAMESPACE:
            return TableName(name=table.name)
        return table

    def _scalar(self, source_type: SourceType) -> TypeMapping:
        name = source_type.name
        if name in ("smallint", "int2", "int", "integer", "int4", "smallserial", "serial2", "serial", "serial4"):
            return INT64, [IssueKind.WIDENED]
        if name in ("bigint", "int8", "bigserial", "serial8"):
            return INT64, []
        if name in ("real", "float4"):
            return TargetType("FLOAT32"), []
        if name in ("double precision", "float8", "float", "double"):
            return TargetType("FLOAT64"), []
        if name in ("numeric", "decimal"):
            return self._decimal(source_type)
        if name in ("varchar", "character varying", "char", "character", "bpchar"):
            return self._string(source_type), []
        if name in ("text", "citext", "name"):
            return STRING_MAX, []
        if name in ("bytea", "varbinary"):
            return BYTES_MAX, []
        if name in ("bool", "boolean"):
            return TargetType("BOOL"), []
        if name == "date":
            return TargetType("DATE"), []
        if name in ("timestamp", "timestamp without time zone"):
            return TargetType("TIMESTAMP"), [IssueKind.TIMESTAMP]
        if name in ("timestamptz", "timestamp with time zone"):
            return TargetType("TIMESTAMP"), []
        if name in ("json", "jsonb"):
            return TargetType("JSON"), []
        if name == "uuid":
            return TargetType("STRING", 36), []
        if name in ("time", "timetz", "time with time zone", "time without time zone", "interval"):
            return STRING_MAX, [IssueKind.TIME]
        return STRING_MAX, [IssueKind.NO_GOOD_TYPE]

    def map_type(self, source_type: SourceType, column: Optional[SourceColumn] = None) -> TypeMapping:
        target, issues = self._scalar(source_type)
        if not source_type.array_bounds:
            return target, issues
        if len(source_type.array_bounds) > 1:
            return STRING_MAX, issues + [IssueKind.MULTI_DIMENSIONAL_ARRAY]
        return TargetType(target.name, target.length, is_array=True), issues

    def get_auto_gen_strategy(self, column: SourceColumn) -> AutoGen:
        if column.default is not None:
            match = NEXTVAL_DEFAULT.search(column.default.statement)
            if match:
                sequence = match.group(1).split(".")[-1].strip('"')
                return AutoGen(strategy=AutoGenStrategy.SEQUENCE, name=sequence)
            if UUID_DEFAULT.search(column.default.statement):
                return AutoGen(strategy=AutoGenStrategy.PRE_DEFINED, name="uuid")
        if column.type.name in SERIAL_TYPES or column.ignored.auto_increment:
            return AutoGen(strategy=AutoGenStrategy.SEQUENCE)
        return AutoGen()
