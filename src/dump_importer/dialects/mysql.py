"""mysqldump dialect: type mapping, auto-generation and administrative statements."""

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
from dump_importer.domain.target_schema import TargetType

INT64 = TargetType("INT64")

SPATIAL_TYPES = frozenset(
    {
        "geometry",
        "point",
        "linestring",
        "polygon",
        "multipoint",
        "multilinestring",
        "multipolygon",
        "geometrycollection",
        "geomcollection",
    }
)

UUID_DEFAULT = re.compile(r"\buuid\s*\(\s*\)", re.IGNORECASE)


@register_dialect
class MySQLDialect(SourceDialect):
    """Dumps produced by mysqldump."""

    name = "mysqldump"
    sqlglot_dialect = "mysql"
    backslash_escapes = True
    hash_comments = True
    supports_delimiter = True
    supports_copy = False

    ADMIN_STATEMENT_PATTERNS = [
        (r"^\s*LOCK\s+TABLES\b", "lock_tables"),
        (r"^\s*UNLOCK\s+TABLES\b", "unlock_tables"),
        (r"^\s*ALTER\s+TABLE\s+\S+\s+(?:DISABLE|ENABLE)\s+KEYS\b", "alter_table_keys"),
        (r"^\s*USE\s", "use"),
        (r"^\s*SET\s+(?:@|NAMES\b|CHARACTER\s+SET\b)", "set"),
        (r"^\s*DROP\s", "drop"),
        (r"^\s*CREATE\s+(?:DATABASE|SCHEMA)\b", "create_database"),
        (r"^\s*(?:START\s+TRANSACTION|BEGIN|COMMIT)\b", "transaction"),
        (
            r"^\s*(?:CREATE|ALTER)\s+(?:OR\s+REPLACE\s+)?(?:ALGORITHM\s*=\s*\w+\s+)?"
            r"(?:DEFINER\s*=\s*\S+\s+)?(?:SQL\s+SECURITY\s+\w+\s+)?VIEW\b",
            "create_view",
        ),
    ]

    def map_type(self, source_type: SourceType, column: Optional[SourceColumn] = None) -> TypeMapping:
        name = source_type.name
        mods = source_type.mods

        if name in ("bool", "boolean"):
            return TargetType("BOOL"), []
        if name == "tinyint":
            if mods and mods[0] == 1:
                return TargetType("BOOL"), []
            return INT64, [IssueKind.WIDENED]
        if name in ("smallint", "mediumint", "int", "integer"):
            return INT64, [IssueKind.WIDENED]
        if name == "bigint":
            return INT64, []
        if name == "float":
            return TargetType("FLOAT32"), []
        if name in ("double", "double precision", "real"):
            return TargetType("FLOAT64"), []
        if name in ("decimal", "numeric", "dec", "fixed"):
            return self._decimal(source_type)
        if name in ("char", "varchar", "nchar", "nvarchar"):
            return self._string(source_type), []
        if name in ("text", "tinytext", "mediumtext", "longtext", "enum"):
            return STRING_MAX, []
        if name == "set":
            return TargetType("STRING", -1, is_array=True), []
        if name == "json":
            return TargetType("JSON"), []
        if name in ("binary", "varbinary", "blob", "tinyblob", "mediumblob", "longblob", "bit"):
            return BYTES_MAX, []
        if name == "date":
            return TargetType("DATE"), []
        if name == "datetime":
            return TargetType("TIMESTAMP"), [IssueKind.DATETIME]
        if name == "timestamp":
            return TargetType("TIMESTAMP"), []
        if name in ("time", "year"):
            return STRING_MAX, [IssueKind.TIME]
        if name in SPATIAL_TYPES:
            return STRING_MAX, [IssueKind.SPATIAL]
        return STRING_MAX, [IssueKind.NO_GOOD_TYPE]

    def get_auto_gen_strategy(self, column: SourceColumn) -> AutoGen:
        if column.ignored.auto_increment:
            return AutoGen(strategy=AutoGenStrategy.SEQUENCE)
        if column.default is not None and UUID_DEFAULT.search(column.default.statement):
            return AutoGen(strategy=AutoGenStrategy.PRE_DEFINED, name="uuid")
        return AutoGen()
