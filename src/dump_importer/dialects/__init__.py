"""Source dialects. Importing this package registers mysqldump and pg_dump."""

from dump_importer.dialects.base import SourceDialect, get_dialect, supported_formats
from dump_importer.dialects.mysql import MySQLDialect
from dump_importer.dialects.postgres import PostgresDialect

__all__ = ["SourceDialect", "get_dialect", "supported_formats", "MySQLDialect", "PostgresDialect"]
