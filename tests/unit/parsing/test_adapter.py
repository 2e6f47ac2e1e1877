"""
Unit tests for the statement parser adapter.

Tests verify:
- Multi-line chunk accumulation
- Administrative statements and comments are skipped and counted
- DELIMITER regions and routines are skipped whole
- Multi-row insert splitting isolates an unparsable tuple
- pg_dump COPY blocks are decoded into insert rows
- Table filtering for per-table data passes
- An unparsable trailing chunk is fatal
- Each source statement is counted once per pass, however it is split
"""

import pytest

from dump_importer.domain.errors import DumpParseError
from dump_importer.domain.issues import IssueKind
from dump_importer.domain.statements import (
    CreateIndex,
    CreateTable,
    Insert,
    SetVariable,
    UnparsableRow,
    ValueKind,
)
from dump_importer.io.reader import LocalFileSource, StatementReader
from dump_importer.parsing.adapter import COPY_BATCH_ROWS, DumpStatementParser

MYSQL_HEADER = """-- MySQL dump 10.13  Distrib 8.0.36, for Linux (x86_64)
--
-- Host: localhost    Database: shop
/*!40101 SET @OLD_CHARACTER_SET_CLIENT=@@CHARACTER_SET_CLIENT */;
/*!50503 SET NAMES utf8mb4 */;
/*!40103 SET TIME_ZONE='+00:00' */;
"""


def _statements(write_dump, text, dialect, ctx, table_filter=None):
    with StatementReader(LocalFileSource(write_dump(text))) as reader:
        return list(DumpStatementParser(dialect).statements(reader, ctx, table_filter=table_filter))


@pytest.mark.unit
class TestMySQLChunks:
    """Chunk handling for mysqldump input."""

    def test_multiline_create_table(self, write_dump, mysql_dialect, ctx):
        """Lines are accumulated until the statement terminator."""
        text = (
            "CREATE TABLE `users` (\n"
            "  `id` int NOT NULL AUTO_INCREMENT,\n"
            "  `name` varchar(50) DEFAULT NULL,\n"
            "  PRIMARY KEY (`id`)\n"
            ") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;\n"
        )

        statements = _statements(write_dump, text, mysql_dialect, ctx)

        assert len(statements) == 1
        create = statements[0]
        assert isinstance(create, CreateTable)
        assert create.table.name == "users"
        assert [c.name for c in create.columns] == ["id", "name"]
        assert create.columns[0].auto_increment
        assert ctx.stats.statements["create_table"] == 1

    def test_header_comments_are_skipped(self, write_dump, mysql_dialect, ctx):
        """Versioned SET comments are unwrapped; the time zone is kept, the rest skipped."""
        statements = _statements(write_dump, MYSQL_HEADER, mysql_dialect, ctx)

        assert len(statements) == 1
        assert isinstance(statements[0], SetVariable)
        assert statements[0].name.lower() == "time_zone"
        assert statements[0].value == "+00:00"
        assert statements[0].is_literal
        assert ctx.stats.skipped["set"] == 2

    def test_admin_statements_are_skipped(self, write_dump, mysql_dialect, ctx):
        text = (
            "LOCK TABLES `users` WRITE;\n"
            "/*!40000 ALTER TABLE `users` DISABLE KEYS */;\n"
            "/*!40000 ALTER TABLE `users` ENABLE KEYS */;\n"
            "UNLOCK TABLES;\n"
            "DROP TABLE IF EXISTS `users`;\n"
        )

        statements = _statements(write_dump, text, mysql_dialect, ctx)

        assert statements == []
        assert ctx.stats.skipped["lock_tables"] == 1
        assert ctx.stats.skipped["unlock_tables"] == 1
        assert ctx.stats.skipped["alter_table_keys"] == 2
        assert ctx.stats.skipped["drop"] == 1

    def test_admin_select_into_comment(self, write_dump, mysql_dialect, ctx):
        text = "/*!50112 SELECT COUNT(*) INTO @is_rocksdb_supported FROM INFORMATION_SCHEMA.SESSION_VARIABLES */;\n"

        assert _statements(write_dump, text, mysql_dialect, ctx) == []
        assert ctx.stats.skipped["admin_comment"] == 1

    def test_delimiter_region_is_skipped_whole(self, write_dump, mysql_dialect, ctx):
        """Semicolons inside a routine body never split the region."""
        text = (
            "DELIMITER ;;\n"
            "CREATE DEFINER=`root`@`localhost` PROCEDURE `touch`()\n"
            "BEGIN\n"
            "  UPDATE users SET name = 'x';\n"
            "  DELETE FROM users;\n"
            "END ;;\n"
            "DELIMITER ;\n"
            "CREATE TABLE `t` (`id` int);\n"
        )

        statements = _statements(write_dump, text, mysql_dialect, ctx)

        assert [type(s) for s in statements] == [CreateTable]
        assert ctx.stats.skipped["procedure"] == 1

    def test_trigger_outside_delimiter_is_skipped(self, write_dump, mysql_dialect, ctx):
        text = "CREATE TRIGGER trg BEFORE INSERT ON t FOR EACH ROW SET NEW.a = 1;\n"

        assert _statements(write_dump, text, mysql_dialect, ctx) == []
        assert ctx.stats.skipped["trigger"] == 1

    def test_unparsable_tuple_is_isolated(self, write_dump, mysql_dialect, ctx):
        """A failing multi-row insert is split; only the broken tuple is lost."""
        text = "INSERT INTO `t` VALUES (1,'a'),(2, 'x' + ),(3,'c');\n"

        statements = _statements(write_dump, text, mysql_dialect, ctx)

        inserts = [s for s in statements if isinstance(s, Insert)]
        bad = [s for s in statements if isinstance(s, UnparsableRow)]
        assert len(inserts) == 1
        assert [row[0].value for row in inserts[0].rows] == ["1", "3"]
        assert len(bad) == 1
        assert bad[0].table.name == "t"
        assert ctx.stats.reparsed >= 1

    def test_spatial_column_is_reported(self, write_dump, mysql_dialect, build_schema):
        """Spatial columns end up with a SPATIAL issue whichever way they parse."""
        text = (
            "CREATE TABLE `places` (\n"
            "  `id` int NOT NULL,\n"
            "  `loc` geometry NOT NULL,\n"
            "  PRIMARY KEY (`id`)\n"
            ");\n"
        )

        ctx = build_schema(text, mysql_dialect)

        table = ctx.source.table_by_name("places")
        loc = table.column_by_name("loc")
        kinds = ctx.issues.for_column(table.id, loc.id)
        mapped, issues = mysql_dialect.map_type(loc.type, loc)
        assert IssueKind.SPATIAL in kinds + issues
        assert str(mapped) == "STRING(MAX)"

    def test_unparsable_tail_is_fatal(self, write_dump, mysql_dialect, ctx):
        text = "CREATE TABLE `ok` (`id` int);\nCREATE TABLE t (((\n;\n"

        with pytest.raises(DumpParseError) as exc_info:
            _statements(write_dump, text, mysql_dialect, ctx)

        assert exc_info.value.unparsed_lines == 2
        assert exc_info.value.line_number == 3
        assert "Error parsing last 2 line(s) of input" in str(exc_info.value)

    def test_table_filter_drops_other_chunks(self, write_dump, mysql_dialect, ctx):
        """With a filter only that table's inserts are parsed, and nothing is counted as skipped."""
        text = (
            "CREATE TABLE `a` (`id` int);\n"
            "LOCK TABLES `a` WRITE;\n"
            "INSERT INTO `a` VALUES (1),(2);\n"
            "INSERT INTO `b` VALUES (3);\n"
        )

        statements = _statements(write_dump, text, mysql_dialect, ctx, table_filter="a")

        assert len(statements) == 1
        assert isinstance(statements[0], Insert)
        assert len(statements[0].rows) == 2
        assert sum(ctx.stats.skipped.values()) == 0


@pytest.mark.unit
class TestPostgresChunks:
    """Chunk handling for pg_dump input."""

    PG_DUMP = (
        "SET statement_timeout = 0;\n"
        "SELECT pg_catalog.set_config('search_path', '', false);\n"
        "CREATE TABLE public.items (\n"
        "    id integer NOT NULL,\n"
        "    label text\n"
        ");\n"
        "ALTER TABLE public.items OWNER TO postgres;\n"
        "COPY public.items (id, label) FROM stdin;\n"
        "1\tfirst\n"
        "2\t\\N\n"
        "3\ttab\\there\n"
        "\\.\n"
    )

    def test_copy_block(self, write_dump, pg_dialect, ctx):
        statements = _statements(write_dump, self.PG_DUMP, pg_dialect, ctx)

        create = [s for s in statements if isinstance(s, CreateTable)]
        copies = [s for s in statements if isinstance(s, Insert)]
        assert len(create) == 1
        assert str(create[0].table) == "items"
        assert len(copies) == 1
        copy = copies[0]
        assert str(copy.table) == "items"
        assert copy.columns == ["id", "label"]
        assert [[v.value for v in row] for row in copy.rows] == [["1", "first"], ["2", None], ["3", "tab\there"]]
        assert copy.rows[1][1].kind == ValueKind.NULL
        assert copy.rows[0][0].kind == ValueKind.TEXT

    def test_admin_statements_are_skipped(self, write_dump, pg_dialect, ctx):
        _statements(write_dump, self.PG_DUMP, pg_dialect, ctx)

        assert ctx.stats.skipped["set"] == 1
        assert ctx.stats.skipped["select_pg_catalog"] == 1
        assert ctx.stats.skipped["owner_to"] == 1

    def test_copy_for_other_table_is_consumed_under_filter(self, write_dump, pg_dialect, ctx):
        """Filtered COPY blocks are read past without producing rows."""
        statements = _statements(write_dump, self.PG_DUMP, pg_dialect, ctx, table_filter="other")

        assert statements == []

    def test_dollar_quoted_function_is_skipped(self, write_dump, pg_dialect, ctx):
        text = (
            "CREATE FUNCTION public.bump() RETURNS trigger\n"
            "    LANGUAGE plpgsql\n"
            "    AS $$\n"
            "BEGIN\n"
            "  NEW.n := NEW.n + 1;\n"
            "  RETURN NEW;\n"
            "END;\n"
            "$$;\n"
        )

        assert _statements(write_dump, text, pg_dialect, ctx) == []
        assert ctx.stats.skipped["function"] == 1

    def test_unterminated_copy_is_fatal(self, write_dump, pg_dialect, ctx):
        text = "COPY public.items (id) FROM stdin;\n1\n2\n"

        with pytest.raises(DumpParseError):
            _statements(write_dump, text, pg_dialect, ctx)


@pytest.mark.unit
class TestStatementCounting:
    """Statement counters across split inserts, COPY batches and both passes."""

    MYSQL_DUMP = (
        "SET NAMES utf8mb4;\n"
        "CREATE TABLE `t` (`id` int, `name` varchar(5));\n"
        "CREATE SPATIAL INDEX `t_g_sp` ON `t` (`g`);\n"
        "INSERT INTO `t` VALUES (1,'a'),(2, 'x' + ),(3, 'y' + ),(4,'d');\n"
        "INSERT INTO `t` VALUES (5,'e');\n"
    )

    def test_split_insert_is_counted_once(self, write_dump, mysql_dialect, ctx):
        statements = _statements(write_dump, self.MYSQL_DUMP, mysql_dialect, ctx)

        assert len([s for s in statements if isinstance(s, UnparsableRow)]) == 2
        assert ctx.stats.statements["insert"] == 2
        assert ctx.stats.statements["create_table"] == 1
        assert ctx.stats.statements["create_index"] == 1

    def test_large_copy_block_is_counted_once(self, write_dump, pg_dialect, ctx):
        rows = "".join(f"{i}\n" for i in range(2500))
        text = f"COPY public.items (id) FROM stdin;\n{rows}\\.\n"

        statements = _statements(write_dump, text, pg_dialect, ctx)

        assert [len(s.rows) for s in statements] == [COPY_BATCH_ROWS, COPY_BATCH_ROWS, 2500 - 2 * COPY_BATCH_ROWS]
        assert ctx.stats.statements["insert"] == 1

    def test_passes_keep_separate_counters(self, write_dump, mysql_dialect, ctx):
        """Re-reading the dump for the data pass does not add to the schema pass counts."""
        _statements(write_dump, self.MYSQL_DUMP, mysql_dialect, ctx)
        schema_counts = dict(ctx.stats.statements)
        schema_skipped = dict(ctx.stats.skipped)

        ctx.begin_data_pass()
        _statements(write_dump, self.MYSQL_DUMP, mysql_dialect, ctx)

        assert dict(ctx.schema_stats.statements) == schema_counts
        assert dict(ctx.schema_stats.skipped) == schema_skipped
        assert dict(ctx.stats.statements) == schema_counts
        assert dict(ctx.stats.skipped) == schema_skipped

    def test_create_spatial_index_keeps_its_kind(self, write_dump, mysql_dialect, ctx):
        statements = _statements(write_dump, self.MYSQL_DUMP, mysql_dialect, ctx)

        index = next(s for s in statements if isinstance(s, CreateIndex))
        assert index.name == "t_g_sp"
        assert index.index_kind == "SPATIAL"
