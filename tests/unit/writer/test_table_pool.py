"""
Unit tests for the per-table parallel import pool.

Tests verify:
- Each table's rows are imported by its own task and stats are merged
- A failing task cancels the run and its error is re-raised
- Statistics of cancelled tasks are still merged
"""

import pytest

from dump_importer.conversion.schema_converter import SchemaConverter
from dump_importer.domain.errors import BatchWriteError, ImportCancelledError
from dump_importer.io.reader import LocalFileSource
from dump_importer.io.target import InMemoryStore
from dump_importer.writer.batch_writer import BatchWriterConfig
from dump_importer.writer.table_pool import TableWriterPool

DUMP = (
    "CREATE TABLE `a` (`id` int PRIMARY KEY);\n"
    "CREATE TABLE `b` (`id` int PRIMARY KEY, `v` varchar(3));\n"
    "INSERT INTO `a` VALUES (1),(2),(3);\n"
    "INSERT INTO `b` VALUES (1,'x'),(2,'toolong');\n"
    "INSERT INTO `a` VALUES (4);\n"
)


class FailingStore(InMemoryStore):
    def write(self, mutations):
        if any(m.table == "b" for m in mutations):
            raise RuntimeError("permission denied")
        super().write(mutations)


class CancellingStore(InMemoryStore):
    """Requests cancellation from inside every write."""

    ctx = None

    def write(self, mutations):
        super().write(mutations)
        self.ctx.cancel()


@pytest.fixture
def pool_factory(write_dump, build_schema, mysql_dialect):
    def _make(store):
        path = write_dump(DUMP)
        ctx = build_schema(DUMP, mysql_dialect)
        SchemaConverter(ctx, mysql_dialect).convert()
        ctx.begin_data_pass()
        pool = TableWriterPool(
            LocalFileSource(path),
            mysql_dialect,
            ctx,
            store,
            config=BatchWriterConfig(write_limit=2, backoff_seconds=0, backoff_max_seconds=0),
            max_workers=2,
        )
        return pool, ctx

    return _make


@pytest.mark.unit
class TestTableWriterPool:
    """Tests for TableWriterPool.run()."""

    def test_tables_are_imported_independently(self, pool_factory):
        store = InMemoryStore()
        pool, ctx = pool_factory(store)

        assert sorted(pool.table_names()) == ["a", "b"]
        stats = pool.run()

        assert sorted(r["id"] for r in store.rows["a"]) == [1, 2, 3, 4]
        assert store.rows["b"] == [{"id": 1, "v": "x"}]
        assert stats.rows_written == 5
        assert ctx.stats.rows["a"] == 4
        assert ctx.stats.good_rows["b"] == 1
        assert ctx.bad_rows.by_table() == {"b": 1}

    def test_failure_cancels_and_is_raised(self, pool_factory):
        pool, ctx = pool_factory(FailingStore())

        with pytest.raises(BatchWriteError) as exc_info:
            pool.run()

        assert exc_info.value.tables == ["b"]
        assert str(exc_info.value.cause) == "permission denied"
        assert ctx.cancelled

    def test_cancelled_tasks_still_report_statistics(self, pool_factory):
        store = CancellingStore()
        pool, ctx = pool_factory(store)
        store.ctx = ctx

        with pytest.raises(ImportCancelledError):
            pool.run()

        delivered = sum(len(rows) for rows in store.rows.values())
        assert delivered > 0
        assert pool.stats.rows_written == delivered
        assert sum(ctx.stats.rows.values()) >= delivered
