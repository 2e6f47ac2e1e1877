"""
Per-table parallel data import.

Once the schema is frozen, tables are independent: each task opens its own
reader on the dump, parses only the INSERT/COPY data of its table, and
writes through its own BatchWriter. Task statistics are merged into the
parent context when the task ends, whether it finished, failed or was
cancelled, so a cancelled run still reports what reached the store. The
first failure cancels the remaining tasks and is re-raised.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Dict, List, Optional

import structlog

from dump_importer.domain.context import ConversionContext
from dump_importer.domain.errors import ImportCancelledError
from dump_importer.io.reader import DumpSource, StatementReader
from dump_importer.io.target.base import TargetStore
from dump_importer.writer.batch_writer import BatchWriter, BatchWriterConfig, WriterStats

if TYPE_CHECKING:
    from dump_importer.dialects.base import SourceDialect

logger = structlog.get_logger(__name__)


class TableWriterPool:
    """Bounded worker pool running one data-pass task per table.

    Args:
        source: Reopenable dump source; every task opens its own stream
        dialect: Source dialect used to parse the dump
        ctx: Parent context in data mode with a frozen target schema
        store: Target store shared by all tasks
        config: Batch limits for each task's writer
        max_workers: Pool size
        progress_interval: Lines between reader progress events
    """

    def __init__(
        self,
        source: DumpSource,
        dialect: "SourceDialect",
        ctx: ConversionContext,
        store: TargetStore,
        config: Optional[BatchWriterConfig] = None,
        max_workers: int = 4,
        progress_interval: int = 100_000,
    ):
        self.source = source
        self.dialect = dialect
        self.ctx = ctx
        self.store = store
        self.config = config or BatchWriterConfig()
        self.max_workers = max_workers
        self.progress_interval = progress_interval
        self.stats = WriterStats()
        self._merge_lock = threading.Lock()

    def table_names(self) -> List[str]:
        """Source names of the tables that reached the target schema."""
        target = self.ctx.target
        if target is None:
            return []
        return [t.name for t in self.ctx.source.tables.values() if t.id in target.tables]

    def _run_table(self, table_name: str) -> None:
        child = self.ctx.fork()
        writer = BatchWriter(self.store, self.config, self.ctx.cancel_event)
        child.data_sink = writer.add_row
        log = logger.bind(table=table_name)
        log.debug("table_pool.task_started")
        try:
            with StatementReader(self.source, self.progress_interval) as reader:
                self.dialect.parse_dump(reader, child, table_filter=table_name)
            writer.flush()
        except BaseException:
            writer.abandon()
            raise
        finally:
            with self._merge_lock:
                self.ctx.merge(child)
                self.stats.merge(writer.stats)
        log.info(
            "table_pool.task_completed",
            rows=child.stats.rows.get(table_name, 0),
            bad_rows=child.bad_rows.total,
            batches=writer.stats.flushes,
        )

    def run(self) -> WriterStats:
        """Import every table's data; returns the combined writer statistics.

        Raises:
            The first task failure, after the remaining tasks were cancelled
        """
        tables = self.table_names()
        logger.info("table_pool.started", tables=len(tables), max_workers=self.max_workers)
        first_error: Optional[BaseException] = None

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="table-import") as executor:
            futures: Dict[Future, str] = {executor.submit(self._run_table, name): name for name in tables}
            for future in as_completed(futures):
                table_name = futures[future]
                try:
                    future.result()
                except ImportCancelledError as e:
                    if first_error is None:
                        first_error = e
                except Exception as e:
                    logger.error("table_pool.task_failed", table=table_name, error=str(e))
                    if first_error is None:
                        first_error = e
                        self.ctx.cancel()
                        for pending in futures:
                            pending.cancel()

        if first_error is not None:
            raise first_error
        logger.info("table_pool.completed", tables=len(tables), rows_written=self.stats.rows_written)
        return self.stats
