"""
Batched writer for target mutations.

Rows are appended to an in-flight batch. When appending would reach the
byte limit or exceed the row limit, the pending batch is flushed first.
A flush hands the batch to the store and retries TransientWriteError with
exponential backoff and jitter; exhausting the attempt budget raises
BatchWriteError and fails the run.

The caller must call flush() at the end of a pass, otherwise the trailing
partial batch is never written. On cancellation call abandon() instead.
"""

import random
import threading
from dataclasses import dataclass
from typing import Any, List, Optional

import structlog

from dump_importer.config.settings import Settings
from dump_importer.domain.errors import BatchWriteError, ImportCancelledError, TransientWriteError
from dump_importer.io.target.base import Mutation, TargetStore

logger = structlog.get_logger(__name__)

# Caps the exponent so the jittered delay never overflows a float
MAX_BACKOFF_EXPONENT = 30


@dataclass
class BatchWriterConfig:
    bytes_limit: int = 100_000_000
    write_limit: int = 2000
    retry_limit: int = 1000
    backoff_seconds: float = 0.5
    backoff_max_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "BatchWriterConfig":
        return cls(
            bytes_limit=settings.BATCH_BYTES_LIMIT,
            write_limit=settings.BATCH_WRITE_LIMIT,
            retry_limit=settings.BATCH_RETRY_LIMIT,
            backoff_seconds=settings.RETRY_BACKOFF_SECONDS,
            backoff_max_seconds=settings.RETRY_BACKOFF_MAX_SECONDS,
        )


@dataclass
class WriterStats:
    flushes: int = 0
    retries: int = 0
    rows_written: int = 0
    bytes_written: int = 0
    abandoned_rows: int = 0

    def merge(self, other: "WriterStats") -> None:
        self.flushes += other.flushes
        self.retries += other.retries
        self.rows_written += other.rows_written
        self.bytes_written += other.bytes_written
        self.abandoned_rows += other.abandoned_rows


class BatchWriter:
    """Accumulate mutations and write them in size-bounded batches.

    Args:
        store: Target store client
        config: Batch limits and retry policy
        cancel_event: Set to stop between flush attempts
    """

    def __init__(
        self,
        store: TargetStore,
        config: Optional[BatchWriterConfig] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.store = store
        self.config = config or BatchWriterConfig()
        self.cancel_event = cancel_event or threading.Event()
        self.stats = WriterStats()
        self._pending: List[Mutation] = []
        self._pending_bytes = 0
        self._lock = threading.RLock()

    @property
    def pending_rows(self) -> int:
        return len(self._pending)

    @property
    def pending_bytes(self) -> int:
        return self._pending_bytes

    def add_row(self, table: str, columns: List[str], values: List[Any]) -> None:
        """Append one row; matches the context data-sink signature."""
        mutation = Mutation(table=table, columns=list(columns), values=list(values))
        size = mutation.size
        with self._lock:
            if self._pending and (
                self._pending_bytes + size >= self.config.bytes_limit
                or len(self._pending) + 1 > self.config.write_limit
            ):
                self.flush()
            self._pending.append(mutation)
            self._pending_bytes += size
            if self._pending_bytes >= self.config.bytes_limit:
                # A single row at or above the byte limit goes out on its own
                self.flush()

    def flush(self) -> None:
        """Write the pending batch, retrying transient failures.

        Raises:
            BatchWriteError: If the batch fails fatally or retries run out
            ImportCancelledError: If cancellation is observed between attempts
        """
        with self._lock:
            if not self._pending:
                return
            batch = self._pending
            batch_bytes = self._pending_bytes
            self._write_with_retry(batch)
            self._pending = []
            self._pending_bytes = 0
            self.stats.flushes += 1
            self.stats.rows_written += len(batch)
            self.stats.bytes_written += batch_bytes
            logger.debug("writer.flushed", rows=len(batch), bytes=batch_bytes)

    def abandon(self) -> None:
        """Drop the pending batch without writing it."""
        with self._lock:
            if self._pending:
                logger.warning("writer.batch_abandoned", rows=len(self._pending), bytes=self._pending_bytes)
            self.stats.abandoned_rows += len(self._pending)
            self._pending = []
            self._pending_bytes = 0

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise ImportCancelledError("import cancelled during batch write")

    def _write_with_retry(self, batch: List[Mutation]) -> None:
        tables = sorted({m.table for m in batch})
        attempts = max(1, self.config.retry_limit)
        for attempt in range(attempts):
            self._check_cancelled()
            try:
                self.store.write(batch)
                return
            except TransientWriteError as e:
                logger.warning(
                    "writer.flush_retry",
                    tables=tables,
                    rows=len(batch),
                    attempt=attempt + 1,
                    error=str(e),
                )
                if attempt + 1 >= attempts:
                    raise BatchWriteError(
                        "Batch write retries exhausted", tables, len(batch), attempt + 1, cause=e
                    ) from e
                self.stats.retries += 1
                # Exponential backoff with jitter, capped
                delay = (2 ** min(attempt, MAX_BACKOFF_EXPONENT)) * (0.8 + 0.4 * random.random())
                delay = min(delay * self.config.backoff_seconds, self.config.backoff_max_seconds)
                if self.cancel_event.wait(delay):
                    raise ImportCancelledError("import cancelled during batch write") from e
            except ImportCancelledError:
                raise
            except Exception as e:
                logger.error("writer.flush_failed", tables=tables, rows=len(batch), error=str(e))
                raise BatchWriteError("Batch write failed", tables, len(batch), attempt + 1, cause=e) from e
