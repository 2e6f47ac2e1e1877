"""Batched writing to the target store."""

from dump_importer.writer.batch_writer import BatchWriter, BatchWriterConfig, WriterStats
from dump_importer.writer.table_pool import TableWriterPool

__all__ = ["BatchWriter", "BatchWriterConfig", "WriterStats", "TableWriterPool"]
