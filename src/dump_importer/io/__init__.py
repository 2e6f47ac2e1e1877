"""Dump input streams and target store collaborators."""

from dump_importer.io.reader import CallableSource, LocalFileSource, StatementReader, StreamSource

__all__ = ["CallableSource", "LocalFileSource", "StatementReader", "StreamSource"]
