"""Shared utilities: structured logging and bad-row reporting."""

from dump_importer.utils.bad_rows import BadRow, BadRowReporter

__all__ = ["BadRow", "BadRowReporter"]
