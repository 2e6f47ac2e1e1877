"""
Exception hierarchy for dump imports.

Only I/O-class and fatal conditions are raised as exceptions. Data-shape
problems (bad rows, unsupported statements, lossy types) are reported through
the conversion context instead.
"""

from typing import List, Optional


class DumpImportError(Exception):
    """Base class for all dump-importer errors."""


class UnsupportedDumpFormatError(DumpImportError):
    """Raised when the requested source format has no dialect implementation."""

    def __init__(self, source_format: str, supported: List[str]):
        self.source_format = source_format
        self.supported = supported
        super().__init__(
            f"dump format '{source_format}' not supported; "
            f"expected one of: {', '.join(supported)}"
        )


class DumpReadError(DumpImportError):
    """Raised when the dump stream cannot be opened, read or rewound."""


class DumpParseError(DumpImportError):
    """Raised when the trailing chunk of a dump cannot be parsed or repaired."""

    def __init__(self, unparsed_lines: int, line_number: int, byte_offset: int):
        self.unparsed_lines = unparsed_lines
        self.line_number = line_number
        self.byte_offset = byte_offset
        super().__init__(
            f"Error parsing last {unparsed_lines} line(s) of input "
            f"(ending at line {line_number}, byte offset {byte_offset})"
        )


class SchemaApplicationError(DumpImportError):
    """Raised when the target schema cannot be applied to the store."""


class TransientWriteError(DumpImportError):
    """Raised by store clients for write failures that are safe to retry."""


class BatchWriteError(DumpImportError):
    """Raised when a batch could not be written within the retry budget."""

    def __init__(
        self,
        message: str,
        tables: List[str],
        rows: int,
        attempts: int,
        cause: Optional[BaseException] = None,
    ):
        self.tables = tables
        self.rows = rows
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"{message} (tables={','.join(tables)}, rows={rows}, attempts={attempts})"
        )


class ImportCancelledError(DumpImportError):
    """Raised when cancellation is observed between statements or flush attempts."""


class ValueConversionError(DumpImportError):
    """Raised for a single value that cannot be converted to its target type.

    Always caught by the row converter; it marks one row bad and never
    escapes a statement.
    """
