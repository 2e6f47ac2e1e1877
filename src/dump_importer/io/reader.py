"""
Incremental line reader over a dump byte stream.

The reader is the join point between the schema pass and the data pass:
``reset()`` rewinds to offset 0, seeking when the stream allows it and
reopening it through its source otherwise.
"""

import gzip
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Protocol, Union

import structlog

from dump_importer.domain.errors import DumpReadError

logger = structlog.get_logger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


class DumpSource(Protocol):
    """Resolves a dump location into a readable binary stream."""

    name: str

    def open(self) -> BinaryIO:
        ...

    @property
    def reopenable(self) -> bool:
        ...


class LocalFileSource:
    """Dump on the local filesystem, plain or gzip-compressed."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.name = str(self.path)

    @property
    def reopenable(self) -> bool:
        return True

    def open(self) -> BinaryIO:
        if not self.path.exists():
            raise DumpReadError(f"Dump file not found: {self.path}")
        try:
            with open(self.path, "rb") as handle:
                magic = handle.read(2)
            if magic == GZIP_MAGIC:
                return gzip.open(self.path, "rb")  # type: ignore[return-value]
            return open(self.path, "rb")
        except OSError as e:
            raise DumpReadError(f"Cannot open dump file {self.path}: {e}") from e


class StreamSource:
    """Already-open stream; it can be rewound only if it is seekable."""

    def __init__(self, stream: BinaryIO, name: str = "<stream>"):
        self._stream = stream
        self.name = name

    @property
    def reopenable(self) -> bool:
        return False

    def open(self) -> BinaryIO:
        return self._stream


class CallableSource:
    """Source backed by an opener callable, e.g. a remote object download."""

    def __init__(self, opener: Callable[[], BinaryIO], name: str = "<callable>"):
        self._opener = opener
        self.name = name

    @property
    def reopenable(self) -> bool:
        return True

    def open(self) -> BinaryIO:
        try:
            return self._opener()
        except OSError as e:
            raise DumpReadError(f"Cannot open dump {self.name}: {e}") from e


class StatementReader:
    """Line reader that tracks line number and byte offset.

    Lines are decoded as UTF-8 with surrogateescape, so arbitrary bytes in
    binary column values survive decoding and can be recovered exactly with
    ``text.encode("utf-8", "surrogateescape")``.
    """

    def __init__(self, source: DumpSource, progress_interval: int = 100000):
        self.source = source
        self.progress_interval = progress_interval
        self._stream: Optional[BinaryIO] = source.open()
        self.line_number = 0
        self.byte_offset = 0
        self.eof = False

    def read_line(self) -> str:
        """Return the next line including its newline, or "" at end of stream."""
        if self.eof or self._stream is None:
            return ""
        try:
            raw = self._stream.readline()
        except OSError as e:
            raise DumpReadError(
                f"Read failed in {self.source.name} at byte offset {self.byte_offset}: {e}"
            ) from e
        if not raw:
            self.eof = True
            return ""
        self.line_number += 1
        self.byte_offset += len(raw)
        if self.progress_interval and self.line_number % self.progress_interval == 0:
            logger.info(
                "reader.progress",
                source=self.source.name,
                line_number=self.line_number,
                byte_offset=self.byte_offset,
            )
        return raw.decode("utf-8", errors="surrogateescape")

    def reset(self) -> None:
        """Rewind to offset 0. May require reopening a non-seekable source."""
        stream = self._stream
        rewound = False
        if stream is not None:
            try:
                if stream.seekable():
                    stream.seek(0)
                    rewound = True
            except (OSError, ValueError) as e:
                logger.debug("reader.seek_failed", source=self.source.name, error=str(e))

        if not rewound:
            if not self.source.reopenable:
                raise DumpReadError(
                    f"Cannot rewind {self.source.name}: stream is not seekable and cannot be reopened"
                )
            self.close()
            self._stream = self.source.open()
            logger.debug("reader.reopened", source=self.source.name)

        self.line_number = 0
        self.byte_offset = 0
        self.eof = False

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __enter__(self) -> "StatementReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
