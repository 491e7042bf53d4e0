"""Output writers for streamed XML text."""

from __future__ import annotations

import io
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from substack_wxr.errors import IOStateError

OutputTarget = Path | str | io.StringIO


class Writer:
    """Append-only text sink with an explicit open/close lifecycle."""

    def __init__(self) -> None:
        self._open = False

    @property
    def closed(self) -> bool:
        return not self._open

    def open(self, target: OutputTarget) -> "Writer":
        raise NotImplementedError

    def write(self, data: str) -> None:
        self._ensure_open("write")
        self._write(data)

    def tell(self) -> int:
        """Return the current end offset in the sink's own units."""

        self._ensure_open("tell")
        return self._tell()

    def truncate(self, size: int) -> None:
        """Drop everything after offset `size`; later writes append from there."""

        self._ensure_open("truncate")
        if size < 0:
            raise ValueError("Truncate size must be non-negative")
        self._truncate(size)

    def close(self) -> None:
        if not self._open:
            return
        try:
            self._close()
        finally:
            self._open = False

    def __enter__(self) -> "Writer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_open(self, operation: str) -> None:
        if not self._open:
            raise IOStateError(f"Cannot {operation}: writer is closed")

    def _write(self, data: str) -> None:
        raise NotImplementedError

    def _tell(self) -> int:
        raise NotImplementedError

    def _truncate(self, size: int) -> None:
        raise NotImplementedError

    def _close(self) -> None:
        raise NotImplementedError


class BufferWriter(Writer):
    """Accumulates text in an in-memory buffer. Offsets count characters."""

    def __init__(self) -> None:
        super().__init__()
        self._buffer: io.StringIO | None = None

    def open(self, target: OutputTarget | None = None) -> "BufferWriter":
        if self._open:
            raise IOStateError("Writer is already open")
        if target is None:
            target = io.StringIO()
        if not isinstance(target, io.StringIO):
            raise IOStateError(f"BufferWriter needs an io.StringIO target, got {type(target).__name__}")
        if target.closed:
            raise IOStateError("Buffer target is closed")

        target.seek(0, io.SEEK_END)
        self._buffer = target
        self._open = True
        return self

    @property
    def buffer(self) -> io.StringIO | None:
        return self._buffer

    def getvalue(self) -> str:
        if self._buffer is None:
            return ""
        return self._buffer.getvalue()

    def _write(self, data: str) -> None:
        assert self._buffer is not None
        self._buffer.write(data)

    def _tell(self) -> int:
        assert self._buffer is not None
        return len(self._buffer.getvalue())

    def _truncate(self, size: int) -> None:
        assert self._buffer is not None
        self._buffer.truncate(size)
        self._buffer.seek(0, io.SEEK_END)

    def _close(self) -> None:
        # The buffer is left open so the accumulated text stays readable.
        pass


class FileWriter(Writer):
    """Appends UTF-8 encoded text to a file. Offsets count bytes."""

    def __init__(self) -> None:
        super().__init__()
        self._handle: io.BufferedWriter | None = None
        self.path: Path | None = None

    def open(self, target: OutputTarget) -> "FileWriter":
        if self._open:
            raise IOStateError("Writer is already open")
        if isinstance(target, io.StringIO):
            raise IOStateError("FileWriter needs a filesystem path target")

        path = Path(target)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = path.open("ab")
        except OSError as exc:
            raise IOStateError(f"Cannot open output file {path}: {exc}") from exc

        self._handle = handle
        self.path = path
        self._open = True
        return self

    def _write(self, data: str) -> None:
        assert self._handle is not None
        try:
            self._handle.write(data.encode("utf-8"))
        except OSError as exc:
            raise IOStateError(f"Write to {self.path} failed: {exc}") from exc

    def _tell(self) -> int:
        assert self._handle is not None
        self._handle.flush()
        return self._handle.seek(0, io.SEEK_END)

    def _truncate(self, size: int) -> None:
        assert self._handle is not None
        self._handle.flush()
        self._handle.truncate(size)
        self._handle.seek(size)

    def _close(self) -> None:
        assert self._handle is not None
        try:
            self._handle.close()
        finally:
            self._handle = None


@contextmanager
def open_writer(target: OutputTarget) -> Iterator[Writer]:
    """Open the writer matching `target` and close it on every exit path."""

    writer: Writer = BufferWriter() if isinstance(target, io.StringIO) else FileWriter()
    writer.open(target)
    try:
        yield writer
    finally:
        writer.close()
