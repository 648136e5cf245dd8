"""
Byte sources and sinks used by the copy loop.

Readers and writers are context managers; ``close()`` must run on every
exit path so compressed containers get their trailer written.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Optional

from .errors import FileIOError


# ============================================================================
# STREAMING DATA SOURCES - For copying files larger than available memory
# ============================================================================

class ByteSource(ABC):
    """
    Abstract base class for readable byte streams.

    Example:
        >>> with unit.open_reader() as source:
        ...     while chunk := source.read_chunk(16384):
        ...         process(chunk)
    """

    @abstractmethod
    def read_chunk(self, size: int) -> bytes:
        """
        Read a chunk of data from the source.

        Args:
            size: Maximum bytes to read

        Returns:
            Bytes read (may be less than size, empty at EOF)
        """
        raise NotImplementedError

    @abstractmethod
    def size(self) -> int:
        """Total (decompressed) size of the content in bytes."""
        raise NotImplementedError

    def close(self) -> None:
        """Close the source and release resources."""
        pass

    def __enter__(self) -> 'ByteSource':
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class ByteSink(ABC):
    """Abstract base class for writable byte streams."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Write data to the sink.

        Returns:
            Number of content bytes accepted
        """
        raise NotImplementedError

    def close(self) -> None:
        """Flush and close the sink."""
        pass

    def __enter__(self) -> 'ByteSink':
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class FileByteSource(ByteSource):
    """
    ByteSource that reads raw bytes from an already opened file.

    Args:
        fileobj: Binary file opened for reading
        size: Size of the file in bytes
        path: Path used in error messages
    """

    def __init__(self, fileobj: BinaryIO, size: int, path: str = "") -> None:
        self._file: Optional[BinaryIO] = fileobj
        self._size = size
        self.path = path

    @classmethod
    def open(cls, path: str) -> 'FileByteSource':
        try:
            fh = open(path, 'rb')
        except OSError as e:
            raise FileIOError(f"Cannot open file {path}: {e}")
        try:
            size = os.fstat(fh.fileno()).st_size
        except OSError as e:
            fh.close()
            raise FileIOError(f"Cannot access file {path}: {e}")
        return cls(fh, size, path)

    def read_chunk(self, size: int) -> bytes:
        if self._file is None:
            raise FileIOError(f"File {self.path} is closed")
        return self._file.read(size)

    def size(self) -> int:
        return self._size

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    @property
    def is_open(self) -> bool:
        return self._file is not None


class FileByteSink(ByteSink):
    """ByteSink that writes raw bytes to an already opened file."""

    def __init__(self, fileobj: BinaryIO, path: str = "") -> None:
        self._file: Optional[BinaryIO] = fileobj
        self.path = path

    @classmethod
    def open(cls, path: str) -> 'FileByteSink':
        try:
            return cls(open(path, 'wb'), path)
        except OSError as e:
            raise FileIOError(f"Cannot open file {path} for writing: {e}")

    def write(self, data: bytes) -> int:
        if self._file is None:
            raise FileIOError(f"File {self.path} is closed")
        self._file.write(data)
        return len(data)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
