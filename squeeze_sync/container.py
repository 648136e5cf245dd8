"""
Compressed content container.

When ``-c`` is given, files are copied into a small self-describing
envelope instead of verbatim. The envelope carries the digest of the
uncompressed source, so a later run can read the hash (and the real size)
of the destination without decompressing it.

Layout (little endian)::

    +--------+---------+-------+------------+----------------+---------+---------+
    | magic  | version | codec | header len | metadata block | payload | trailer |
    | 4      | 1       | 1     | 2          | n              | ...     | 8       |
    +--------+---------+-------+------------+----------------+---------+---------+

    magic           b"SQZ\\x00"
    codec           1 = zlib, 3 = lz4 frame, 4 = zstd
    metadata block  optional; 0x06 followed by the raw content digest
    trailer         decompressed payload length (uint64)

The metadata block must be fixed before the first payload byte is written:
the format is append-only.

Reference:
    Codec ids follow the CPRES_* numbering used for rsync compression
    negotiation (zlib = 1, lz4 = 3, zstd = 4).
"""

from __future__ import annotations

import os
import struct
import zlib
from enum import Enum
from typing import Any, BinaryIO, Dict, Optional, Tuple, cast

import lz4.frame  # type: ignore[import]
import zstandard  # type: ignore[import]

from .config import Config
from .errors import ContainerError, FileIOError, NotAContainerError
from .streams import ByteSink, ByteSource

# Normalize untyped third-party imports to `Any` for strict type-checkers.
_lz4_frame: Any = cast(Any, lz4.frame)
_zstandard: Any = cast(Any, zstandard)

CONTAINER_MAGIC = b"SQZ\x00"
CONTAINER_VERSION = 1

HEADER_HASH_TAG = 0x06
MAX_HEADER_SIZE = 0xFFFF

_PREFIX = struct.Struct("<4sBBH")
_TRAILER = struct.Struct("<Q")


# ============================================================================
# COMPRESSION TYPES - Streaming codecs for the container payload
# ============================================================================

class CompressionType(Enum):
    """
    Supported payload codecs.

        ZLIB -> codec id 1 (CPRES_ZLIB)
        LZ4  -> codec id 3 (CPRES_LZ4, frame format)
        ZSTD -> codec id 4 (CPRES_ZSTD), the default
    """
    ZLIB = "zlib"
    LZ4 = "lz4"
    ZSTD = "zstd"


class _Lz4FrameEncoder:
    """Give LZ4FrameCompressor the compress/flush shape of zlib objects."""

    def __init__(self, level: int) -> None:
        self._ctx = _lz4_frame.LZ4FrameCompressor(compression_level=level)
        self._started = False

    def _begin(self) -> bytes:
        if self._started:
            return b""
        self._started = True
        return cast(bytes, self._ctx.begin())

    def compress(self, data: bytes) -> bytes:
        head = self._begin()
        return head + cast(bytes, self._ctx.compress(data))

    def flush(self) -> bytes:
        head = self._begin()
        return head + cast(bytes, self._ctx.flush())


class CompressionRegistry:
    """Registry of payload codecs available to the container."""

    _CODEC_IDS: Dict[CompressionType, int] = {
        CompressionType.ZLIB: 1,
        CompressionType.LZ4: 3,
        CompressionType.ZSTD: 4,
    }

    @classmethod
    def from_name(cls, name: str) -> CompressionType:
        """Resolve a codec name (``zstd``, ``lz4``, ``zlib``)."""
        try:
            return CompressionType(name.lower())
        except ValueError:
            raise ContainerError(f"Unsupported compression type: {name}")

    @classmethod
    def codec_id(cls, comp_type: CompressionType) -> int:
        return cls._CODEC_IDS[comp_type]

    @classmethod
    def from_codec_id(cls, codec_id: int) -> Optional[CompressionType]:
        for comp_type, value in cls._CODEC_IDS.items():
            if value == codec_id:
                return comp_type
        return None

    @classmethod
    def get_compression_level(cls, comp_type: CompressionType) -> int:
        """Get default compression level for algorithm."""
        levels = {
            CompressionType.ZLIB: 6,
            CompressionType.LZ4: 1,  # lz4 uses 0-16, 1 is fast
            CompressionType.ZSTD: 3,  # zstd uses 1-22, 3 is balanced
        }
        return levels[comp_type]

    @classmethod
    def encoder(cls, comp_type: CompressionType, level: Optional[int] = None) -> Any:
        """Create a streaming compressor exposing ``compress()`` and ``flush()``."""
        if level is None:
            level = cls.get_compression_level(comp_type)
        if comp_type == CompressionType.ZLIB:
            return zlib.compressobj(level)
        elif comp_type == CompressionType.LZ4:
            return _Lz4FrameEncoder(level)
        elif comp_type == CompressionType.ZSTD:
            return _zstandard.ZstdCompressor(level=level).compressobj()
        raise ContainerError(f"Unsupported compression type: {comp_type}")

    @classmethod
    def decoder(cls, comp_type: CompressionType) -> Any:
        """Create a streaming decompressor exposing ``decompress()``."""
        if comp_type == CompressionType.ZLIB:
            return zlib.decompressobj()
        elif comp_type == CompressionType.LZ4:
            return _lz4_frame.LZ4FrameDecompressor()
        elif comp_type == CompressionType.ZSTD:
            return _zstandard.ZstdDecompressor().decompressobj()
        raise ContainerError(f"Unsupported compression type: {comp_type}")


_DECODE_ERRORS: Tuple[type, ...] = (zlib.error, zstandard.ZstdError, RuntimeError)

_ZSTD_FRAME_MAGIC = b"\x28\xb5\x2f\xfd"
_LZ4_FRAME_MAGIC = b"\x04\x22\x4d\x18"


def _has_frame_signature(comp_type: CompressionType, head: bytes) -> bool:
    """Check that a payload starts the way *comp_type* frames always do."""
    if comp_type == CompressionType.ZSTD:
        return head[:4] == _ZSTD_FRAME_MAGIC
    if comp_type == CompressionType.LZ4:
        return head[:4] == _LZ4_FRAME_MAGIC
    if len(head) < 2:
        return False
    cmf, flg = head[0], head[1]
    return cmf & 0x0F == 8 and cmf >> 4 <= 7 and (cmf * 256 + flg) % 31 == 0


def encode_hash_header(digest: bytes) -> bytes:
    """Build the metadata block that embeds a content digest."""
    return bytes([HEADER_HASH_TAG]) + digest


def decode_hash_header(header: bytes) -> Optional[bytes]:
    """Return the digest stored in a metadata block, or None."""
    if header and header[0] == HEADER_HASH_TAG:
        return bytes(header[1:])
    return None


# ============================================================================
# CONTAINER READER
# ============================================================================

class ContainerReader(ByteSource):
    """
    Reads a container from an open binary file.

    The prefix, metadata block and trailer are parsed up front, and the
    first payload block is decoded to confirm the codec. The rest of the
    payload is only decompressed as :meth:`read_chunk` is called.

    Raises:
        NotAContainerError: If the stream does not hold a valid container.
            The file position is left undefined; callers falling back to raw
            reading must seek back to 0.

    Example:
        >>> with open("file.bin", "rb") as fh:
        ...     reader = ContainerReader(fh)
        ...     digest = decode_hash_header(reader.read_header())
        ...     size = reader.real_length()
    """

    def __init__(self, fileobj: BinaryIO, path: str = "") -> None:
        self.path = path
        raw = fileobj.read(_PREFIX.size)
        if len(raw) < _PREFIX.size:
            raise NotAContainerError(f"{path or 'stream'} is too short to be a container")

        magic, version, codec_id, header_len = _PREFIX.unpack(raw)
        if magic != CONTAINER_MAGIC:
            raise NotAContainerError(f"{path or 'stream'} is not a container")
        if version != CONTAINER_VERSION:
            raise NotAContainerError(f"Unsupported container version {version}")

        comp_type = CompressionRegistry.from_codec_id(codec_id)
        if comp_type is None:
            raise NotAContainerError(f"Unknown container codec {codec_id}")

        header = fileobj.read(header_len)
        if len(header) != header_len:
            raise NotAContainerError("Truncated container header")

        payload_start = fileobj.tell()
        end = fileobj.seek(0, os.SEEK_END)
        if end - payload_start < _TRAILER.size:
            raise NotAContainerError("Container has no trailer")

        payload_len = end - _TRAILER.size - payload_start
        fileobj.seek(end - _TRAILER.size)
        (real_length,) = _TRAILER.unpack(fileobj.read(_TRAILER.size))

        fileobj.seek(payload_start)
        if not _has_frame_signature(comp_type, fileobj.read(min(4, payload_len))):
            raise NotAContainerError(f"{path or 'stream'} has no {comp_type.value} payload")
        fileobj.seek(payload_start)

        self._file: Optional[BinaryIO] = fileobj
        self._header = header
        self._real_length = real_length
        self._comp_type = comp_type
        self._decoder = CompressionRegistry.decoder(comp_type)
        self._remaining = payload_len
        self._buffer = bytearray()
        self._eof = False

        # The first block must decode before the file is treated as a container
        try:
            self._fill(1)
        except ContainerError as e:
            raise NotAContainerError(str(e))
    @classmethod
    def open(cls, path: str) -> 'ContainerReader':
        """Open *path* as a container, closing the file if it is not one."""
        try:
            fh = open(path, 'rb')
        except OSError as e:
            raise FileIOError(f"Cannot open file {path}: {e}")
        try:
            return cls(fh, path)
        except BaseException:
            fh.close()
            raise

    @property
    def compression(self) -> CompressionType:
        return self._comp_type

    def read_header(self) -> bytes:
        """Raw metadata block (empty if absent); the payload is not touched."""
        return self._header

    def real_length(self) -> int:
        """Decompressed payload size, read from the trailer."""
        return self._real_length

    def size(self) -> int:
        return self._real_length

    def _fill(self, size: int) -> None:
        assert self._file is not None
        while len(self._buffer) < size and not self._eof:
            raw = self._file.read(min(Config.CHUNK_SIZE, self._remaining)) if self._remaining > 0 else b""
            try:
                if not raw:
                    self._eof = True
                    flush = getattr(self._decoder, "flush", None)
                    if flush is not None:
                        self._buffer += flush()
                    break
                self._remaining -= len(raw)
                self._buffer += self._decoder.decompress(raw)
            except _DECODE_ERRORS as e:
                raise ContainerError(f"Corrupt container payload in {self.path or 'stream'}: {e}")

    def read_chunk(self, size: int) -> bytes:
        if self._file is None:
            raise ContainerError("Container reader is closed")
        self._fill(size)
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        return chunk

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def read_container_info(path: str) -> Optional[Tuple[bytes, int]]:
    """
    Return ``(metadata block, real length)`` for a container file.

    Returns None if *path* is not a container.
    """
    try:
        with ContainerReader.open(path) as reader:
            return reader.read_header(), reader.real_length()
    except NotAContainerError:
        return None


# ============================================================================
# CONTAINER WRITER
# ============================================================================

class ContainerWriter(ByteSink):
    """
    Writes a container to an open binary file.

    The metadata block must be set with :meth:`alloc_header` /
    :meth:`write_header` before the first :meth:`write`; afterwards the
    header is frozen. :meth:`close` flushes the compressor, appends the
    trailer and closes the file.

    Example:
        >>> with open("out.sqz", "wb") as fh:
        ...     writer = ContainerWriter(fh, CompressionType.ZSTD)
        ...     block = encode_hash_header(digest)
        ...     writer.alloc_header(len(block))
        ...     writer.write_header(block)
        ...     writer.write(b"payload")
        ...     writer.close()
    """

    def __init__(
        self,
        fileobj: BinaryIO,
        compression: CompressionType = CompressionType.ZSTD,
        level: Optional[int] = None,
        path: str = "",
    ) -> None:
        self.path = path
        self._file: Optional[BinaryIO] = fileobj
        self._comp_type = compression
        self._encoder = CompressionRegistry.encoder(compression, level)
        self._header = b""
        self._header_capacity: Optional[int] = None
        self._committed = False
        self._written = 0

    @classmethod
    def open(
        cls,
        path: str,
        compression: CompressionType = CompressionType.ZSTD,
        level: Optional[int] = None,
    ) -> 'ContainerWriter':
        try:
            fh = open(path, 'wb')
        except OSError as e:
            raise FileIOError(f"Cannot open file {path} for writing: {e}")
        try:
            return cls(fh, compression, level, path)
        except BaseException:
            fh.close()
            raise

    @property
    def bytes_written(self) -> int:
        """Uncompressed bytes accepted so far."""
        return self._written

    def _check_header_open(self) -> None:
        if self._committed:
            raise ContainerError("The container header cannot be changed after payload bytes are written")

    def alloc_header(self, size: int) -> None:
        """Reserve room for a metadata block of *size* bytes."""
        self._check_header_open()
        if size < 0 or size > MAX_HEADER_SIZE:
            raise ContainerError(f"Invalid container header size {size}")
        self._header_capacity = size

    def write_header(self, data: bytes) -> None:
        """Set the metadata block; it must fit the allocated size."""
        self._check_header_open()
        capacity = self._header_capacity if self._header_capacity is not None else len(data)
        if len(data) > capacity or len(data) > MAX_HEADER_SIZE:
            raise ContainerError(
                f"Container header of {len(data)} bytes exceeds the allocated {capacity} bytes"
            )
        self._header = bytes(data)

    def _commit(self) -> None:
        if self._committed:
            return
        assert self._file is not None
        codec_id = CompressionRegistry.codec_id(self._comp_type)
        self._file.write(_PREFIX.pack(CONTAINER_MAGIC, CONTAINER_VERSION, codec_id, len(self._header)))
        self._file.write(self._header)
        self._committed = True

    def write(self, data: bytes) -> int:
        if self._file is None:
            raise ContainerError("Container writer is closed")
        self._commit()
        out = self._encoder.compress(data)
        if out:
            self._file.write(out)
        self._written += len(data)
        return len(data)

    def close(self) -> None:
        if self._file is None:
            return
        fh = self._file
        try:
            self._commit()
            tail = self._encoder.flush()
            if tail:
                fh.write(tail)
            fh.write(_TRAILER.pack(self._written))
        finally:
            self._file = None
            fh.close()
