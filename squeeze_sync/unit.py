"""
Filesystem entry metadata model.

A :class:`Unit` is a snapshot of one path: its kind (file, directory,
symlink, or absent), its size and content hash (both computed lazily), its
link target, and live permission checks. Units are cheap to create and are
probed fresh for every comparison, never reused across mutations.

Content hashes are 128-bit xxHash3 digests of the *decompressed* content.
When a file is a compressed container carrying an embedded digest, that
digest is used instead of rehashing.
"""

from __future__ import annotations

import logging
import os
import stat
from enum import IntEnum, IntFlag
from typing import Optional, Union

import xxhash

from .config import Config
from .container import (
    CompressionRegistry,
    CompressionType,
    ContainerReader,
    ContainerWriter,
    decode_hash_header,
    encode_hash_header,
    read_container_info,
)
from .errors import FileIOError, NotAContainerError
from .streams import ByteSink, ByteSource, FileByteSink, FileByteSource

logger = logging.getLogger(__name__)

HASH_SIZE = 16


class UnitKind(IntEnum):
    """Kind of a filesystem entry."""
    VIRTUAL = -1    # does not exist on disk (or is a special file)
    LINK = 0
    DIRECTORY = 1
    FILE = 2


class DiffFlag(IntFlag):
    """Dimensions in which two units differ. Zero means no action needed."""
    NONE = 0
    TYPE = 0b000001
    TARGET = 0b000010
    HASH = 0b000100
    MODE = 0b001000
    MTIME = 0b010000
    SIZE = 0b100000


def current_uid() -> int:
    """Effective user id, or 0 where the platform has none."""
    return os.getuid() if hasattr(os, "getuid") else 0


def hash_source(source: ByteSource) -> bytes:
    """Digest everything remaining in *source*."""
    hasher = xxhash.xxh3_128()
    while True:
        chunk = source.read_chunk(Config.CHUNK_SIZE)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.digest()


def _chown(path: str, uid: int, gid: int, follow_symlinks: bool = True) -> None:
    if hasattr(os, "chown"):
        os.chown(path, uid, gid, follow_symlinks=follow_symlinks)


class Unit:
    """
    Snapshot of one filesystem path.

    Args:
        path: Absolute path of the entry

    Raises:
        FileIOError: If the path exists but cannot be examined

    Example:
        >>> src = Unit.probe("/data/src/a.txt")
        >>> dst = Unit.probe("/backup/dst/a.txt")
        >>> diff = src.compare(dst, compare_hash=True)
        >>> if diff == DiffFlag.MODE:
        ...     src.touch(dst)
    """

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self.path = os.fspath(path)
        self.kind = self._classify()
        self._size: Optional[int] = None
        self._hash: Optional[bytes] = None
        self._link_target: Optional[str] = None
        self._container_checked = False
        self._embedded_hash = False

    @classmethod
    def probe(cls, path: Union[str, "os.PathLike[str]"]) -> "Unit":
        return cls(path)

    def __repr__(self) -> str:
        return f"Unit({self.path!r}, kind={self.kind.name})"

    def _classify(self) -> UnitKind:
        try:
            st = os.lstat(self.path)
        except (FileNotFoundError, NotADirectoryError):
            return UnitKind.VIRTUAL
        except OSError as e:
            raise FileIOError(f"Failed to access '{self.path}': {e}")

        if stat.S_ISLNK(st.st_mode):
            return UnitKind.LINK
        if stat.S_ISDIR(st.st_mode):
            return UnitKind.DIRECTORY
        if stat.S_ISREG(st.st_mode):
            return UnitKind.FILE
        return UnitKind.VIRTUAL

    # ------------------------------------------------------------------
    # Lazy content metadata
    # ------------------------------------------------------------------

    def _load_container_info(self) -> None:
        if self._container_checked:
            return
        self._container_checked = True
        try:
            info = read_container_info(self.path)
            if info is None:
                self._size = os.stat(self.path).st_size
                return
        except OSError as e:
            raise FileIOError(f"Failed to read '{self.path}': {e}")

        header, real_length = info
        self._size = real_length
        digest = decode_hash_header(header)
        if digest is not None and len(digest) == HASH_SIZE:
            self._hash = digest
            self._embedded_hash = True

    @property
    def size(self) -> int:
        """Content length (decompressed for containers); OS size for dirs/links."""
        if self._size is None:
            if self.kind == UnitKind.FILE:
                self._load_container_info()
            elif self.kind == UnitKind.VIRTUAL:
                self._size = 0
            else:
                try:
                    self._size = os.lstat(self.path).st_size
                except OSError:
                    self._size = 0
        assert self._size is not None
        return self._size

    @property
    def content_hash(self) -> Optional[bytes]:
        """128-bit digest of the content, or None for non-files."""
        if self.kind != UnitKind.FILE:
            return None
        if self._hash is None:
            self._load_container_info()
        if self._hash is None:
            with self.open_reader() as reader:
                self._hash = hash_source(reader)
        return self._hash

    @property
    def has_embedded_hash(self) -> bool:
        """True if the hash was read from a container header."""
        if self.kind == UnitKind.FILE:
            self._load_container_info()
        return self._embedded_hash

    @property
    def link_target(self) -> Optional[str]:
        if self.kind != UnitKind.LINK:
            return None
        if self._link_target is None:
            try:
                self._link_target = os.readlink(self.path)
            except OSError as e:
                raise FileIOError(f"Failed to read link '{self.path}': {e}")
        return self._link_target

    # ------------------------------------------------------------------
    # Live permission checks
    # ------------------------------------------------------------------

    @property
    def is_readable(self) -> bool:
        if os.path.exists(self.path) and not os.path.islink(self.path):
            return os.access(self.path, os.R_OK)
        return True

    @property
    def is_writable(self) -> bool:
        if (not os.path.islink(self.path) and os.path.exists(self.path)
                and not os.access(self.path, os.W_OK)):
            return False

        # Entries cannot be created or removed in a read-only parent
        parent = os.path.dirname(self.path)
        if os.path.isdir(parent):
            return os.access(parent, os.W_OK)
        return True

    @property
    def is_owned_by_current_user(self) -> bool:
        if hasattr(os, "getuid") and os.path.exists(self.path) and not os.path.islink(self.path):
            uid = os.getuid()
            if uid != 0 and uid != os.stat(self.path).st_uid:
                return False
        return True

    def _stat(self) -> Optional[os.stat_result]:
        if self.kind == UnitKind.VIRTUAL:
            return None
        try:
            if self.kind == UnitKind.LINK:
                return os.lstat(self.path)
            return os.stat(self.path)
        except OSError:
            return None

    # ------------------------------------------------------------------
    # Readers / writers
    # ------------------------------------------------------------------

    def open_reader(self) -> ByteSource:
        """
        Open the content for reading.

        Returns:
            A decompressing :class:`ContainerReader` if the file is a
            container, otherwise a raw :class:`FileByteSource`
        """
        try:
            fh = open(self.path, 'rb')
        except OSError as e:
            raise FileIOError(f"Cannot open file {self.path}: {e}")

        try:
            return ContainerReader(fh, self.path)
        except NotAContainerError:
            fh.close()
        except BaseException:
            fh.close()
            raise

        return FileByteSource.open(self.path)

    def open_writer(
        self,
        compress: bool = False,
        known_hash: Optional[bytes] = None,
        compression: Union[str, CompressionType, None] = None,
        level: Optional[int] = None,
    ) -> ByteSink:
        """
        Open (truncating) the path for writing.

        Args:
            compress: Write a compressed container instead of raw bytes
            known_hash: Digest of the content about to be written; embedded
                in the container header so later runs can skip rehashing
            compression: Container codec (default ``Config.DEFAULT_COMPRESSION``)
            level: Codec compression level
        """
        comp_type: Optional[CompressionType] = None
        if compress:
            if isinstance(compression, CompressionType):
                comp_type = compression
            else:
                comp_type = CompressionRegistry.from_name(compression or Config.DEFAULT_COMPRESSION)

        if comp_type is None:
            return FileByteSink.open(self.path)

        writer = ContainerWriter.open(self.path, comp_type, level)
        if known_hash is not None:
            block = encode_hash_header(known_hash)
            try:
                writer.alloc_header(len(block))
                writer.write_header(block)
            except BaseException:
                writer.close()
                raise
        return writer

    # ------------------------------------------------------------------
    # Comparison / permission sync
    # ------------------------------------------------------------------

    def compare(self, other: "Unit", compare_hash: bool = False) -> DiffFlag:
        """
        Compare this unit with *other*.

        Args:
            other: Unit to compare against
            compare_hash: Compare content digests; when False, file
                modification times are compared instead

        Returns:
            Union of the :class:`DiffFlag` dimensions that differ
        """
        flags = DiffFlag.NONE

        if self.kind != other.kind:
            flags |= DiffFlag.TYPE
        elif self.kind == UnitKind.LINK:
            if self.link_target != other.link_target:
                flags |= DiffFlag.TARGET
        elif self.kind == UnitKind.FILE:
            if self.size != other.size:
                flags |= DiffFlag.SIZE
            if compare_hash and self.content_hash != other.content_hash:
                flags |= DiffFlag.HASH

        st1 = self._stat()
        st2 = other._stat()

        if st1 is not None and st2 is not None:
            # A non-privileged copy always lands owned by the invoking user,
            # so owner differences only count when running as root.
            uid = current_uid()
            if (st1.st_mode != st2.st_mode
                    or (uid == 0 and st1.st_uid != st2.st_uid)
                    or st1.st_gid != st2.st_gid):
                flags |= DiffFlag.MODE

            if (not compare_hash
                    and self.kind == UnitKind.FILE
                    and other.kind == UnitKind.FILE
                    and int(st1.st_mtime) != int(st2.st_mtime)):
                flags |= DiffFlag.MTIME

        elif st1 is not None or st2 is not None:
            flags |= DiffFlag.MODE

        return flags

    def touch(self, target: "Unit") -> bool:
        """
        Copy ownership, group, times and mode from this unit onto *target*.

        Steps run in order and stop at the first OS error; earlier steps are
        not rolled back.

        Returns:
            True if every step succeeded
        """
        if self.kind == UnitKind.VIRTUAL or self.kind != target.kind:
            return False

        try:
            if self.kind == UnitKind.LINK:
                st = os.lstat(self.path)
            else:
                st = os.stat(self.path)

            uid = current_uid()
            owner = st.st_uid if uid == 0 else uid

            if target.kind == UnitKind.LINK:
                _chown(target.path, owner, -1, follow_symlinks=False)
                _chown(target.path, -1, st.st_gid, follow_symlinks=False)
            else:
                _chown(target.path, owner, -1)
                _chown(target.path, -1, st.st_gid)
                os.utime(target.path, ns=(st.st_atime_ns, st.st_mtime_ns))
                os.chmod(target.path, stat.S_IMODE(st.st_mode) & (0o7777 if uid == 0 else 0o777))

        except OSError as e:
            logger.debug("touch %s -> %s failed: %s", self.path, target.path, e)
            return False

        return True
