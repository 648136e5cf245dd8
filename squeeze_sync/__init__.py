# -*- coding: utf-8 -*-
"""
squeeze-sync: one-way directory mirroring with hash-caching compression
=======================================================================

Mirrors a source directory tree onto a destination tree. Entries are
created, updated and (optionally) deleted, and permissions, ownership and
timestamps are copied so the destination converges to the source.

Quick Start:
-----------
    >>> from squeeze_sync import SyncOptions, FilterSet, SyncDriver, SyncLogger
    >>>
    >>> options = SyncOptions("/data/src", "/backup/dst", delete=True, compress=True)
    >>> filters = FilterSet(["**/node_modules/**", "rx:\\.tmp$"])
    >>> stats = SyncDriver(options, filters, SyncLogger()).run()
    >>> print(stats)

Compressed copies are written as containers that embed the xxHash3-128
digest of the source content, so the next run can compare hashes without
decompressing the destination file.

CLI Usage:
---------
    $ sqsync -dy --log /var/log /data/src /backup/dst
    $ sqsync --filter exclude.txt --skip-hash -c /data/src /backup/dst
    $ python -m squeeze_sync --help
"""

from __future__ import annotations

__version__ = "1.0.0"
__license__ = "GPL-3.0-or-later"

__all__ = [
    # Engine
    'SyncDriver',
    'SyncStats',
    'HandledPathIndex',

    # Metadata model
    'Unit',
    'UnitKind',
    'DiffFlag',

    # Container codec
    'ContainerReader',
    'ContainerWriter',
    'CompressionType',

    # Filters
    'FilterSet',
    'compile_pattern',

    # Configuration / logging
    'Config',
    'SyncOptions',
    'SyncLogger',
    'LogLevel',

    # Exceptions
    'SyncError',
    'FileIOError',
    'InvalidPatternError',
    'FilterFileError',
    'ConflictError',
    'ShortCopyError',
    'PermissionPropagationError',
    'ContainerError',
    'NotAContainerError',
    'ConfigurationError',
    'FatalError',
]

from .config import Config, SyncOptions
from .errors import (
    SyncError,
    FileIOError,
    InvalidPatternError,
    FilterFileError,
    ConflictError,
    ShortCopyError,
    PermissionPropagationError,
    ContainerError,
    NotAContainerError,
    ConfigurationError,
    FatalError,
)
from .filters import FilterSet, compile_pattern
from .container import CompressionType, ContainerReader, ContainerWriter
from .unit import DiffFlag, Unit, UnitKind
from .log import LogLevel, SyncLogger
from .sync import HandledPathIndex, SyncDriver, SyncStats
