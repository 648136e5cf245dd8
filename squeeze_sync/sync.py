"""
Two-phase directory synchronization.

Phase A walks the destination children-first and resolves entries that no
longer exist in the source (delete, or report a conflict). Phase B walks the
source parents-first and creates or updates whatever differs. Paths resolved
by either phase are recorded in a :class:`HandledPathIndex` so they are never
processed twice.

Per-path failures are reported through the injected :class:`SyncLogger` and
never abort the run.
"""

from __future__ import annotations

import os
import posixpath
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Set

from . import __version__
from .config import Config, SyncOptions
from .errors import (
    ConfigurationError,
    ConflictError,
    FileIOError,
    PermissionPropagationError,
    ShortCopyError,
    SyncError,
)
from .filters import FilterSet
from .log import LogLevel, SyncLogger
from .progress import NullProgress, ProgressReporter, format_size
from .unit import DiffFlag, Unit, UnitKind


# ============================================================================
# RUN STATE
# ============================================================================

class HandledPathIndex:
    """
    Relative paths already resolved in the current run.

    Stored as parent directory -> set of child basenames.

    Example:
        >>> index = HandledPathIndex()
        >>> index.add("a/b.txt")
        >>> "a/b.txt" in index
        True
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Set[str]] = {}

    def add(self, rel_path: str) -> None:
        parent, name = posixpath.split(rel_path)
        self._entries.setdefault(parent, set()).add(name)

    def __contains__(self, rel_path: object) -> bool:
        if not isinstance(rel_path, str):
            return False
        parent, name = posixpath.split(rel_path)
        return name in self._entries.get(parent, ())

    def __len__(self) -> int:
        return sum(len(names) for names in self._entries.values())


@dataclass
class SyncStats:
    """Counters collected during a run."""
    checked: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    permissions: int = 0
    conflicts: int = 0
    skipped: int = 0
    excluded: int = 0
    bytes_copied: int = 0
    errors: int = 0
    warnings: int = 0
    elapsed: float = 0.0

    @property
    def changes(self) -> int:
        """Number of mutating actions (or would-be actions in a dry run)."""
        return self.created + self.updated + self.deleted + self.permissions

    def rows(self) -> List[tuple]:
        return [
            ("Entries checked", f"{self.checked:,}"),
            ("Created", f"{self.created:,}"),
            ("Updated", f"{self.updated:,}"),
            ("Deleted", f"{self.deleted:,}"),
            ("Permissions fixed", f"{self.permissions:,}"),
            ("Conflicts", f"{self.conflicts:,}"),
            ("Excluded", f"{self.excluded:,}"),
            ("Data copied", format_size(self.bytes_copied)),
            ("Errors", f"{self.errors:,}"),
            ("Warnings", f"{self.warnings:,}"),
        ]

    def __repr__(self) -> str:
        return (
            f"SyncStats(created={self.created}, updated={self.updated}, "
            f"deleted={self.deleted}, permissions={self.permissions}, "
            f"conflicts={self.conflicts}, errors={self.errors})"
        )


def walk_tree(
    root: str,
    children_first: bool = False,
    on_error: Optional[Callable[[OSError], None]] = None,
) -> Iterator[str]:
    """
    Yield every entry below *root* as a ``/``-separated relative path.

    Entries are visited in name order. Symlinks are reported but never
    followed. With *children_first* a directory is yielded after all of its
    descendants (post-order), otherwise before them (pre-order).
    """
    def _walk(rel: str) -> Iterator[str]:
        abs_dir = os.path.join(root, rel) if rel else root
        try:
            with os.scandir(abs_dir) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            if on_error is not None:
                on_error(e)
            return

        for entry in entries:
            child = f"{rel}/{entry.name}" if rel else entry.name
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False

            if not children_first:
                yield child
            if is_dir:
                yield from _walk(child)
            if children_first:
                yield child

    yield from _walk("")


# ============================================================================
# SYNC DRIVER
# ============================================================================

class SyncDriver:
    """
    Orchestrate one synchronization run.

    Args:
        options: Resolved run options
        filters: Exclusion filters; extended while running when a
            destination directory cannot be created
        log: Message sink; per-path failures are reported here
        progress: Copy progress reporter (nothing is drawn by default)

    Example:
        >>> options = SyncOptions("/data/src", "/backup/dst", delete=True)
        >>> stats = SyncDriver(options, FilterSet(), SyncLogger()).run()
        >>> stats.errors
        0
    """

    def __init__(
        self,
        options: SyncOptions,
        filters: Optional[FilterSet] = None,
        log: Optional[SyncLogger] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> None:
        self.options = options
        self.filters = filters if filters is not None else FilterSet()
        self.log = log if log is not None else SyncLogger(quiet=options.quiet)
        self.progress: ProgressReporter = progress if progress is not None else NullProgress()
        self.handled = HandledPathIndex()
        self.stats = SyncStats()

    @property
    def source_root(self) -> str:
        return self.options.source_root

    @property
    def dest_root(self) -> str:
        return self.options.dest_root

    def validate_roots(self) -> None:
        """
        Check that both roots are usable directories.

        Raises:
            ConfigurationError: If a root is missing, unreadable, or the
                destination is not writable
        """
        for label, root in (("Source", self.source_root), ("Destination", self.dest_root)):
            if not root or not os.path.isdir(root):
                raise ConfigurationError(f"{label} must be a directory")
            if not os.access(root, os.R_OK | os.X_OK):
                raise ConfigurationError(f"{label} must be readable")
        if not self.options.dry_run and not os.access(self.dest_root, os.W_OK):
            raise ConfigurationError("Destination must be writable")

    def run(self) -> SyncStats:
        """
        Run both phases and return the collected statistics.

        Raises:
            ConfigurationError: If the roots are not usable
        """
        self.validate_roots()
        started = time.perf_counter()

        self.log.write("SQSync version %s", __version__)
        self.log.write("Sync started at %s", time.strftime("%Y-%m-%d %H:%M"))
        self.log.write("Sync from '%s' to '%s'", self.source_root, self.dest_root)
        if self.options.dry_run:
            self.log.write("Test run, no changes will be made")

        errors_before = self.log.errors
        warnings_before = self.log.warnings

        for rel_path in walk_tree(self.dest_root, children_first=True, on_error=self._walk_error):
            self._process(rel_path, delete_pass=True)

        for rel_path in walk_tree(self.source_root, children_first=False, on_error=self._walk_error):
            self._process(rel_path, delete_pass=False)

        self.stats.errors = self.log.errors - errors_before
        self.stats.warnings = self.log.warnings - warnings_before
        self.stats.elapsed = time.perf_counter() - started

        self.log.write(
            "Created %d, updated %d, deleted %d, permissions %d, conflicts %d, copied %s",
            self.stats.created, self.stats.updated, self.stats.deleted,
            self.stats.permissions, self.stats.conflicts, format_size(self.stats.bytes_copied),
        )
        self.log.write(
            "Sync finished at %s with %d errors and %d warnings",
            time.strftime("%Y-%m-%d %H:%M"), self.stats.errors, self.stats.warnings,
        )
        return self.stats

    def _walk_error(self, exc: OSError) -> None:
        self.log.error("Failed to list '%s': %s", exc.filename, exc.strerror)

    # ------------------------------------------------------------------
    # Per-path processing
    # ------------------------------------------------------------------

    def _process(self, rel_path: str, delete_pass: bool) -> None:
        if rel_path in self.handled:
            return
        if self.filters.is_excluded(rel_path):
            if not delete_pass:
                self.stats.excluded += 1
            return

        self.log.write("Checking '%s'", rel_path)
        self.stats.checked += 1

        try:
            src = Unit.probe(os.path.join(self.source_root, rel_path))
            dst = Unit.probe(os.path.join(self.dest_root, rel_path))

            if delete_pass and src.kind == UnitKind.VIRTUAL:
                self._resolve_missing_source(rel_path, dst)
                return

            diff = src.compare(dst, self.options.compare_hash)
            if diff == DiffFlag.NONE:
                return

            if diff == DiffFlag.MODE:
                self._sync_permissions(rel_path, src, dst)

            elif delete_pass:
                if diff & DiffFlag.TYPE and dst.kind != UnitKind.VIRTUAL and self.options.delete:
                    self._replace_wrong_kind(rel_path, dst)

            elif src.kind == UnitKind.VIRTUAL:
                self.stats.skipped += 1
                self.log.warning("'%s' vanished from the source.", rel_path)

            elif diff & DiffFlag.TYPE and dst.kind != UnitKind.VIRTUAL:
                self.handled.add(rel_path)
                self.stats.conflicts += 1
                self.log.write_exception(ConflictError(
                    f"Cannot sync '{rel_path}'. It already exists as a {dst.kind.name.lower()}."
                ))

            else:
                self._sync_content(rel_path, src, dst)

        except (OSError, SyncError) as e:
            self.handled.add(rel_path)
            self.log.error("Failed to access '%s': %s", rel_path, e)

    def _resolve_missing_source(self, rel_path: str, dst: Unit) -> None:
        self.handled.add(rel_path)

        if self.options.delete:
            self.log.write("Deleting '%s'.", rel_path)
            if self.options.dry_run or self._remove(dst):
                self.stats.deleted += 1
            else:
                self.log.error("Failed to remove '%s'.", rel_path)

        elif dst.kind != UnitKind.VIRTUAL:
            self.stats.conflicts += 1
            self.log.error("Cannot sync '%s'. It exists in the destination only.", rel_path)

        else:
            self.stats.skipped += 1
            self.log.write("Not deleting '%s'.", rel_path)

    def _replace_wrong_kind(self, rel_path: str, dst: Unit) -> None:
        self.log.write("Deleting '%s' to replace it.", rel_path)
        if self.options.dry_run:
            # Nothing was removed, so the sync pass would see a conflict
            self.handled.add(rel_path)
            self.stats.deleted += 1
            self.stats.created += 1
            self.log.write("Syncing '%s'", rel_path)
            return
        if self._remove(dst):
            self.stats.deleted += 1
        else:
            self.handled.add(rel_path)
            self.log.error("Failed to remove '%s'.", rel_path)

    def _remove(self, unit: Unit) -> bool:
        try:
            if unit.kind == UnitKind.DIRECTORY:
                os.rmdir(unit.path)
            else:
                os.unlink(unit.path)
        except OSError as e:
            self.log.write("%s", e, level=LogLevel.VERBOSE)
            return False
        return True

    def _sync_permissions(self, rel_path: str, src: Unit, dst: Unit) -> None:
        if self.options.skip_mode:
            return

        self.log.write("Setting permissions on '%s'", rel_path)
        self.handled.add(rel_path)
        self.stats.permissions += 1

        if not self.options.dry_run and not src.touch(dst):
            self.log.write_exception(PermissionPropagationError(
                f"Failed to change permissions on '{rel_path}'"
            ))

    def _sync_content(self, rel_path: str, src: Unit, dst: Unit) -> None:
        self.log.verbose("Syncing '%s'", rel_path)
        self.handled.add(rel_path)

        if self.options.dry_run:
            self._count_synced(dst)
            return

        if src.kind == UnitKind.LINK:
            ok = self._sync_link(rel_path, src, dst)
        elif src.kind == UnitKind.DIRECTORY:
            ok = self._sync_directory(rel_path, dst)
        else:
            ok = self._sync_file(rel_path, src, dst)

        if ok:
            self._count_synced(dst)
            created = Unit.probe(dst.path)
            if not src.touch(created):
                self.log.write_exception(PermissionPropagationError(
                    f"Failed to change permissions on '{rel_path}'"
                ))

    def _count_synced(self, dst: Unit) -> None:
        if dst.kind == UnitKind.VIRTUAL:
            self.stats.created += 1
        else:
            self.stats.updated += 1

    def _sync_link(self, rel_path: str, src: Unit, dst: Unit) -> bool:
        try:
            if dst.kind == UnitKind.LINK:
                os.unlink(dst.path)
            os.symlink(src.link_target, dst.path)
        except OSError as e:
            self.log.error("Failed to update link target on '%s'.", rel_path)
            self.log.write("%s", e)
            return False
        return True

    def _sync_directory(self, rel_path: str, dst: Unit) -> bool:
        try:
            os.mkdir(dst.path)
        except OSError as e:
            self.log.error("Failed to create directory '%s'.", rel_path)
            self.log.write("%s", e)
            # Nothing below it can be synced this run
            self.filters.exclude_subtree(rel_path)
            return False
        return True

    def _sync_file(self, rel_path: str, src: Unit, dst: Unit) -> bool:
        if not src.is_readable:
            self.log.write_exception(FileIOError(f"Cannot read '{rel_path}' in the source"))
            return False
        if not dst.is_writable:
            self.log.write_exception(FileIOError(f"Cannot write '{rel_path}' in the destination"))
            return False

        expected = src.size
        compress = self.options.compress and expected > Config.COMPRESS_THRESHOLD
        known_hash = src.content_hash if compress else None
        written = 0

        with src.open_reader() as reader:
            with dst.open_writer(
                compress,
                known_hash,
                compression=self.options.compression_name,
                level=self.options.compress_level,
            ) as writer:
                self.progress.start(expected, "Copying:")
                try:
                    while True:
                        chunk = reader.read_chunk(Config.CHUNK_SIZE)
                        if not chunk:
                            break
                        written += writer.write(chunk)
                        self.progress.update(written)
                finally:
                    self.progress.stop()

        self.stats.bytes_copied += written

        if written < expected:
            self.log.write_exception(ShortCopyError(
                f"Copied {written} of {expected} bytes of '{rel_path}'",
                expected=expected, written=written,
            ))
            return False
        return True
