"""
Leveled run logger.

``SyncLogger`` is handed to the sync driver explicitly. It routes messages
through a named :mod:`logging` logger:

    verbose  -> stdout (suppressed when quiet)
    warning  -> stderr, prefixed ``\\tW: ``
    error    -> stderr, prefixed ``\\tE: ``
    fatal    -> stderr, then :class:`~squeeze_sync.errors.FatalError` is raised

Every level is also written to the optional log file, with timestamps.
Warnings and errors are counted so the run can report them at the end.
"""

from __future__ import annotations

import logging
import os
import sys
import traceback
from enum import IntEnum
from typing import Any, Optional, TextIO

from .config import Config
from .errors import ConfigurationError, FatalError


# ============================================================================
# TERMINAL COLORS - For CLI output (auto-detects TTY)
# ============================================================================

class Colors:
    """
    ANSI color helpers for terminal output.

    Automatically disabled on non-TTY terminals (pipes, redirects) or when
    Config.USE_COLORS = False.

    Example:
        >>> print(Colors.success("Sync complete"))
        [OK] Sync complete
    """
    _RESET = '\033[0m'
    _BOLD = '\033[1m'
    _RED = '\033[91m'
    _GREEN = '\033[92m'
    _YELLOW = '\033[93m'

    @classmethod
    def _is_enabled(cls) -> bool:
        """Check if colors should be enabled."""
        if not Config.USE_COLORS:
            return False
        return hasattr(sys.stdout, 'isatty') and sys.stdout.isatty()

    @classmethod
    def success(cls, text: str) -> str:
        """Format text as success (green with checkmark)."""
        if cls._is_enabled():
            return f"{cls._GREEN}✓{cls._RESET} {text}"
        return f"[OK] {text}"

    @classmethod
    def error(cls, text: str) -> str:
        """Format text as error (red with X)."""
        if cls._is_enabled():
            return f"{cls._RED}✗{cls._RESET} {text}"
        return f"[ERROR] {text}"

    @classmethod
    def warning(cls, text: str) -> str:
        """Format text as warning (yellow with !)."""
        if cls._is_enabled():
            return f"{cls._YELLOW}⚠{cls._RESET} {text}"
        return f"[WARN] {text}"

    @classmethod
    def bold(cls, text: str) -> str:
        if cls._is_enabled():
            return f"{cls._BOLD}{text}{cls._RESET}"
        return text


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

class LogLevel(IntEnum):
    """Message levels understood by :meth:`SyncLogger.write`."""
    VERBOSE = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    FATAL = logging.CRITICAL


FILE_LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class _PrefixFormatter(logging.Formatter):
    """Prefix warnings with ``\\tW: `` and errors with ``\\tE: ``."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if record.levelno >= logging.ERROR:
            return f"\tE: {text}"
        if record.levelno >= logging.WARNING:
            return f"\tW: {text}"
        return text


class SyncLogger:
    """
    Leveled message sink with warning/error counters.

    Args:
        name: Name of the underlying :mod:`logging` logger
        quiet: Suppress verbose messages on stdout
        log_path: Optional log file (a directory gets ``sqsync.log`` appended)
        stdout: Stream for verbose messages (default ``sys.stdout``)
        stderr: Stream for warnings and errors (default ``sys.stderr``)

    Example:
        >>> log = SyncLogger(quiet=True)
        >>> log.write("Failed to copy '%s'.", "a.txt", level=LogLevel.ERROR)
        >>> log.errors
        1
    """

    def __init__(
        self,
        name: str = "squeeze-sync",
        quiet: bool = False,
        log_path: Optional[str] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.quiet = quiet
        self._warnings = 0
        self._errors = 0
        self._file_handler: Optional[logging.Handler] = None

        self._logger = logging.getLogger(name)
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        self.close()

        out_handler = logging.StreamHandler(stdout if stdout is not None else sys.stdout)
        out_handler.setLevel(logging.INFO)
        out_handler.addFilter(lambda record: record.levelno < logging.WARNING and not self.quiet)
        out_handler.setFormatter(_PrefixFormatter('%(message)s'))

        err_handler = logging.StreamHandler(stderr if stderr is not None else sys.stderr)
        err_handler.setLevel(logging.WARNING)
        err_handler.setFormatter(_PrefixFormatter('%(message)s'))

        self._logger.addHandler(out_handler)
        self._logger.addHandler(err_handler)

        if log_path is not None:
            self.set_log_path(log_path)

    @property
    def warnings(self) -> int:
        return self._warnings

    @property
    def errors(self) -> int:
        return self._errors

    def set_quiet(self, flag: bool) -> None:
        self.quiet = flag

    def set_log_path(self, path: str) -> str:
        """
        Start writing every message to *path*.

        Returns:
            The resolved log file path

        Raises:
            ConfigurationError: If the file cannot be opened for writing
        """
        if os.path.isdir(path):
            path = os.path.join(path, Config.LOG_FILE_NAME)

        try:
            handler = logging.FileHandler(path, mode="w", encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"The log path '{path}' must be writable: {e}")

        handler.setLevel(logging.INFO)
        handler.setFormatter(_PrefixFormatter(FILE_LOG_FORMAT))

        if self._file_handler is not None:
            self._logger.removeHandler(self._file_handler)
            self._file_handler.close()
        self._file_handler = handler
        self._logger.addHandler(handler)
        return path

    def write(self, msg: str, *args: Any, level: LogLevel = LogLevel.VERBOSE) -> None:
        """
        Log *msg* (``%``-formatted with *args*) at *level*.

        Raises:
            FatalError: After logging, when *level* is ``FATAL``
        """
        if level >= LogLevel.ERROR:
            self._errors += 1
        elif level >= LogLevel.WARNING:
            self._warnings += 1

        self._logger.log(int(level), msg, *args)

        if level == LogLevel.FATAL:
            raise FatalError(msg % args if args else msg)

    def verbose(self, msg: str, *args: Any) -> None:
        self.write(msg, *args, level=LogLevel.VERBOSE)

    def warning(self, msg: str, *args: Any) -> None:
        self.write(msg, *args, level=LogLevel.WARNING)

    def error(self, msg: str, *args: Any) -> None:
        self.write(msg, *args, level=LogLevel.ERROR)

    def fatal(self, msg: str, *args: Any) -> None:
        self.write(msg, *args, level=LogLevel.FATAL)

    def write_exception(self, exc: BaseException, level: LogLevel = LogLevel.ERROR) -> None:
        """Report an exception with the location it was raised from."""
        frames = traceback.extract_tb(exc.__traceback__)
        if frames:
            where = f"{frames[-1].filename}:{frames[-1].lineno}"
            self.write("%s\n\t%s", exc, where, level=level)
        else:
            self.write("%s", exc, level=level)

    def reset_counters(self) -> None:
        self._warnings = 0
        self._errors = 0

    def close(self) -> None:
        """Detach and close every handler of the underlying logger."""
        for handler in list(self._logger.handlers):
            self._logger.removeHandler(handler)
            handler.close()
        self._file_handler = None
