"""
Exception hierarchy for squeeze-sync.

Per-path failures (``FileIOError``, ``ConflictError``, ``ShortCopyError``,
``PermissionPropagationError``) are reported and the run continues.
Configuration failures (``InvalidPatternError``, ``ConfigurationError``)
and ``FatalError`` end the run.
"""

from __future__ import annotations


class SyncError(Exception):
    """
    Base exception for all squeeze-sync errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code

    Example:
        >>> raise SyncError("Operation failed", code=1)
    """
    def __init__(self, message: str, code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return self.message


class ConfigurationError(SyncError):
    """Raised when the run cannot start (bad roots, unusable log path)."""
    def __init__(self, message: str) -> None:
        super().__init__(message, code=1)


class FatalError(SyncError):
    """
    Raised after a fatal message has been logged.

    Only the command line front end turns this into an exit status.
    """
    def __init__(self, message: str) -> None:
        super().__init__(message, code=1)


class InvalidPatternError(SyncError):
    """Raised when a filter pattern does not compile to a valid regex."""
    def __init__(self, message: str) -> None:
        super().__init__(message, code=2)


class FilterFileError(InvalidPatternError):
    """Raised when a filter file is missing or unreadable."""


class FileIOError(SyncError):
    """
    Raised for file I/O errors.

    This wraps OS-level errors (stat, open, read, write) with the path
    being processed.
    """
    def __init__(self, message: str) -> None:
        super().__init__(message, code=6)


class ConflictError(SyncError):
    """Raised when the destination holds an entry that cannot be replaced."""
    def __init__(self, message: str) -> None:
        super().__init__(message, code=7)


class ShortCopyError(SyncError):
    """Raised when fewer bytes were written than the source reported."""
    def __init__(self, message: str, expected: int = 0, written: int = 0) -> None:
        super().__init__(message, code=8)
        self.expected = expected
        self.written = written


class PermissionPropagationError(SyncError):
    """Raised when ownership, mode or times could not be copied."""
    def __init__(self, message: str) -> None:
        super().__init__(message, code=9)


class ContainerError(SyncError):
    """Raised for misuse or corruption of a compressed container."""
    def __init__(self, message: str) -> None:
        super().__init__(message, code=10)


class NotAContainerError(ContainerError):
    """Raised when a byte stream does not start with a valid container prefix."""
