"""Copy progress reporting and size/time formatting helpers."""

from __future__ import annotations

import sys
import time
from typing import Optional, Protocol, TextIO


def format_size(size: float) -> str:
    """
    Format byte size in human-readable format.

    Example:
        >>> format_size(1234567890)
        '1.15 GB'
    """
    for unit in ('B', 'KB', 'MB', 'GB', 'TB'):
        if abs(size) < 1024.0:
            return f"{size:.2f} {unit}" if unit != 'B' else f"{int(size)} {unit}"
        size = size / 1024.0
    return f"{size:.2f} PB"


def format_time(seconds: float) -> str:
    """
    Format time duration in human-readable format.

    Example:
        >>> format_time(0.00123)
        '1.23ms'
    """
    if seconds < 0.001:
        return f"{seconds * 1000000:.0f}µs"
    elif seconds < 1.0:
        return f"{seconds * 1000:.2f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    else:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"


class ProgressReporter(Protocol):
    """Receives ``start(total, label)``, repeated ``update(done)``, ``stop()``."""
    def start(self, total: int, label: str) -> None: ...
    def update(self, done: int) -> None: ...
    def stop(self) -> None: ...


class NullProgress:
    """Progress reporter that draws nothing."""

    def start(self, total: int, label: str) -> None:
        pass

    def update(self, done: int) -> None:
        pass

    def stop(self) -> None:
        pass


class CLIProgress:
    """
    Single-line progress bar redrawn in place with ``\\r``.

    Nothing is drawn when the stream is not a TTY.
    """

    def __init__(self, stream: Optional[TextIO] = None, width: int = 30) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.width = width
        self._total = 0
        self._label = ""
        self._started = 0.0
        self._active = False

    def _enabled(self) -> bool:
        return hasattr(self.stream, 'isatty') and self.stream.isatty()

    def start(self, total: int, label: str) -> None:
        self._total = max(0, total)
        self._label = label
        self._started = time.perf_counter()
        self._active = self._enabled()
        self.update(0)

    def update(self, done: int) -> None:
        if not self._active:
            return
        fraction = min(1.0, done / self._total) if self._total else 1.0
        filled = int(self.width * fraction)
        bar = "#" * filled + " " * (self.width - filled)
        self.stream.write(
            f"\r{self._label} [{bar}] {fraction:6.1%} "
            f"{format_size(done)}/{format_size(self._total)}"
        )
        self.stream.flush()

    def stop(self) -> None:
        if not self._active:
            return
        elapsed = time.perf_counter() - self._started
        self.stream.write(f" {format_time(elapsed)}\n")
        self.stream.flush()
        self._active = False
