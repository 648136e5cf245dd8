"""Run configuration: global tunables and the per-run option set."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Dict, Optional


# ============================================================================
# GLOBAL CONFIGURATION - Performance and behavior tuning
# ============================================================================

class Config:
    """
    Global configuration for squeeze-sync behavior.

    Settings are class attributes so they can be tuned at runtime (for
    example from tests) without threading them through every call.

    Attributes:
        CHUNK_SIZE (int): Bytes read per iteration when copying file content
        COMPRESS_THRESHOLD (int): Files of this size or smaller are never compressed
        DEFAULT_COMPRESSION (str): Container codec used when none is requested
        USE_COLORS (bool): Enable colored terminal output (auto-detected)
        ENABLE_PROGRESS (bool): Draw a progress bar while copying
        LOG_FILE_NAME (str): File name used when --log points to a directory

    Example:
        >>> Config.CHUNK_SIZE = 64 * 1024
        >>> Config.USE_COLORS = False
        >>> Config.reset_defaults()
    """
    # Copy settings
    CHUNK_SIZE: ClassVar[int] = 16384
    COMPRESS_THRESHOLD: ClassVar[int] = 256
    DEFAULT_COMPRESSION: ClassVar[str] = "zstd"

    # UI settings
    USE_COLORS: ClassVar[bool] = True
    ENABLE_PROGRESS: ClassVar[bool] = True
    LOG_FILE_NAME: ClassVar[str] = "sqsync.log"

    @classmethod
    def reset_defaults(cls) -> None:
        """Reset all configuration to default values."""
        defaults: Dict[str, object] = {
            "CHUNK_SIZE": 16384,
            "COMPRESS_THRESHOLD": 256,
            "DEFAULT_COMPRESSION": "zstd",
            "USE_COLORS": True,
            "ENABLE_PROGRESS": True,
            "LOG_FILE_NAME": "sqsync.log",
        }
        for name, value in defaults.items():
            setattr(cls, name, value)


# ============================================================================
# RUN OPTIONS - Resolved command-line configuration
# ============================================================================

@dataclass(frozen=True)
class SyncOptions:
    """
    Options for one sync run, as resolved by the command line front end.

    The path filter is deliberately not part of this value; it lives in a
    separate :class:`~squeeze_sync.filters.FilterSet` because the driver
    extends it while running.
    """
    source_root: str
    dest_root: str

    delete: bool = False            # -d
    dry_run: bool = False           # -t, --dry-run
    quiet: bool = False             # -q
    assume_yes: bool = False        # -y
    compress: bool = False          # -c
    skip_hash: bool = False         # --skip-hash
    skip_mode: bool = False         # --skip-mod

    compression: Optional[str] = None       # --compress-choice
    compress_level: Optional[int] = None    # --compress-level
    log_path: Optional[str] = None          # --log
    stats: bool = False                     # --stats

    @property
    def compare_hash(self) -> bool:
        return not self.skip_hash

    @property
    def compression_name(self) -> str:
        return self.compression or Config.DEFAULT_COMPRESSION
