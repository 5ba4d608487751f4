"""Disk space checks for staging export frames.

Provides the pre-flight check run before a session is opened and usage
reporting for session directories.
"""
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Lossless PNG of rendered lyric frames (flat backgrounds, text) compresses
# to roughly a quarter of the raw RGBA size.
PNG_COMPRESSION_RATIO = 0.25
# Encoded H.264 segments relative to the PNG frames they replace.
SEGMENT_RATIO = 0.02


@dataclass
class DiskUsage:
    """Disk usage information."""
    total_bytes: int
    used_bytes: int
    free_bytes: int

    @property
    def free_gb(self) -> float:
        """Free space in GB."""
        return self.free_bytes / (1024 ** 3)

    @property
    def usage_percent(self) -> float:
        """Usage percentage."""
        if self.total_bytes == 0:
            return 0.0
        return (self.used_bytes / self.total_bytes) * 100


def get_disk_usage(path: Path) -> DiskUsage:
    """Disk usage of the filesystem containing ``path``.

    ``path`` need not exist yet; its closest existing parent is measured.
    """
    probe = Path(path)
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    usage = shutil.disk_usage(probe)
    return DiskUsage(
        total_bytes=usage.total,
        used_bytes=usage.used,
        free_bytes=usage.free,
    )


def get_directory_size(path: Path) -> int:
    """Calculate total size of a directory and its contents in bytes."""
    total_size = 0

    try:
        for entry in path.rglob("*"):
            if entry.is_file():
                try:
                    total_size += entry.stat().st_size
                except (OSError, PermissionError):
                    pass
    except (OSError, PermissionError) as e:
        logger.warning(f"Error calculating directory size: {e}")

    return total_size


def estimate_staging_bytes(
    total_frames: int,
    bytes_per_frame: int,
    release_after_encode: bool = True,
) -> int:
    """Peak bytes staged on disk by one export.

    Every frame is captured before encoding starts, so the full PNG set is
    resident at the start of encoding. Released frames let composition
    run with only the segments and the output on disk.
    """
    png_bytes = int(total_frames * bytes_per_frame * PNG_COMPRESSION_RATIO)
    segment_bytes = int(png_bytes * SEGMENT_RATIO)
    if release_after_encode:
        return max(png_bytes + segment_bytes, segment_bytes * 2)
    return png_bytes + segment_bytes * 2

