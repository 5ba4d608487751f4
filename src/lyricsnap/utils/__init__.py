"""
lyricsnap Utilities Package
Helpers for subprocesses, ffmpeg, disk space and logging.
"""

from .async_io import AsyncSubprocess, ProcessResult, SubprocessTimeout, run_blocking

from .disk import (
    get_disk_usage,
    get_directory_size,
    estimate_staging_bytes,
    DiskUsage,
)

from .ffmpeg import (
    find_ffmpeg,
    check_ffmpeg_installed,
    get_ffmpeg_version,
    build_batch_encode_command,
    build_concat_command,
    parse_ffmpeg_progress,
    probe_video,
)

__all__ = [
    'AsyncSubprocess',
    'ProcessResult',
    'SubprocessTimeout',
    'run_blocking',
    'get_disk_usage',
    'get_directory_size',
    'estimate_staging_bytes',
    'DiskUsage',
    'find_ffmpeg',
    'check_ffmpeg_installed',
    'get_ffmpeg_version',
    'build_batch_encode_command',
    'build_concat_command',
    'parse_ffmpeg_progress',
    'probe_video',
]
