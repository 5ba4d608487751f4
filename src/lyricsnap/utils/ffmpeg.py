"""
FFmpeg Helper Functions
Command builders and output parsing for the ffmpeg-backed encoder.
"""

import json
import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..errors import FFmpegNotFoundError
from ..types import FrameSequence, QualityPreset

logger = logging.getLogger(__name__)

_PROGRESS_FIELD = re.compile(r"(frame|fps|size|time|bitrate|speed)=\s*(\S+)")
_VERSION_LINE = re.compile(r"ffmpeg version (\S+)")


def find_ffmpeg(explicit: Optional[str] = None) -> str:
    """
    Locate the ffmpeg executable.

    Args:
        explicit: Path or command name configured by the caller

    Returns:
        Absolute path of the executable

    Raises:
        FFmpegNotFoundError: If ffmpeg is not installed
    """
    candidate = explicit or "ffmpeg"
    resolved = shutil.which(candidate)
    if resolved:
        return resolved

    raise FFmpegNotFoundError(
        f"FFmpeg not found ({candidate}). Please install FFmpeg:\n"
        "  Ubuntu/Debian: sudo apt-get install ffmpeg\n"
        "  macOS: brew install ffmpeg\n"
        "  Windows: Download from https://ffmpeg.org/download.html"
    )


def check_ffmpeg_installed(explicit: Optional[str] = None) -> bool:
    """True if ffmpeg can be located, without raising."""
    try:
        find_ffmpeg(explicit)
        return True
    except FFmpegNotFoundError:
        return False


def get_ffmpeg_version(explicit: Optional[str] = None) -> Optional[str]:
    """Version string reported by ``ffmpeg -version``, or None if unavailable."""
    try:
        ffmpeg = find_ffmpeg(explicit)
        result = subprocess.run(
            [ffmpeg, "-version"], capture_output=True, text=True, timeout=10
        )
    except (FFmpegNotFoundError, OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Could not query ffmpeg version: {e}")
        return None

    match = _VERSION_LINE.search(result.stdout)
    return match.group(1) if match else None


def build_batch_encode_command(
    ffmpeg: str,
    frames: FrameSequence,
    fps: float,
    quality: QualityPreset,
    output_path: Path,
) -> List[str]:
    """
    Encode one contiguous run of PNG frames into an H.264 segment.

    The frame count is pinned with ``-frames:v`` so a stray file past the
    batch end is never pulled into the segment.
    """
    return [
        ffmpeg,
        "-hide_banner",
        "-framerate", f"{fps:g}",
        "-start_number", str(frames.start),
        "-i", str(frames.input_pattern),
        "-frames:v", str(frames.count),
        "-fps_mode", "cfr",
        "-r", f"{fps:g}",
        "-c:v", "libx264",
        "-preset", quality.x264_preset,
        "-crf", str(quality.crf),
        "-pix_fmt", "yuv420p",
        "-movflags", "+faststart",
        "-y",
        str(output_path),
    ]


def build_concat_command(
    ffmpeg: str,
    concat_list: Path,
    output_path: Path,
    audio_path: Optional[Path] = None,
) -> List[str]:
    """
    Concatenate segments listed in ``concat_list`` without re-encoding video.

    With an audio track the video stream is copied and audio is encoded to
    AAC, stopping at the shorter of the two.
    """
    cmd = [
        ffmpeg,
        "-hide_banner",
        "-f", "concat",
        "-safe", "0",
        "-i", str(concat_list),
    ]

    if audio_path is not None:
        cmd.extend([
            "-i", str(audio_path),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", "128k",
            "-shortest",
        ])
    else:
        cmd.extend(["-c", "copy"])

    cmd.extend(["-movflags", "+faststart", "-y", str(output_path)])
    return cmd


def escape_concat_path(path: Path) -> str:
    """Quote a path for an ffmpeg concat demuxer ``file`` directive."""
    # Inside single quotes only the quote itself needs escaping: ' -> '\''
    return "'" + str(path).replace("'", "'\\''") + "'"


def write_concat_list(segments: Sequence[Path], list_path: Path) -> Path:
    """Write an ffmpeg concat list with one absolute segment path per line."""
    lines = [f"file {escape_concat_path(Path(s).resolve())}" for s in segments]
    list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_path


def parse_ffmpeg_progress(stderr: str) -> Dict[str, Any]:
    """
    Extract the last progress report from ffmpeg stderr.

    ffmpeg prints ``frame=  150 fps= 60 ... time=00:00:05.00 ...`` lines,
    overwritten with carriage returns. Only the final values are kept.

    Returns:
        Dictionary with any of ``frame`` (int), ``fps`` (float), ``size``,
        ``time``, ``bitrate`` and ``speed`` (str)
    """
    progress: Dict[str, Any] = {}
    for line in re.split(r"[\r\n]+", stderr):
        if "frame=" not in line:
            continue
        for key, value in _PROGRESS_FIELD.findall(line):
            if key == "frame":
                try:
                    progress["frame"] = int(value)
                except ValueError:
                    continue
            elif key == "fps":
                try:
                    progress["fps"] = float(value)
                except ValueError:
                    continue
            else:
                progress[key] = value
    return progress


def probe_video(video_path: Path, ffprobe: Optional[str] = None) -> Dict[str, Any]:
    """
    Summarize a video with ffprobe.

    Returns:
        Dictionary with ``width``, ``height``, ``frame_count``, ``duration``
        and ``has_audio``

    Raises:
        FFmpegNotFoundError: If ffprobe is not installed
        subprocess.CalledProcessError: If ffprobe fails
    """
    ffprobe_bin = shutil.which(ffprobe or "ffprobe")
    if not ffprobe_bin:
        raise FFmpegNotFoundError("ffprobe not found. Please install FFmpeg (includes ffprobe).")

    cmd = [
        ffprobe_bin,
        "-v", "quiet",
        "-print_format", "json",
        "-count_frames",
        "-show_format",
        "-show_streams",
        str(video_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=120)
    info = json.loads(result.stdout)

    summary: Dict[str, Any] = {
        "width": 0,
        "height": 0,
        "frame_count": 0,
        "duration": float(info.get("format", {}).get("duration", 0.0)),
        "has_audio": False,
    }
    for stream in info.get("streams", []):
        if stream.get("codec_type") == "video":
            summary["width"] = stream.get("width", 0)
            summary["height"] = stream.get("height", 0)
            summary["frame_count"] = int(stream.get("nb_read_frames", 0) or 0)
        elif stream.get("codec_type") == "audio":
            summary["has_audio"] = True
    return summary
