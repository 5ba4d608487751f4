"""Validation utilities for export requests, frame buffers and outputs."""
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import ValidationError
from .resolution import validate_custom_resolution
from .types import ExportSpec

logger = logging.getLogger(__name__)

SUPPORTED_CONTAINERS = (".mp4", ".mov", ".mkv")
MAX_FPS = 240.0


@dataclass
class FrameValidation:
    """Result of validating one captured frame buffer."""
    frame_index: int
    is_valid: bool
    expected_bytes: int
    actual_bytes: int
    issues: List[str] = field(default_factory=list)

    def describe(self) -> str:
        return "; ".join(self.issues) if self.issues else "ok"


def validate_export_spec(spec: ExportSpec) -> None:
    """Reject malformed export requests.

    Raises:
        ValidationError: On the first problem found
    """
    for name in ("start_ms", "end_ms", "fps"):
        value = getattr(spec, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationError(f"{name} must be a finite number, got {value!r}")

    if spec.duration_ms <= 0:
        raise ValidationError(
            f"Export duration must be positive (start={spec.start_ms}ms, end={spec.end_ms}ms)"
        )
    if spec.start_ms < 0:
        raise ValidationError(f"Export start must not be negative: {spec.start_ms}ms")
    if not spec.fps or spec.fps <= 0:
        raise ValidationError(f"Frame rate must be positive, got {spec.fps}")
    if spec.fps > MAX_FPS:
        raise ValidationError(f"Frame rate {spec.fps} exceeds maximum of {MAX_FPS}")
    if spec.total_frames < 1:
        raise ValidationError(
            f"Export of {spec.duration_ms}ms at {spec.fps} fps yields no frames"
        )

    try:
        validate_custom_resolution(spec.width, spec.height)
    except ValueError as e:
        raise ValidationError(f"Invalid resolution {spec.width}x{spec.height}: {e}") from e

    if not isinstance(spec.batch_size, int) or spec.batch_size < 1:
        raise ValidationError(f"Batch size must be a positive integer, got {spec.batch_size}")

    if spec.output_path.suffix.lower() not in SUPPORTED_CONTAINERS:
        raise ValidationError(
            f"Unsupported output container '{spec.output_path.suffix}'. "
            f"Supported: {', '.join(SUPPORTED_CONTAINERS)}"
        )
    if spec.output_path.exists() and spec.output_path.is_dir():
        raise ValidationError(f"Output path is a directory: {spec.output_path}")

    if spec.include_audio:
        if spec.audio_path is None:
            raise ValidationError("include_audio is set but no audio_path was given")
        if not spec.audio_path.is_file():
            raise ValidationError(f"Audio file not found: {spec.audio_path}")


def validate_frame_buffer(
    buffer: Optional[bytes],
    width: int,
    height: int,
    frame_index: int = 0,
) -> FrameValidation:
    """Check a captured RGBA buffer against the target resolution.

    The buffer must hold exactly ``width * height * 4`` bytes; it is never
    truncated or padded.
    """
    expected = width * height * 4
    actual = len(buffer) if buffer is not None else 0
    issues = []

    if buffer is None or actual == 0:
        issues.append("empty frame buffer")
    elif actual != expected:
        issues.append(
            f"frame buffer size mismatch: expected {expected} bytes "
            f"({width}x{height}x4), got {actual}"
        )

    return FrameValidation(
        frame_index=frame_index,
        is_valid=not issues,
        expected_bytes=expected,
        actual_bytes=actual,
        issues=issues,
    )


def validate_output_file(path: Path) -> bool:
    """True if ``path`` exists as a non-empty regular file."""
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError as e:
        logger.warning(f"Could not stat output file {path}: {e}")
        return False
