"""Core data types for the export pipeline."""
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

DEFAULT_BATCH_SIZE = 150  # 5 seconds at 30fps
FRAME_FILENAME_PATTERN = "frame_%06d.png"
SEGMENT_FILENAME_PATTERN = "batch_%04d.mp4"


class QualityPreset(Enum):
    """Encoder quality presets as (x264 preset, CRF)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    HIGHEST = "highest"

    @property
    def x264_preset(self) -> str:
        return {
            QualityPreset.LOW: "fast",
            QualityPreset.MEDIUM: "medium",
            QualityPreset.HIGH: "slow",
            QualityPreset.HIGHEST: "slower",
        }[self]

    @property
    def crf(self) -> int:
        return {
            QualityPreset.LOW: 28,
            QualityPreset.MEDIUM: 23,
            QualityPreset.HIGH: 18,
            QualityPreset.HIGHEST: 15,
        }[self]


class SessionState(Enum):
    """Lifecycle states of an export session."""

    PREPARING = "preparing"
    CAPTURING = "capturing"
    ENCODING = "encoding"
    COMPOSING = "composing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED)


class ExportPhase(Enum):
    """Progress phases: the non-terminal session states."""

    PREPARING = "preparing"
    CAPTURING = "capturing"
    ENCODING = "encoding"
    COMPOSING = "composing"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class ExportSpec:
    """Caller input describing one export. Immutable for the session.

    Attributes:
        start_ms: Inclusive start of the exported time range in milliseconds
        end_ms: Exclusive end of the exported time range in milliseconds
        fps: Target frame rate
        width: Target frame width in pixels
        height: Target frame height in pixels
        output_path: Final video path requested by the caller
        include_overlays: Render debug overlays into the frames
        include_audio: Mux ``audio_path`` into the final video
        audio_path: Audio track resolved by the caller
        batch_size: Frames per encoded segment
        quality: Encoder quality preset
    """

    start_ms: float
    end_ms: float
    fps: float
    width: int
    height: int
    output_path: Path
    include_overlays: bool = False
    include_audio: bool = False
    audio_path: Optional[Path] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    quality: QualityPreset = QualityPreset.MEDIUM

    def __post_init__(self) -> None:
        # frozen: coerce through object.__setattr__
        if not isinstance(self.output_path, Path):
            object.__setattr__(self, "output_path", Path(self.output_path))
        if self.audio_path is not None and not isinstance(self.audio_path, Path):
            object.__setattr__(self, "audio_path", Path(self.audio_path))
        if isinstance(self.quality, str):
            object.__setattr__(self, "quality", QualityPreset(self.quality))

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms

    @property
    def total_frames(self) -> int:
        return frame_count(self.start_ms, self.end_ms, self.fps)

    @property
    def bytes_per_frame(self) -> int:
        return self.width * self.height * 4

    def frame_timestamp(self, index: int) -> float:
        """Timestamp in milliseconds at which frame ``index`` is rendered."""
        return frame_timestamp(self.start_ms, self.fps, index)


def frame_count(start_ms: float, end_ms: float, fps: float) -> int:
    """Number of frames covering ``[start_ms, end_ms)`` at ``fps``."""
    # Round away float noise so 10000ms at 30fps is 300 frames, not 301.
    return math.ceil(round((end_ms - start_ms) / 1000 * fps, 9))


def frame_timestamp(start_ms: float, fps: float, index: int) -> float:
    return start_ms + index * 1000 / fps


@dataclass
class FrameTask:
    """One frame to capture. ``buffer`` is released once persisted."""

    index: int
    timestamp_ms: float
    buffer: Optional[bytes] = None
    path: Optional[Path] = None


@dataclass(frozen=True)
class FrameSequence:
    """A contiguous ``[start, end)`` run of staged frame files.

    Exposes both the ordered file paths and the printf-style pattern plus
    start number, so encoders can use whichever input form they need.
    """

    directory: Path
    start: int
    end: int
    pattern: str = FRAME_FILENAME_PATTERN

    @property
    def count(self) -> int:
        return self.end - self.start

    @property
    def input_pattern(self) -> Path:
        return self.directory / self.pattern

    def path_for(self, index: int) -> Path:
        return self.directory / (self.pattern % index)

    def paths(self) -> List[Path]:
        return [self.path_for(i) for i in range(self.start, self.end)]


@dataclass
class Batch:
    """Frames ``[start, end)`` encoded together into one segment."""

    index: int
    start: int
    end: int
    segment_path: Optional[Path] = None

    @property
    def frame_count(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class ExportProgress:
    """Observation of export progress. Never persisted."""

    phase: ExportPhase
    percent: float
    current: Optional[int] = None
    total: Optional[int] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class ExportEstimate:
    """Resource estimate for an ``ExportSpec``."""

    total_frames: int
    bytes_per_frame: int
    batch_count: int
    peak_memory_per_batch: int
    recommended_batch_size: int
    staging_disk_bytes: int = 0
    notes: List[str] = field(default_factory=list)
