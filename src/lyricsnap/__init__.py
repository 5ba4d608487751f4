"""lyricsnap - deterministic frame-by-frame video export for lyric animations."""
__version__ = "0.4.0"

from .config import ExportConfig
from .exporter import VideoExporter, export_video

# Pipeline components
from .batching import BatchEncoderCoordinator, partition_batches, verify_partition
from .capture import FrameCaptureOrchestrator
from .composition import CompositionStage
from .frame_store import FrameStore
from .gate import ConcurrencyGate
from .progress import ProgressReporter
from .session import ExportSession, SessionManager

# External interfaces
from .encoder import EncoderService, FFmpegEncoder
from .engine import RenderEngine, TestPatternEngine

# Types
from .types import (
    Batch,
    ExportEstimate,
    ExportPhase,
    ExportProgress,
    ExportSpec,
    FrameSequence,
    FrameTask,
    QualityPreset,
    SessionState,
)

# Exceptions
from .errors import (
    CancelledError,
    CaptureError,
    ComposeError,
    ContinuityError,
    DiskSpaceError,
    EncodeError,
    ExportError,
    ExportInProgressError,
    FFmpegNotFoundError,
    SessionStateError,
    ValidationError,
)

# Structured logging
from .utils.logging import LogConfig, configure_logging, get_logger

__all__ = [
    "__version__",
    "ExportConfig",
    "VideoExporter",
    "export_video",
    "BatchEncoderCoordinator",
    "partition_batches",
    "verify_partition",
    "FrameCaptureOrchestrator",
    "CompositionStage",
    "FrameStore",
    "ConcurrencyGate",
    "ProgressReporter",
    "ExportSession",
    "SessionManager",
    "EncoderService",
    "FFmpegEncoder",
    "RenderEngine",
    "TestPatternEngine",
    "Batch",
    "ExportEstimate",
    "ExportPhase",
    "ExportProgress",
    "ExportSpec",
    "FrameSequence",
    "FrameTask",
    "QualityPreset",
    "SessionState",
    "CancelledError",
    "CaptureError",
    "ComposeError",
    "ContinuityError",
    "DiskSpaceError",
    "EncodeError",
    "ExportError",
    "ExportInProgressError",
    "FFmpegNotFoundError",
    "SessionStateError",
    "ValidationError",
    "LogConfig",
    "configure_logging",
    "get_logger",
]
