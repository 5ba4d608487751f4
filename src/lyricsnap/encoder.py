"""Encoder service interface and the ffmpeg-backed implementation."""
import logging
import shutil
import subprocess
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ComposeError, EncodeError, create_error_context
from .types import FrameSequence, QualityPreset
from .utils.async_io import AsyncSubprocess, SubprocessTimeout
from .utils.ffmpeg import (
    build_batch_encode_command,
    build_concat_command,
    find_ffmpeg,
    parse_ffmpeg_progress,
    write_concat_list,
)
from .validators import validate_output_file

logger = logging.getLogger(__name__)


class EncoderService(ABC):
    """Backend turning staged frames into video segments and joining them."""

    @abstractmethod
    async def encode_image_sequence(
        self,
        frames: FrameSequence,
        fps: float,
        width: int,
        height: int,
        quality: QualityPreset,
        output_path: Path,
        timeout: Optional[float] = None,
    ) -> Path:
        """Encode ``frames`` into one segment at ``output_path``.

        Raises:
            EncodeError: On any encoder failure or timeout
        """

    @abstractmethod
    async def concatenate_segments(
        self,
        segments: Sequence[Path],
        audio_path: Optional[Path],
        output_path: Path,
        timeout: Optional[float] = None,
    ) -> Path:
        """Join ``segments`` in order into ``output_path``, muxing audio if given.

        Raises:
            ComposeError: On any encoder failure or timeout
        """


class FFmpegEncoder(EncoderService):
    """Encoder service running the system ``ffmpeg`` binary.

    Batches are encoded to H.264 (yuv420p, +faststart) from the PNG
    sequence; segments are joined with the concat demuxer using stream copy.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", runner: Optional[AsyncSubprocess] = None):
        self.ffmpeg_path = ffmpeg_path
        self._ffmpeg: Optional[str] = None
        self._runner = runner or AsyncSubprocess(timeout=None)

    @property
    def ffmpeg(self) -> str:
        """Resolved ffmpeg executable; raises FFmpegNotFoundError if missing."""
        if self._ffmpeg is None:
            self._ffmpeg = find_ffmpeg(self.ffmpeg_path)
        return self._ffmpeg

    async def encode_image_sequence(
        self,
        frames: FrameSequence,
        fps: float,
        width: int,
        height: int,
        quality: QualityPreset,
        output_path: Path,
        timeout: Optional[float] = None,
    ) -> Path:
        cmd = build_batch_encode_command(self.ffmpeg, frames, fps, quality, output_path)
        logger.debug(f"Encoding frames [{frames.start}, {frames.end}) -> {output_path.name}")

        result = await self._run(cmd, timeout, output_path, EncodeError, "encode_batch")

        if not validate_output_file(output_path):
            raise EncodeError(
                f"Encoder produced no output for frames [{frames.start}, {frames.end})",
                context=create_error_context(
                    stage="encoding",
                    operation="encode_batch",
                    output_file=output_path,
                    command=cmd,
                    stderr=result.stderr,
                ),
            )

        encoded = parse_ffmpeg_progress(result.stderr).get("frame")
        if encoded is not None and encoded != frames.count:
            raise EncodeError(
                f"Encoded {encoded} frames, expected {frames.count} "
                f"for frames [{frames.start}, {frames.end})",
                context=create_error_context(
                    stage="encoding",
                    operation="encode_batch",
                    output_file=output_path,
                    command=cmd,
                    stderr=result.stderr,
                    width=width,
                    height=height,
                ),
            )
        return output_path

    async def concatenate_segments(
        self,
        segments: Sequence[Path],
        audio_path: Optional[Path],
        output_path: Path,
        timeout: Optional[float] = None,
    ) -> Path:
        if not segments:
            raise ComposeError("No segments to concatenate")

        if len(segments) == 1 and audio_path is None:
            # A lone segment is already the complete video.
            shutil.copy2(segments[0], output_path)
            return output_path

        list_path = output_path.with_name(f".concat-{uuid.uuid4().hex[:8]}.txt")
        write_concat_list(segments, list_path)
        try:
            cmd = build_concat_command(self.ffmpeg, list_path, output_path, audio_path)
            await self._run(cmd, timeout, output_path, ComposeError, "concatenate")
        finally:
            list_path.unlink(missing_ok=True)
        return output_path

    async def _run(
        self,
        cmd: List[str],
        timeout: Optional[float],
        output_path: Path,
        error_cls: type,
        operation: str,
    ):
        stage = "encoding" if error_cls is EncodeError else "composing"
        try:
            return await self._runner.run_checked(cmd, timeout=timeout)
        except SubprocessTimeout as e:
            raise error_cls(
                f"ffmpeg timed out after {timeout}s writing {output_path.name}",
                context=create_error_context(
                    stage=stage, operation=operation, output_file=output_path, command=cmd
                ),
            ) from e
        except subprocess.CalledProcessError as e:
            stderr = e.stderr or ""
            raise error_cls(
                f"ffmpeg failed writing {output_path.name} (exit {e.returncode}): "
                f"{stderr.strip().splitlines()[-1] if stderr.strip() else 'no output'}",
                context=create_error_context(
                    stage=stage,
                    operation=operation,
                    output_file=output_path,
                    command=cmd,
                    stderr=stderr,
                    return_code=e.returncode,
                ),
            ) from e
        except OSError as e:
            raise error_cls(
                f"Could not start ffmpeg: {e}",
                context=create_error_context(stage=stage, operation=operation, command=cmd),
            ) from e
