"""Shared pytest fixtures for lyricsnap tests."""
import asyncio
import logging
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

import pytest

from lyricsnap.config import ExportConfig
from lyricsnap.encoder import EncoderService
from lyricsnap.engine import RenderEngine
from lyricsnap.types import ExportSpec, FrameSequence, QualityPreset

WIDTH, HEIGHT = 320, 240


# ============================================================================
# Fakes for the external collaborators
# ============================================================================

class ScriptedEngine(RenderEngine):
    """Render engine that records every call and fails on demand.

    Attributes:
        events: ("pause",), ("seek", ts) and ("capture", ts) in call order
        fail_times: timestamp -> number of capture failures still to raise
        wrong_size_times: timestamps returning a truncated buffer
        hang_times: timestamps whose capture never completes
        on_capture: hook called with the number of successful captures
    """

    def __init__(self):
        self.events: List[Tuple] = []
        self.fail_times: Dict[float, int] = {}
        self.wrong_size_times: Set[float] = set()
        self.hang_times: Set[float] = set()
        self.on_capture: Optional[Callable[[int], None]] = None
        self.reclaims: List[int] = []
        self.captures = 0
        self._time: Optional[float] = None

    def pause(self) -> None:
        self.events.append(("pause",))

    async def seek_to(self, timestamp_ms: float) -> None:
        self.events.append(("seek", timestamp_ms))
        self._time = timestamp_ms
        await asyncio.sleep(0)

    async def capture_pixels(self, width: int, height: int, include_overlays: bool) -> bytes:
        ts = self._time
        self.events.append(("capture", ts))
        if ts in self.hang_times:
            await asyncio.sleep(3600)
        if self.fail_times.get(ts, 0) > 0:
            self.fail_times[ts] -= 1
            raise RuntimeError(f"render glitch at {ts}")
        if ts in self.wrong_size_times:
            return bytes(width * height * 4 - 4)

        self.captures += 1
        if self.on_capture:
            self.on_capture(self.captures)
        shade = self.captures % 256
        return bytes([shade, 255 - shade, 128, 255]) * (width * height)

    def reclaim_resources(self) -> None:
        self.reclaims.append(self.captures)

    @property
    def seek_times(self) -> List[float]:
        return [e[1] for e in self.events if e[0] == "seek"]


class FakeEncoder(EncoderService):
    """In-process encoder writing small placeholder segment files.

    Tracks concurrency so tests can check the encode gate bound.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.delays: Dict[int, float] = {}
        self.fail_starts: Set[int] = set()
        self.encoded: List[Tuple[int, int]] = []
        self.completed: List[int] = []
        self.cancelled: List[int] = []
        self.concat_calls: List[Tuple[List[Path], Optional[Path], Path]] = []
        self.fail_concat = False
        self.concat_writes_nothing = False
        self.active = 0
        self.max_active = 0

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
        missing = [p for p in frames.paths() if not p.is_file()]
        assert not missing, f"encoder saw missing frames: {missing[:3]}"

        self.encoded.append((frames.start, frames.end))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(frames.start, self.delay))
            if frames.start in self.fail_starts:
                raise RuntimeError(f"encoder crashed on frames starting at {frames.start}")
            output_path.write_text(f"segment {frames.start}-{frames.end}\n")
        except asyncio.CancelledError:
            self.cancelled.append(frames.start)
            raise
        finally:
            self.active -= 1
        self.completed.append(frames.start)
        return output_path

    async def concatenate_segments(
        self,
        segments: Sequence[Path],
        audio_path: Optional[Path],
        output_path: Path,
        timeout: Optional[float] = None,
    ) -> Path:
        self.concat_calls.append((list(segments), audio_path, output_path))
        await asyncio.sleep(0)
        if self.fail_concat:
            output_path.write_text("half written")
            raise RuntimeError("concat failed")
        if self.concat_writes_nothing:
            output_path.touch()
            return output_path
        body = "".join(Path(s).read_text() for s in segments)
        if audio_path is not None:
            body += f"audio {audio_path.name}\n"
        output_path.write_text(body)
        return output_path


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine()


@pytest.fixture
def encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def export_config(tmp_path) -> ExportConfig:
    """Config staging sessions under tmp_path with short timeouts."""
    return ExportConfig(
        base_dir=tmp_path / "sessions",
        check_disk_space=False,
        capture_timeout=5.0,
        encode_timeout=5.0,
        compose_timeout=5.0,
    )


@pytest.fixture
def make_spec(tmp_path) -> Callable[..., ExportSpec]:
    """Factory for valid 320x240 export specs writing into tmp_path."""

    def _make(**overrides) -> ExportSpec:
        values = dict(
            start_ms=0,
            end_ms=1000,
            fps=30,
            width=WIDTH,
            height=HEIGHT,
            output_path=tmp_path / "out.mp4",
        )
        values.update(overrides)
        return ExportSpec(**values)

    return _make


@pytest.fixture
def audio_file(tmp_path) -> Path:
    path = tmp_path / "track.m4a"
    path.write_bytes(b"\x00" * 64)
    return path


@pytest.fixture
def session_dirs() -> Callable[[Path], List[Path]]:
    """Lists session working directories currently under a base directory."""

    def _list(base_dir: Path) -> List[Path]:
        if not base_dir.exists():
            return []
        return sorted(p for p in base_dir.iterdir() if p.name.startswith("session_"))

    return _list


@pytest.fixture(scope="session")
def ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo configure_logging() calls so caplog keeps seeing records."""
    root = logging.getLogger("lyricsnap")
    saved = (list(root.handlers), root.level, root.propagate)
    yield
    for handler in list(root.handlers):
        if handler not in saved[0]:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved[1])
    root.propagate = saved[2]
