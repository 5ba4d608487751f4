"""Tests for core export types."""
from pathlib import Path

import pytest

from lyricsnap.types import (
    Batch,
    ExportSpec,
    FrameSequence,
    QualityPreset,
    SessionState,
    frame_count,
    frame_timestamp,
)


class TestFrameMath:
    """Tests for frame count and timestamp formulas."""

    @pytest.mark.parametrize("start,end,fps,expected", [
        (0, 5000, 30, 150),
        (0, 10000, 30, 300),
        (0, 1000, 24, 24),
        (0, 1001, 30, 31),
        (0, 100, 30, 3),
        (500, 1500, 60, 60),
        (0, 1000, 29.97, 30),
    ])
    def test_frame_count(self, start, end, fps, expected):
        """Test ceil((end - start) / 1000 * fps)."""
        assert frame_count(start, end, fps) == expected

    def test_timestamp_formula(self):
        """Test frame i renders at start + i * 1000 / fps."""
        assert frame_timestamp(0, 30, 0) == 0
        assert frame_timestamp(0, 30, 3) == pytest.approx(100.0)
        assert frame_timestamp(250, 60, 6) == pytest.approx(350.0)

    def test_timestamps_inside_range(self):
        """Test every frame timestamp lies in [start, end)."""
        spec = ExportSpec(0, 1001, 30, 320, 240, Path("out.mp4"))
        stamps = [spec.frame_timestamp(i) for i in range(spec.total_frames)]
        assert stamps[0] == 0
        assert all(0 <= t < 1001 for t in stamps)
        assert stamps == sorted(stamps)


class TestExportSpec:
    """Tests for ExportSpec."""

    def test_derived_values(self):
        """Test duration, frame count and frame size."""
        spec = ExportSpec(1000, 6000, 30, 1920, 1080, Path("out.mp4"))
        assert spec.duration_ms == 5000
        assert spec.total_frames == 150
        assert spec.bytes_per_frame == 1920 * 1080 * 4

    def test_coerces_paths_and_quality(self):
        """Test string inputs are normalized."""
        spec = ExportSpec(0, 1000, 30, 320, 240, "out.mp4", audio_path="a.m4a", quality="high")
        assert isinstance(spec.output_path, Path)
        assert isinstance(spec.audio_path, Path)
        assert spec.quality is QualityPreset.HIGH

    def test_is_immutable(self):
        """Test an ExportSpec cannot change during a session."""
        spec = ExportSpec(0, 1000, 30, 320, 240, Path("out.mp4"))
        with pytest.raises(AttributeError):
            spec.fps = 60

    def test_defaults(self):
        """Test default batch size and quality."""
        spec = ExportSpec(0, 1000, 30, 320, 240, Path("out.mp4"))
        assert spec.batch_size == 150
        assert spec.quality is QualityPreset.MEDIUM
        assert spec.include_audio is False


class TestQualityPreset:
    """Tests for encoder quality presets."""

    @pytest.mark.parametrize("quality,preset,crf", [
        (QualityPreset.LOW, "fast", 28),
        (QualityPreset.MEDIUM, "medium", 23),
        (QualityPreset.HIGH, "slow", 18),
        (QualityPreset.HIGHEST, "slower", 15),
    ])
    def test_x264_settings(self, quality, preset, crf):
        assert quality.x264_preset == preset
        assert quality.crf == crf


class TestSessionState:
    def test_terminal_states(self):
        terminal = {s for s in SessionState if s.is_terminal}
        assert terminal == {SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED}


class TestFrameSequence:
    """Tests for FrameSequence."""

    def test_paths_and_pattern(self, tmp_path):
        """Test both input forms describe the same files."""
        seq = FrameSequence(tmp_path, 150, 153)
        assert seq.count == 3
        assert seq.input_pattern == tmp_path / "frame_%06d.png"
        assert seq.paths() == [
            tmp_path / "frame_000150.png",
            tmp_path / "frame_000151.png",
            tmp_path / "frame_000152.png",
        ]

    def test_batch_frame_count(self):
        assert Batch(1, 150, 300).frame_count == 150
