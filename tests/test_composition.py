"""Tests for the composition stage."""
import asyncio

import pytest

from lyricsnap.composition import CompositionStage, partial_output_path
from lyricsnap.errors import ComposeError


@pytest.fixture
def segments(tmp_path):
    batches = tmp_path / "batches"
    batches.mkdir()
    paths = []
    for index in range(3):
        path = batches / f"batch_{index:04d}.mp4"
        path.write_text(f"segment {index}\n")
        paths.append(path)
    return paths


def leftovers(directory):
    return [p.name for p in directory.iterdir() if ".partial-" in p.name]


class TestPartialOutputPath:
    def test_sibling_with_same_suffix(self, tmp_path):
        """Test the temporary file sits beside the output."""
        tmp = partial_output_path(tmp_path / "video.mp4")
        assert tmp.parent == tmp_path
        assert tmp.suffix == ".mp4"
        assert tmp.name.startswith("video.partial-")

    def test_unique_per_call(self, tmp_path):
        assert partial_output_path(tmp_path / "a.mp4") != partial_output_path(tmp_path / "a.mp4")


class TestCompose:
    """Tests for CompositionStage.compose."""

    def test_segments_joined_in_order(self, tmp_path, segments, encoder):
        output = tmp_path / "out" / "final.mp4"
        result = asyncio.run(CompositionStage(encoder).compose(segments, output))

        assert result == output
        assert output.read_text() == "segment 0\nsegment 1\nsegment 2\n"
        assert encoder.concat_calls[0][0] == segments
        assert encoder.concat_calls[0][1] is None

    def test_assembled_into_temp_then_renamed(self, tmp_path, segments, encoder):
        """Test the encoder never writes the caller's path directly."""
        output = tmp_path / "final.mp4"
        asyncio.run(CompositionStage(encoder).compose(segments, output))

        written_to = encoder.concat_calls[0][2]
        assert written_to != output
        assert ".partial-" in written_to.name
        assert not written_to.exists()
        assert leftovers(tmp_path) == []

    def test_audio_passed_through(self, tmp_path, segments, encoder, audio_file):
        output = tmp_path / "final.mp4"
        asyncio.run(CompositionStage(encoder).compose(segments, output, audio_path=audio_file))

        assert encoder.concat_calls[0][1] == audio_file
        assert output.read_text().endswith("audio track.m4a\n")

    def test_failure_removes_temp_and_keeps_existing_output(self, tmp_path, segments, encoder):
        """Test a failed composition never leaves a partial file."""
        output = tmp_path / "final.mp4"
        output.write_text("previous export")
        encoder.fail_concat = True

        with pytest.raises(ComposeError) as exc_info:
            asyncio.run(CompositionStage(encoder).compose(segments, output))

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert output.read_text() == "previous export"
        assert leftovers(tmp_path) == []

    def test_empty_result_is_error(self, tmp_path, segments, encoder):
        output = tmp_path / "final.mp4"
        encoder.concat_writes_nothing = True

        with pytest.raises(ComposeError, match="empty or missing"):
            asyncio.run(CompositionStage(encoder).compose(segments, output))
        assert not output.exists()
        assert leftovers(tmp_path) == []

    def test_missing_segment_is_error(self, tmp_path, segments, encoder):
        segments[1].unlink()
        with pytest.raises(ComposeError, match="missing"):
            asyncio.run(CompositionStage(encoder).compose(segments, tmp_path / "final.mp4"))
        assert encoder.concat_calls == []

    def test_no_segments_is_error(self, tmp_path, encoder):
        with pytest.raises(ComposeError):
            asyncio.run(CompositionStage(encoder).compose([], tmp_path / "final.mp4"))

    def test_timeout_is_compose_error(self, tmp_path, segments, encoder):
        """Test a hung concatenation is bounded by compose_timeout."""
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        encoder.concatenate_segments = hang
        output = tmp_path / "final.mp4"

        with pytest.raises(ComposeError, match="timed out"):
            asyncio.run(CompositionStage(encoder, compose_timeout=0.05).compose(segments, output))
        assert not output.exists()
