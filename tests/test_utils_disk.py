"""Tests for the disk utilities module."""
import pytest

from lyricsnap.utils.disk import (
    PNG_COMPRESSION_RATIO,
    SEGMENT_RATIO,
    DiskUsage,
    estimate_staging_bytes,
    get_directory_size,
    get_disk_usage,
)


class TestDiskUsage:
    """Tests for DiskUsage dataclass."""

    def test_free_gb(self):
        usage = DiskUsage(total_bytes=4 * 1024 ** 3, used_bytes=1024 ** 3, free_bytes=3 * 1024 ** 3)
        assert usage.free_gb == pytest.approx(3.0)

    def test_usage_percent(self):
        """Test usage percentage calculation."""
        usage = DiskUsage(total_bytes=1000, used_bytes=250, free_bytes=750)
        assert usage.usage_percent == 25.0

    def test_usage_percent_empty_disk(self):
        assert DiskUsage(0, 0, 0).usage_percent == 0.0


class TestGetDiskUsage:
    """Tests for get_disk_usage."""

    def test_existing_path(self, tmp_path):
        usage = get_disk_usage(tmp_path)
        assert usage.total_bytes > 0
        assert usage.free_bytes <= usage.total_bytes

    def test_path_not_created_yet(self, tmp_path):
        """Test a future session directory measures its existing parent."""
        usage = get_disk_usage(tmp_path / "not" / "yet" / "there")
        assert usage.total_bytes == get_disk_usage(tmp_path).total_bytes


class TestGetDirectorySize:
    def test_nested_files(self, tmp_path):
        (tmp_path / "frames").mkdir()
        (tmp_path / "frames" / "a.png").write_bytes(b"x" * 100)
        (tmp_path / "b.mp4").write_bytes(b"x" * 50)
        assert get_directory_size(tmp_path) == 150

    def test_empty(self, tmp_path):
        assert get_directory_size(tmp_path) == 0


class TestEstimateStagingBytes:
    """Tests for estimate_staging_bytes."""

    def test_with_release(self):
        """Test peak is all PNGs plus the segments written alongside them."""
        png = int(300 * 1000 * PNG_COMPRESSION_RATIO)
        segments = int(png * SEGMENT_RATIO)
        assert estimate_staging_bytes(300, 1000) == png + segments

    def test_without_release(self):
        """Test retained frames also coexist with the composed output."""
        png = int(300 * 1000 * PNG_COMPRESSION_RATIO)
        segments = int(png * SEGMENT_RATIO)
        assert estimate_staging_bytes(300, 1000, release_after_encode=False) == png + 2 * segments

    def test_zero_frames(self):
        assert estimate_staging_bytes(0, 1000) == 0
