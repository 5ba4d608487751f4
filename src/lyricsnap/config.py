"""Configuration module for the lyricsnap export pipeline."""
import logging
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

SESSIONS_DIR_NAME = "lyricsnap-export-sessions"


def default_base_dir() -> Path:
    """Directory under the system temp dir holding all session directories."""
    return Path(tempfile.gettempdir()) / SESSIONS_DIR_NAME


@dataclass
class ExportConfig:
    """Configuration for the export pipeline.

    Attributes:
        base_dir: Parent directory of per-session working directories
        ffmpeg_path: ffmpeg executable (name on PATH or absolute path)
        encode_concurrency: Maximum concurrent batch encodes
        capture_attempts: Attempts per frame before a capture failure is fatal
        capture_timeout: Seconds allowed for one seek+capture
        encode_timeout: Seconds allowed for encoding one batch
        compose_timeout: Seconds allowed for the final concatenation
        reclaim_interval: Ask the render engine to reclaim resources every N frames
        release_frames_after_encode: Delete frame PNGs once their batch is encoded
        check_disk_space: Run the pre-flight disk space check
        disk_safety_margin: Extra disk space buffer (1.2 = 20% extra)
        png_compression_level: zlib level for staged PNG frames (0-9)
        memory_budget_mb: Memory budget used to recommend a batch size
    """

    base_dir: Path = field(default_factory=default_base_dir)
    ffmpeg_path: str = "ffmpeg"
    encode_concurrency: int = 2
    capture_attempts: int = 3
    capture_timeout: Optional[float] = 30.0
    encode_timeout: Optional[float] = 600.0
    compose_timeout: Optional[float] = 600.0
    reclaim_interval: int = 50
    release_frames_after_encode: bool = True
    check_disk_space: bool = True
    disk_safety_margin: float = 1.2
    png_compression_level: int = 1
    memory_budget_mb: int = 512

    def __post_init__(self) -> None:
        """Normalize paths and validate configuration."""
        if not isinstance(self.base_dir, Path):
            self.base_dir = Path(self.base_dir).expanduser()

        if not self.ffmpeg_path:
            raise ValueError("ffmpeg_path must not be empty")

        if self.encode_concurrency < 1:
            raise ValueError("encode_concurrency must be at least 1")

        if self.capture_attempts < 1:
            raise ValueError("capture_attempts must be at least 1")

        for name in ("capture_timeout", "encode_timeout", "compose_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive or None")

        if self.reclaim_interval < 1:
            raise ValueError("reclaim_interval must be at least 1")

        if self.disk_safety_margin < 1.0:
            raise ValueError("disk_safety_margin must be at least 1.0")

        if not 0 <= self.png_compression_level <= 9:
            raise ValueError("png_compression_level must be between 0 and 9")

        if self.memory_budget_mb < 1:
            raise ValueError("memory_budget_mb must be positive")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary."""
        data = {}
        for f in fields(self):
            val = getattr(self, f.name)
            data[f.name] = str(val) if isinstance(val, Path) else val
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportConfig":
        """Create configuration from a dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - valid_keys)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in valid_keys})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ExportConfig":
        """Load configuration from a YAML file.

        Settings may sit at the top level or under an ``export:`` section.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not valid YAML or not a mapping
        """
        path = Path(path).expanduser()
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        section = loaded.get("export", loaded)
        if not isinstance(section, dict):
            raise ValueError(f"'export' section in {path} must be a mapping")

        logger.debug(f"Loaded export config from {path}")
        return cls.from_dict(section)

    def save(self, path: Union[str, Path]) -> Path:
        """Write configuration to a YAML file under an ``export:`` section."""
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"export": self.to_dict()}, f, default_flow_style=False, sort_keys=False)
        return path
