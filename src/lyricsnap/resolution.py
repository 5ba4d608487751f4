"""Resolution presets for lyric video export.

Maps aspect ratio, orientation and quality to concrete pixel sizes, and
validates custom resolutions.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

MIN_WIDTH, MIN_HEIGHT = 320, 240
MAX_WIDTH, MAX_HEIGHT = 7680, 4320
MIN_ASPECT, MAX_ASPECT = 0.1, 10.0

ASPECT_RATIOS = ("16:9", "4:3", "1:1")
ORIENTATIONS = ("landscape", "portrait")
QUALITIES = ("LOW", "MEDIUM", "HIGH")


@dataclass(frozen=True)
class ResolutionPreset:
    width: int
    height: int
    label: str


_LANDSCAPE: Dict[str, Dict[str, ResolutionPreset]] = {
    "16:9": {
        "LOW": ResolutionPreset(1280, 720, "HD (1280x720)"),
        "MEDIUM": ResolutionPreset(1920, 1080, "Full HD (1920x1080)"),
        "HIGH": ResolutionPreset(3840, 2160, "4K (3840x2160)"),
    },
    "4:3": {
        "LOW": ResolutionPreset(960, 720, "SD+ (960x720)"),
        "MEDIUM": ResolutionPreset(1600, 1200, "UXGA (1600x1200)"),
        "HIGH": ResolutionPreset(3200, 2400, "4K 4:3 (3200x2400)"),
    },
    "1:1": {
        "LOW": ResolutionPreset(720, 720, "SD Square (720x720)"),
        "MEDIUM": ResolutionPreset(1080, 1080, "HD Square (1080x1080)"),
        "HIGH": ResolutionPreset(1920, 1920, "4K Square (1920x1920)"),
    },
}


def _portrait(preset: ResolutionPreset) -> ResolutionPreset:
    if preset.width == preset.height:
        return preset
    label = preset.label.replace(" (", " Portrait (", 1)
    label = label.replace(f"{preset.width}x{preset.height}", f"{preset.height}x{preset.width}")
    return ResolutionPreset(preset.height, preset.width, label)


ASPECT_RATIO_RESOLUTIONS: Dict[str, Dict[str, Dict[str, ResolutionPreset]]] = {
    aspect: {
        "landscape": dict(presets),
        "portrait": {quality: _portrait(p) for quality, p in presets.items()},
    }
    for aspect, presets in _LANDSCAPE.items()
}


def validate_custom_resolution(width: int, height: int) -> Tuple[int, int]:
    """Validate a custom output resolution.

    Raises:
        ValueError: If the resolution cannot be encoded
    """
    if isinstance(width, bool) or isinstance(height, bool) \
            or not isinstance(width, int) or not isinstance(height, int):
        raise ValueError("Resolution dimensions must be integers")
    if width < MIN_WIDTH or height < MIN_HEIGHT:
        raise ValueError(f"Minimum resolution is {MIN_WIDTH}x{MIN_HEIGHT}")
    if width > MAX_WIDTH or height > MAX_HEIGHT:
        raise ValueError(f"Maximum resolution is {MAX_WIDTH}x{MAX_HEIGHT}")
    # yuv420p needs even dimensions
    if width % 2 or height % 2:
        raise ValueError("Resolution dimensions must be even numbers")
    aspect = width / height
    if aspect < MIN_ASPECT or aspect > MAX_ASPECT:
        raise ValueError(f"Aspect ratio must be between {MIN_ASPECT} and {MAX_ASPECT:g}")
    return width, height


def get_resolution(
    aspect_ratio: str,
    orientation: str = "landscape",
    quality: str = "MEDIUM",
    custom: Optional[Tuple[int, int]] = None,
) -> Tuple[int, int]:
    """Resolve a preset (or validated custom size) to ``(width, height)``."""
    if quality.upper() == "CUSTOM":
        if custom is None:
            raise ValueError("Custom resolution must be provided for CUSTOM quality")
        return validate_custom_resolution(*custom)

    try:
        preset = ASPECT_RATIO_RESOLUTIONS[aspect_ratio][orientation][quality.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown resolution configuration: {aspect_ratio}/{orientation}/{quality}"
        ) from None
    return preset.width, preset.height


def list_presets(aspect_ratio: str, orientation: str = "landscape") -> List[Tuple[str, ResolutionPreset]]:
    """Available ``(quality, preset)`` pairs for an aspect ratio and orientation."""
    presets = ASPECT_RATIO_RESOLUTIONS.get(aspect_ratio, {}).get(orientation, {})
    return [(quality, presets[quality]) for quality in QUALITIES if quality in presets]
