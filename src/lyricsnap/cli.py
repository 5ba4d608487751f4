#!/usr/bin/env python3
"""
lyricsnap CLI - deterministic lyric video export
Command-line interface for exporting, estimating and housekeeping.
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from . import __version__
from .config import ExportConfig
from .encoder import FFmpegEncoder
from .engine import TestPatternEngine
from .errors import CancelledError, ExportError
from .exporter import VideoExporter
from .resolution import ASPECT_RATIOS, ORIENTATIONS, get_resolution, list_presets
from .session import SessionManager
from .types import DEFAULT_BATCH_SIZE, ExportProgress, ExportSpec, QualityPreset
from .utils.disk import get_disk_usage
from .utils.ffmpeg import check_ffmpeg_installed, find_ffmpeg, get_ffmpeg_version
from .utils.logging import LogConfig, configure_logging


class Colors:
    """ANSI color codes for terminal output."""
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'


def print_colored(message: str, color: str = Colors.OKBLUE):
    """Print colored message to console."""
    print(f"{color}{message}{Colors.ENDC}")


def _format_bytes(num: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if num < 1024:
            return f"{num:.1f} {unit}"
        num /= 1024
    return f"{num:.1f} TB"


def _load_config(args: argparse.Namespace) -> ExportConfig:
    config = ExportConfig.from_file(args.config) if args.config else ExportConfig()
    overrides = {}
    if getattr(args, "concurrency", None):
        overrides["encode_concurrency"] = args.concurrency
    if getattr(args, "ffmpeg", None):
        overrides["ffmpeg_path"] = args.ffmpeg
    # replace() re-runs validation
    return replace(config, **overrides) if overrides else config


def _spec_from_args(args: argparse.Namespace) -> ExportSpec:
    if args.width or args.height:
        if not (args.width and args.height):
            raise ValueError("--width and --height must be given together")
        width, height = get_resolution(
            args.aspect, args.orientation, "CUSTOM", custom=(args.width, args.height)
        )
    else:
        width, height = get_resolution(args.aspect, args.orientation, args.resolution)

    start_ms = args.start * 1000
    return ExportSpec(
        start_ms=start_ms,
        end_ms=start_ms + args.duration * 1000,
        fps=args.fps,
        width=width,
        height=height,
        output_path=Path(getattr(args, "output", None) or "lyricsnap-export.mp4"),
        include_overlays=getattr(args, "overlays", False),
        include_audio=bool(getattr(args, "audio", None)),
        audio_path=Path(args.audio) if getattr(args, "audio", None) else None,
        batch_size=args.batch_size,
        quality=QualityPreset(args.quality),
    )


def export_command(args: argparse.Namespace) -> int:
    """Render the test pattern through the full export pipeline."""
    config = _load_config(args)
    spec = _spec_from_args(args)
    exporter = VideoExporter(
        TestPatternEngine(), encoder=FFmpegEncoder(config.ffmpeg_path), config=config
    )

    print_colored(
        f"Exporting {spec.total_frames} frames ({spec.width}x{spec.height} @ {spec.fps:g} fps) "
        f"to {spec.output_path}",
        Colors.OKBLUE,
    )

    with tqdm(total=100, desc="Exporting", unit="%", bar_format="{l_bar}{bar}| {n:.0f}/{total:.0f}%") as bar:
        def on_progress(progress: ExportProgress) -> None:
            bar.set_description(progress.phase.value.capitalize())
            bar.update(progress.percent - bar.n)

        try:
            output = asyncio.run(exporter.start(spec, on_progress=on_progress))
        except KeyboardInterrupt:
            print_colored("\nExport cancelled by user", Colors.WARNING)
            return 130
        except CancelledError:
            print_colored("\nExport cancelled", Colors.WARNING)
            return 130
        except ExportError as e:
            bar.close()
            print_colored(f"\nExport failed: {e}", Colors.FAIL)
            if e.last_progress is not None:
                print_colored(
                    f"  Last progress: {e.last_progress.phase.value} {e.last_progress.percent:.1f}%",
                    Colors.OKCYAN,
                )
            return 1

    print_colored(f"\nExport complete: {output}", Colors.OKGREEN)
    if exporter.metrics is not None:
        if args.metrics_json:
            exporter.metrics.export_json(Path(args.metrics_json))
        if args.verbose:
            print(exporter.metrics.summary())
    return 0


def estimate_command(args: argparse.Namespace) -> int:
    config = _load_config(args)
    spec = _spec_from_args(args)
    estimate = VideoExporter(TestPatternEngine(), config=config).estimate(spec)

    print_colored("Export estimate", Colors.OKBLUE)
    print(f"  Frames:                {estimate.total_frames}")
    print(f"  Bytes per frame:       {_format_bytes(estimate.bytes_per_frame)}")
    print(f"  Batches:               {estimate.batch_count}")
    print(f"  Peak memory per batch: {_format_bytes(estimate.peak_memory_per_batch)}")
    print(f"  Recommended batch:     {estimate.recommended_batch_size} frames")
    print(f"  Staging disk:          {_format_bytes(estimate.staging_disk_bytes)}")
    for note in estimate.notes:
        print_colored(f"  Note: {note}", Colors.WARNING)
    return 0


def presets_command(args: argparse.Namespace) -> int:
    aspects = [args.aspect] if args.aspect else list(ASPECT_RATIOS)
    for aspect in aspects:
        for orientation in ORIENTATIONS:
            presets = list_presets(aspect, orientation)
            if not presets:
                continue
            print_colored(f"{aspect} {orientation}", Colors.OKBLUE)
            for quality, preset in presets:
                print(f"  {quality:<7} {preset.label}")
    return 0


def cleanup_command(args: argparse.Namespace) -> int:
    config = _load_config(args)
    removed = SessionManager(config.base_dir).cleanup_orphaned_sessions(args.max_age_hours)
    print_colored(f"Removed {removed} orphaned session(s) from {config.base_dir}", Colors.OKGREEN)
    return 0


def check_command(args: argparse.Namespace) -> int:
    config = _load_config(args)
    ok = True

    if check_ffmpeg_installed(config.ffmpeg_path):
        version = get_ffmpeg_version(config.ffmpeg_path) or "unknown version"
        print_colored(f"ffmpeg: {find_ffmpeg(config.ffmpeg_path)} ({version})", Colors.OKGREEN)
    else:
        print_colored(f"ffmpeg: not found ({config.ffmpeg_path})", Colors.FAIL)
        ok = False

    usage = get_disk_usage(config.base_dir)
    print_colored(
        f"Staging directory: {config.base_dir} ({usage.free_gb:.1f} GB free)", Colors.OKCYAN
    )
    return 0 if ok else 1


def _add_spec_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--duration', type=float, default=5.0,
                        help='Length of the exported range in seconds (default: 5)')
    parser.add_argument('--start', type=float, default=0.0,
                        help='Start of the exported range in seconds (default: 0)')
    parser.add_argument('--fps', type=float, default=30.0, help='Frame rate (default: 30)')
    parser.add_argument('--aspect', choices=ASPECT_RATIOS, default='16:9',
                        help='Aspect ratio (default: 16:9)')
    parser.add_argument('--orientation', choices=ORIENTATIONS, default='landscape',
                        help='Orientation (default: landscape)')
    parser.add_argument('--resolution', choices=['LOW', 'MEDIUM', 'HIGH'], default='LOW',
                        help='Resolution preset (default: LOW)')
    parser.add_argument('--width', type=int, help='Custom width (requires --height)')
    parser.add_argument('--height', type=int, help='Custom height (requires --width)')
    parser.add_argument('--quality', choices=[q.value for q in QualityPreset], default='medium',
                        help='Encoder quality preset (default: medium)')
    parser.add_argument('--batch-size', type=int, default=DEFAULT_BATCH_SIZE,
                        help=f'Frames per encoded batch (default: {DEFAULT_BATCH_SIZE})')


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lyricsnap',
        description='Deterministic frame-by-frame lyric video export',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', help='YAML configuration file')
    parser.add_argument('--log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Log level (default: WARNING)')
    parser.add_argument('--log-format', default='text', choices=['text', 'json'],
                        help='Log output format (default: text)')
    parser.add_argument('--log-file', help='Also write logs to this file')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    export_parser = subparsers.add_parser('export', help='Export the test pattern to a video file')
    _add_spec_arguments(export_parser)
    export_parser.add_argument('-o', '--output', required=True, help='Output video path')
    export_parser.add_argument('--audio', help='Audio track to mux into the output')
    export_parser.add_argument('--overlays', action='store_true', help='Render debug overlays')
    export_parser.add_argument('--concurrency', type=int, help='Concurrent batch encodes')
    export_parser.add_argument('--ffmpeg', help='ffmpeg executable to use')
    export_parser.add_argument('--metrics-json', help='Write export metrics to this JSON file')
    export_parser.add_argument('-v', '--verbose', action='store_true', help='Print metrics summary')
    export_parser.set_defaults(func=export_command)

    estimate_parser = subparsers.add_parser('estimate', help='Estimate frames, memory and disk use')
    _add_spec_arguments(estimate_parser)
    estimate_parser.set_defaults(func=estimate_command)

    presets_parser = subparsers.add_parser('presets', help='List resolution presets')
    presets_parser.add_argument('--aspect', choices=ASPECT_RATIOS, help='Only this aspect ratio')
    presets_parser.set_defaults(func=presets_command)

    cleanup_parser = subparsers.add_parser('cleanup', help='Remove orphaned export sessions')
    cleanup_parser.add_argument('--max-age-hours', type=float, default=24.0,
                                help='Remove sessions older than this (default: 24)')
    cleanup_parser.set_defaults(func=cleanup_command)

    check_parser = subparsers.add_parser('check', help='Check ffmpeg and staging directory')
    check_parser.add_argument('--ffmpeg', help='ffmpeg executable to check')
    check_parser.set_defaults(func=check_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(LogConfig(
        log_level=args.log_level,
        log_format=args.log_format,
        log_file=args.log_file,
    ))

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print_colored("\n\nOperation cancelled by user", Colors.WARNING)
        return 130
    except (ValueError, ExportError, OSError) as e:
        print_colored(f"\nError: {e}", Colors.FAIL)
        return 1


if __name__ == '__main__':
    sys.exit(main())
