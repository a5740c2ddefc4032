"""
CLI entry point for waveframe.

Usage:
    waveframe render <audio_file> [options]
    waveframe preview <audio_file> [options]
    waveframe presets
    python -m waveframe render <audio_file> [options]
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from waveframe.config import (
    FRAME_HEIGHT,
    FRAME_RATE,
    FRAME_WIDTH,
    QUALITY_CHOICES,
    RenderConfig,
    load_config_file,
)
from waveframe.errors import WaveframeError
from waveframe.export import ExportPipeline, ExportStatus
from waveframe.io.display import PygameDisplay, RefreshScheduler
from waveframe.io.encoder import FFmpegEncoder
from waveframe.io.playback import AudioEngine
from waveframe.session import Session
from waveframe.visualizers.colors import PRESETS
from waveframe.visualizers.styles import RenderStyle


def _progress_bar(current: int, total: int, width: int = 35):
    """Print a progress bar to stdout."""
    pct = current / max(total, 1) * 100
    filled = int(width * current / max(total, 1))
    bar = "#" * filled + "-" * (width - filled)
    if sys.stdout.isatty():
        sys.stdout.write(f"\r[{bar}] {pct:5.1f}%  frame {current}/{total}")
        sys.stdout.flush()
        if current >= total:
            sys.stdout.write("\n")
    else:
        if current % max(1, total // 20) == 0 or current >= total:
            print(f"{pct:5.1f}%  frame {current}/{total}", flush=True)


def default_output_path(audio: Path) -> Path:
    return audio.with_name(f"{audio.stem}-waveform.webm")


def _resolve_settings(args) -> tuple[RenderConfig, str]:
    """Merge CLI flags with an optional JSON config file (file wins)."""
    values = {
        "style": args.style,
        "preset": args.preset,
        "transparent": args.transparent,
        "quality": args.quality,
    }
    if args.config is not None:
        file_values = load_config_file(args.config)
        aliases = {"colorPreset": "preset", "transparentBackground": "transparent"}
        values.update({
            aliases.get(k, k): v for k, v in file_values.items() if v is not None
        })

    quality = values["quality"]
    if quality not in QUALITY_CHOICES:
        raise ValueError(f"Unknown quality {quality!r} (choose from {', '.join(QUALITY_CHOICES)})")
    return RenderConfig.from_dict(values), quality


def _add_visual_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "audio",
        type=Path,
        help="Input audio file (wav, flac, ogg, mp3)",
    )
    parser.add_argument(
        "-s", "--style", type=str, default=RenderStyle.EQUALIZER.value,
        help="Render style: " + ", ".join(s.value for s in RenderStyle) + " (default: Equalizer)",
    )
    parser.add_argument(
        "-p", "--preset", type=str, default=PRESETS[0].name,
        help="Color preset: " + ", ".join(p.name for p in PRESETS) + f" (default: {PRESETS[0].name})",
    )
    parser.add_argument(
        "--transparent", action="store_true",
        help="Render on a transparent background",
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None,
        help="JSON file with style/preset/transparent/quality (overrides flags)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waveframe",
        description="Audio-synchronized waveform and spectrum visuals",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    render = subparsers.add_parser("render", help="Export a WebM video")
    _add_visual_args(render)
    render.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output WebM path (default: <audio>-waveform.webm)",
    )
    render.add_argument(
        "-q", "--quality", type=str, default="medium",
        choices=list(QUALITY_CHOICES),
        help="Encoding quality (default: medium)",
    )
    render.add_argument(
        "--realtime", action="store_true",
        help="Pace the export with the wall clock instead of stepping frames",
    )
    render.add_argument("--ffmpeg", type=str, default="ffmpeg", help="ffmpeg binary to use")

    preview = subparsers.add_parser("preview", help="Play audio with a live preview window")
    _add_visual_args(preview)
    preview.set_defaults(quality="medium")

    subparsers.add_parser("presets", help="List styles and color presets")
    return parser


def _cmd_presets(args) -> int:
    print("Styles:")
    for i, style in enumerate(RenderStyle, start=1):
        kind = "spectrum" if style.uses_spectrum else "waveform"
        print(f"  {i}. {style.value:<16} ({kind})")
    print("\nColor presets:")
    for preset in PRESETS:
        print(f"  {preset.name:<10} {' -> '.join(preset.stops)}")
    return 0


def _cmd_render(args, config: RenderConfig, quality: str) -> int:
    output = args.output or default_output_path(args.audio)

    session = Session(
        export_pipeline=ExportPipeline(
            encoder_factory=lambda: FFmpegEncoder(ffmpeg=args.ffmpeg, quality=quality),
            realtime=args.realtime,
        ),
        config=config,
    )

    print(f"Loading audio: {args.audio}")
    signal = session.load_file(args.audio)
    print(f"  Duration: {signal.duration:.1f}s")
    print(f"  Sample rate: {signal.sample_rate} Hz, {signal.n_channels} channel(s)")

    total_frames = max(1, int(signal.duration * FRAME_RATE))
    print(f"\nRendering {total_frames} frames at {FRAME_WIDTH}x{FRAME_HEIGHT} @ {FRAME_RATE}fps")
    print(
        f"  Style: {config.style.value}, Preset: {config.color_preset.name}, "
        f"Transparent: {config.transparent_background}, Quality: {quality}"
    )

    session.export_pipeline.progress_callback = (
        lambda fraction: _progress_bar(round(fraction * total_frames), total_frames)
    )

    t0 = time.time()
    job = session.export()
    elapsed = time.time() - t0
    session.close()

    if job.status != ExportStatus.COMPLETE:
        reason = getattr(job.error, "reason", "failed")
        print(f"\nExport failed ({reason}): {job.error}", file=sys.stderr)
        return 1

    job.artifact.save(output)
    print(f"\nDone! {len(job.artifact) / 1024 / 1024:.1f} MB")
    print(f"  Render+encode took {elapsed:.1f}s ({job.frames_rendered / max(elapsed, 0.01):.1f} fps)")
    print(f"  Output: {output}")
    return 0


def _cmd_preview(args, config: RenderConfig) -> int:
    session = Session(engine=AudioEngine(), config=config)
    display = PygameDisplay(FRAME_WIDTH, FRAME_HEIGHT, title=f"waveframe - {args.audio.name}")
    try:
        session.load_file(args.audio)
        print("Space: play/pause  Left/Right: seek 5s  1-8: style  C: preset  T: transparency  Esc: quit")
        display.open()
        session.run_preview(display, RefreshScheduler(60))
    finally:
        display.close()
        session.close()
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "presets":
        return _cmd_presets(args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        return 1

    try:
        config, quality = _resolve_settings(args)
        if args.command == "render":
            return _cmd_render(args, config, quality)
        return _cmd_preview(args, config)
    except (WaveframeError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
