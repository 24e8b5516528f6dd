from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .core.config import get_settings
from .core.errors import EngineError, MediaError
from .core.logging import configure_logging, level_from_name
from .domain import QUALITY_PROFILES, MediaProbe, RenditionTranscoder, ThumbnailExtractor, get_media_engine, plan_qualities

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level), console=True)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except MediaError as exc:
        console.print(f"[red]{type(exc).__name__}:[/] {exc}")
        sys.exit(3)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Reelhouse media developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    probe_parser = subparsers.add_parser("probe", help="Print duration and resolution of a media file")
    probe_parser.add_argument("--file", required=True, help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    thumb_parser = subparsers.add_parser("thumb", help="Extract the 320x240 preview frame")
    thumb_parser.add_argument("--file", required=True, help="Path to the source media file")
    thumb_parser.add_argument("--out", required=True, help="Target JPEG path")
    thumb_parser.set_defaults(func=_cmd_thumb)

    plan_parser = subparsers.add_parser("plan", help="Show the rendition ladder for a source height")
    plan_parser.add_argument("--height", required=True, type=int, help="Source height in pixels")
    plan_parser.set_defaults(func=_cmd_plan)

    transcode_parser = subparsers.add_parser("transcode", help="Encode a single rendition")
    transcode_parser.add_argument("--file", required=True, help="Path to the source media file")
    transcode_parser.add_argument(
        "--quality",
        required=True,
        choices=[profile.label for profile in QUALITY_PROFILES],
        help="Quality label to produce",
    )
    transcode_parser.add_argument("--out", required=True, help="Target MP4 path")
    transcode_parser.set_defaults(func=_cmd_transcode)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.set_defaults(func=_cmd_serve)
    return parser


def _cmd_probe(args: argparse.Namespace) -> None:
    media_path = _existing_file(args.file)
    settings = get_settings()
    probe = MediaProbe(get_media_engine(settings), timeout=settings.probe_timeout_s)
    result = asyncio.run(probe.probe(media_path))
    console.print_json(data={**asdict(result), "ladder": list(plan_qualities(result.height))})


def _cmd_thumb(args: argparse.Namespace) -> None:
    media_path = _existing_file(args.file)
    settings = get_settings()
    engine = get_media_engine(settings)
    extractor = ThumbnailExtractor(
        engine,
        MediaProbe(engine, timeout=settings.probe_timeout_s),
        timeout=settings.thumbnail_timeout_s,
    )
    target = asyncio.run(extractor.extract(media_path, Path(args.out).expanduser().resolve()))
    console.print(f"[green]Thumbnail written to {target}[/]")


def _cmd_plan(args: argparse.Namespace) -> None:
    ladder = set(plan_qualities(args.height))
    table = Table(title=f"Rendition ladder for {args.height}p source")
    for column in ("quality", "max size", "video", "audio", "planned"):
        table.add_column(column)
    for profile in QUALITY_PROFILES:
        table.add_row(
            profile.label,
            f"{profile.width}x{profile.height}",
            profile.video_bitrate,
            profile.audio_bitrate,
            "yes" if profile.label in ladder else "no",
        )
    console.print(table)


def _cmd_transcode(args: argparse.Namespace) -> None:
    media_path = _existing_file(args.file)
    settings = get_settings()
    transcoder = RenditionTranscoder(get_media_engine(settings), timeout=settings.transcode_timeout_s)
    target = asyncio.run(transcoder.transcode(media_path, Path(args.out).expanduser().resolve(), args.quality))
    console.print(f"[green]{args.quality} rendition written to {target}[/]")


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("reelhouse.main:create_app", factory=True, host=args.host, port=args.port)


def _existing_file(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.exists():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    engine = get_media_engine(settings)
    checks = {
        "ffmpeg": [engine.ffmpeg_binary, "-version"],
        "ffprobe": [engine.ffprobe_binary, "-version"],
    }
    results = {}
    for label, cmd in checks.items():
        try:
            asyncio.run(engine.run(cmd, timeout=10.0))
            results[label] = True
        except EngineError:
            results[label] = False

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg or set REELHOUSE_FFMPEG_BINARY.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
