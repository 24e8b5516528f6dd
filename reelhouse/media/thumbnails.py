from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Tuple

import cv2  # type: ignore

from reelhouse.core.errors import EngineError, ProbeError, ThumbnailError
from reelhouse.core.logging import get_logger

from .engine import MediaEngine
from .probe import MediaProbe

THUMB_WIDTH = 320
THUMB_HEIGHT = 240
THUMB_POSITION_RATIO = 0.10


class ThumbnailExtractor:
    """Captures a single preview frame at a fixed share of the playback position."""

    def __init__(self, engine: MediaEngine, probe: MediaProbe, *, timeout: float | None = None, verify: bool = True):
        self.engine = engine
        self.probe = probe
        self.timeout = timeout
        self.verify = verify
        self.logger = get_logger(component="thumbnail_extractor")

    async def extract(self, path: Path, target_path: Path, *, duration_seconds: Optional[float] = None) -> Path:
        if duration_seconds is None:
            try:
                duration_seconds = await self.probe.probe_duration(path)
            except ProbeError as exc:
                raise ThumbnailError(f"duration_unavailable:{exc}") from exc

        timestamp = thumbnail_timestamp(duration_seconds)
        target_path = Path(target_path)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        command = build_thumbnail_command(path, target_path, timestamp)

        try:
            await self.engine.ffmpeg(command, timeout=self.timeout)
        except EngineError as exc:
            target_path.unlink(missing_ok=True)
            self.logger.warning("thumbnail_failed", path=str(path), error=str(exc))
            raise ThumbnailError(str(exc)) from exc

        if not target_path.exists():
            raise ThumbnailError(f"thumbnail_not_written:{target_path}")
        if self.verify:
            try:
                width, height = await asyncio.to_thread(_image_dimensions, target_path)
            except RuntimeError as exc:
                target_path.unlink(missing_ok=True)
                raise ThumbnailError(str(exc)) from exc
            self.logger.info("thumbnail_written", target=str(target_path), width=width, height=height, timestamp_s=timestamp)
        return target_path


def thumbnail_timestamp(duration_seconds: float) -> float:
    return round(max(duration_seconds, 0.0) * THUMB_POSITION_RATIO, 3)


def build_thumbnail_command(video_path: Path, output_path: Path, timestamp: float) -> list[str]:
    return [
        "-v",
        "error",
        "-ss",
        f"{max(timestamp, 0.0):.3f}",
        "-i",
        str(video_path),
        "-frames:v",
        "1",
        "-vf",
        f"scale={THUMB_WIDTH}:{THUMB_HEIGHT}",
        "-q:v",
        "2",
        "-y",
        str(output_path),
    ]


def _image_dimensions(image_path: Path) -> Tuple[int, int]:
    image = cv2.imread(str(image_path))
    if image is None:
        raise RuntimeError(f"Failed to read generated thumbnail at {image_path}")
    height, width = image.shape[:2]
    return width, height


__all__ = [
    "ThumbnailExtractor",
    "THUMB_WIDTH",
    "THUMB_HEIGHT",
    "build_thumbnail_command",
    "thumbnail_timestamp",
]
