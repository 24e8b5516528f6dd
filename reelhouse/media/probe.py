from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from reelhouse.core.errors import EngineError, ProbeError
from reelhouse.core.logging import get_logger

from .engine import MediaEngine

PROBE_ARGS = ("-v", "error", "-show_format", "-show_streams", "-print_format", "json")


@dataclass(slots=True, frozen=True)
class Resolution:
    width: int
    height: int


@dataclass(slots=True, frozen=True)
class ProbeResult:
    duration_seconds: int
    width: int
    height: int

    @property
    def resolution(self) -> Resolution:
        return Resolution(width=self.width, height=self.height)


class MediaProbe:
    """Reads duration and resolution of a source file through ffprobe."""

    def __init__(self, engine: MediaEngine, *, timeout: float | None = None):
        self.engine = engine
        self.timeout = timeout
        self.logger = get_logger(component="media_probe")

    async def probe(self, path: Path) -> ProbeResult:
        raw = await self._run(path)
        duration = parse_duration_seconds(raw)
        resolution = parse_resolution(raw)
        self.logger.info(
            "media_probed",
            path=str(path),
            duration_seconds=duration,
            width=resolution.width,
            height=resolution.height,
        )
        return ProbeResult(duration_seconds=duration, width=resolution.width, height=resolution.height)

    async def probe_duration(self, path: Path) -> int:
        return parse_duration_seconds(await self._run(path))

    async def probe_resolution(self, path: Path) -> Resolution:
        return parse_resolution(await self._run(path))

    async def _run(self, path: Path) -> Dict[str, Any]:
        path = Path(path)
        if not path.is_file():
            raise ProbeError(f"source_not_found:{path}")
        try:
            result = await self.engine.ffprobe([*PROBE_ARGS, str(path)], timeout=self.timeout)
        except EngineError as exc:
            self.logger.warning("ffprobe_failed", path=str(path), error=str(exc))
            raise ProbeError(str(exc)) from exc
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise ProbeError(f"ffprobe_output_invalid:{exc}") from exc
        if not isinstance(payload, dict):
            raise ProbeError("ffprobe_output_invalid")
        return payload


def parse_duration_seconds(raw: Dict[str, Any]) -> int:
    """Return the whole-second duration reported by ffprobe.

    Args:
        raw: The raw ffprobe JSON.

    Returns:
        The duration, floored to whole seconds.

    Raises:
        ProbeError: If no positive duration is available.
    """
    format_info = raw.get("format") or {}
    value = format_info.get("duration")
    if value in (None, "N/A", ""):
        value = _first_stream_duration(raw.get("streams") or [])
    try:
        duration = float(value)
    except (TypeError, ValueError):
        raise ProbeError("duration_unavailable") from None
    if math.isnan(duration) or duration <= 0:
        raise ProbeError("duration_unavailable")
    return int(math.floor(duration))


def parse_resolution(raw: Dict[str, Any]) -> Resolution:
    """Return the resolution of the primary video stream.

    Args:
        raw: The raw ffprobe JSON.

    Returns:
        The selected stream's width and height.

    Raises:
        ProbeError: If the file has no decodable video stream.
    """
    streams = [
        stream
        for stream in raw.get("streams") or []
        if isinstance(stream, dict) and str(stream.get("codec_type", "")).lower() == "video"
    ]
    candidates = [stream for stream in streams if _int_or_none(stream.get("height"))]
    if not candidates:
        raise ProbeError("no_video_stream")
    selected = _select_video_stream(candidates)
    return Resolution(
        width=_int_or_none(selected.get("width")) or 0,
        height=_int_or_none(selected.get("height")) or 0,
    )


def _first_stream_duration(streams: List[Dict[str, Any]]) -> Optional[str]:
    for stream in streams:
        value = stream.get("duration") if isinstance(stream, dict) else None
        if value not in (None, "N/A", ""):
            return value
    return None


def _select_video_stream(streams: List[Dict[str, Any]]) -> Dict[str, Any]:
    # Cover art is reported as a video stream with attached_pic set.
    real = [stream for stream in streams if not _disposition_flag(stream, "attached_pic")]
    pool = real or streams
    default_streams = [stream for stream in pool if _disposition_flag(stream, "default")]
    if default_streams:
        return default_streams[0]

    def score(item: Dict[str, Any]) -> int:
        return (_int_or_none(item.get("width")) or 0) * (_int_or_none(item.get("height")) or 0)

    return max(pool, key=score)


def _disposition_flag(stream: Dict[str, Any], flag: str) -> bool:
    disposition = stream.get("disposition")
    if not isinstance(disposition, dict):
        return False
    return bool(disposition.get(flag))


def _int_or_none(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


__all__ = [
    "MediaProbe",
    "ProbeResult",
    "Resolution",
    "parse_duration_seconds",
    "parse_resolution",
]
