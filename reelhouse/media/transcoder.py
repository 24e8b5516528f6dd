from __future__ import annotations

import asyncio
from pathlib import Path
from uuid import uuid4

from reelhouse.core.errors import EngineError, EngineTimeoutError, TranscodeError
from reelhouse.core.logging import get_logger

from .engine import MediaEngine
from .ladder import QualityProfile, get_profile

X264_PRESET = "fast"


class RenditionTranscoder:
    """Encodes one rendition of a source file per call."""

    def __init__(
        self,
        engine: MediaEngine,
        *,
        timeout: float | None = None,
        max_attempts: int = 1,
        retry_initial_delay_s: float = 1.0,
        retry_backoff_base: float = 2.0,
    ):
        self.engine = engine
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_initial_delay_s = retry_initial_delay_s
        self.retry_backoff_base = retry_backoff_base
        self.logger = get_logger(component="rendition_transcoder")

    async def transcode(self, source_path: Path, target_path: Path, quality: str) -> Path:
        profile = get_profile(quality)
        if profile is None:
            raise TranscodeError(quality, "invalid_quality", retryable=False)

        target_path = Path(target_path)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        # The target only ever holds a finished rendition; attempts write to a hidden sibling.
        partial_path = target_path.with_name(f".{uuid4().hex[:12]}-{target_path.name}")
        command = build_transcode_command(source_path, partial_path, profile)

        attempt = 1
        try:
            while True:
                try:
                    await self.engine.ffmpeg(command, timeout=self.timeout)
                    break
                except EngineError as exc:
                    partial_path.unlink(missing_ok=True)
                    retryable = not isinstance(exc, EngineTimeoutError)
                    self.logger.warning(
                        "transcode_attempt_failed",
                        quality=quality,
                        attempt=attempt,
                        max_attempts=self.max_attempts,
                        error=str(exc),
                    )
                    if not retryable or attempt >= self.max_attempts:
                        raise TranscodeError(quality, str(exc), retryable=retryable) from exc
                    await asyncio.sleep(self._backoff(attempt))
                    attempt += 1
        except BaseException:
            partial_path.unlink(missing_ok=True)
            raise

        if not partial_path.exists():
            raise TranscodeError(quality, f"rendition_not_written:{target_path}", retryable=False)
        partial_path.replace(target_path)
        self.logger.info("rendition_written", quality=quality, target=str(target_path), attempts=attempt)
        return target_path

    def _backoff(self, attempt: int) -> float:
        return self.retry_initial_delay_s * (self.retry_backoff_base ** (attempt - 1))


def build_transcode_command(source_path: Path, target_path: Path, profile: QualityProfile) -> list[str]:
    # Fit inside the profile box, keep the aspect ratio, force even dimensions for yuv420p.
    scale = (
        f"scale=w={profile.width}:h={profile.height}:force_original_aspect_ratio=decrease,"
        "scale=trunc(iw/2)*2:trunc(ih/2)*2"
    )
    return [
        "-v",
        "error",
        "-y",
        "-i",
        str(source_path),
        "-map",
        "0:v:0",
        "-map",
        "0:a:0?",
        "-vf",
        scale,
        "-c:v",
        "libx264",
        "-preset",
        X264_PRESET,
        "-b:v",
        profile.video_bitrate,
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-b:a",
        profile.audio_bitrate,
        "-movflags",
        "+faststart",
        str(target_path),
    ]


__all__ = ["RenditionTranscoder", "build_transcode_command", "X264_PRESET"]
