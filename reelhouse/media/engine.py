from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from reelhouse.core.config import Settings
from reelhouse.core.errors import EngineError, EngineTimeoutError
from reelhouse.core.logging import get_logger


@dataclass(slots=True)
class EngineResult:
    returncode: int
    stdout: str
    stderr: str


class MediaEngine(ABC):
    """Runs media tool invocations. Implementations must never block the event loop."""

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"

    @abstractmethod
    async def run(self, command: Sequence[str], *, timeout: float | None = None) -> EngineResult: ...

    async def ffprobe(self, args: Sequence[str], *, timeout: float | None = None) -> EngineResult:
        return await self.run([self.ffprobe_binary, *args], timeout=timeout)

    async def ffmpeg(self, args: Sequence[str], *, timeout: float | None = None) -> EngineResult:
        return await self.run([self.ffmpeg_binary, "-nostdin", "-hide_banner", *args], timeout=timeout)


class FFmpegEngine(MediaEngine):
    """Subprocess-backed engine for the ffmpeg/ffprobe binaries."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", ffprobe_binary: str = "ffprobe"):
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary
        self.logger = get_logger(component="media_engine")

    async def run(self, command: Sequence[str], *, timeout: float | None = None) -> EngineResult:
        command = [str(part) for part in command]
        self.logger.debug("engine_run", command=command, timeout=timeout)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise EngineError(command, None, f"binary not found: {command[0]}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            if process.returncode is None:
                process.kill()
            await process.wait()
            self.logger.warning("engine_timeout", command=command, timeout=timeout)
            raise EngineTimeoutError(command, timeout or 0.0) from exc
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        result = EngineResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if result.returncode != 0:
            raise EngineError(command, result.returncode, result.stderr)
        return result


def get_media_engine(settings: Settings) -> MediaEngine:
    return FFmpegEngine(ffmpeg_binary=settings.ffmpeg_binary, ffprobe_binary=settings.ffprobe_binary)


__all__ = ["EngineResult", "MediaEngine", "FFmpegEngine", "get_media_engine"]
