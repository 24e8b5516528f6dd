"""Error taxonomy shared by the media pipeline, the services and the API layer."""

from __future__ import annotations

from typing import Sequence


class ReelhouseError(Exception):
    """Base class for every error raised deliberately by Reelhouse."""


class ValidationError(ReelhouseError):
    """Request data was rejected before any record was created."""


class UnsupportedMediaTypeError(ValidationError):
    def __init__(self, filename: str):
        super().__init__(f"unsupported_video_extension:{filename}")
        self.filename = filename


class UploadTooLargeError(ValidationError):
    def __init__(self, limit_bytes: int):
        super().__init__(f"upload_too_large:{limit_bytes}")
        self.limit_bytes = limit_bytes


class EngineError(ReelhouseError):
    """The media engine subprocess could not be run or exited non-zero."""

    def __init__(self, command: Sequence[str], returncode: int | None, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        binary = self.command[0] if self.command else "engine"
        detail = self.stderr.splitlines()[-1] if self.stderr else "no output"
        super().__init__(f"{binary} exited with {returncode}: {detail}")


class EngineTimeoutError(EngineError):
    def __init__(self, command: Sequence[str], timeout: float):
        self.timeout = timeout
        super().__init__(command, None, f"timed out after {timeout:g}s")


class MediaError(ReelhouseError):
    """Base for failures of a single media operation."""


class ProbeError(MediaError):
    pass


class ThumbnailError(MediaError):
    pass


class TranscodeError(MediaError):
    def __init__(self, quality: str, message: str, *, retryable: bool = True):
        super().__init__(f"{quality}: {message}")
        self.quality = quality
        self.retryable = retryable


class PersistenceError(ReelhouseError):
    pass


class VideoNotFoundError(ReelhouseError, LookupError):
    def __init__(self, video_id: str):
        super().__init__(video_id)
        self.video_id = video_id


class FileDeletionError(ReelhouseError):
    """One or more files could not be removed; missing files never land here."""

    def __init__(self, failures: Sequence[tuple[str, OSError]]):
        self.failures = list(failures)
        paths = ", ".join(path for path, _ in self.failures)
        super().__init__(f"failed to delete {len(self.failures)} file(s): {paths}")


__all__ = [
    "ReelhouseError",
    "ValidationError",
    "UnsupportedMediaTypeError",
    "UploadTooLargeError",
    "EngineError",
    "EngineTimeoutError",
    "MediaError",
    "ProbeError",
    "ThumbnailError",
    "TranscodeError",
    "PersistenceError",
    "VideoNotFoundError",
    "FileDeletionError",
]
