from __future__ import annotations

import random
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable

from .config import Settings
from .errors import FileDeletionError
from .logging import get_logger

VIDEOS_DIR = "videos"
THUMBNAILS_DIR = "thumbnails"
RENDITION_EXTENSION = ".mp4"


@dataclass(slots=True)
class StorageStat:
    size_bytes: int


class MediaStorage:
    """Filesystem layout for originals, renditions and thumbnails.

    Paths handed to callers (and persisted on records) are POSIX paths relative
    to ``base_path``, e.g. ``videos/1700000000000-123456789.mp4``.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path).resolve()
        self.logger = get_logger(component="media_storage")
        for directory in (VIDEOS_DIR, THUMBNAILS_DIR):
            (self.base_path / directory).mkdir(parents=True, exist_ok=True)

    def resolve(self, relative_path: str) -> Path:
        path = (self.base_path / relative_path).resolve()
        if path != self.base_path and self.base_path not in path.parents:
            raise ValueError(f"Path escapes media root: {relative_path}")
        return path

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).exists()

    def stat(self, relative_path: str) -> StorageStat:
        path = self.resolve(relative_path)
        if not path.exists():
            raise FileNotFoundError(relative_path)
        return StorageStat(size_bytes=path.stat().st_size)

    def allocate_upload_name(self, original_filename: str) -> str:
        """Return a fresh, collision-free relative path for an incoming upload."""
        suffix = PurePosixPath(original_filename).suffix.lower()
        unique = f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999):09d}"
        return f"{VIDEOS_DIR}/{unique}{suffix}"

    @staticmethod
    def rendition_path(original_path: str, quality: str) -> str:
        stem = PurePosixPath(original_path).stem
        return f"{VIDEOS_DIR}/{stem}_{quality}{RENDITION_EXTENSION}"

    @staticmethod
    def thumbnail_path(original_path: str) -> str:
        stem = PurePosixPath(original_path).stem
        return f"{THUMBNAILS_DIR}/{stem}.jpg"

    def delete_if_exists(self, relative_path: str) -> bool:
        """Remove a file; returns False when it was already gone."""
        path = self.resolve(relative_path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        self.logger.info("file_deleted", path=relative_path)
        return True

    def delete_all(self, relative_paths: Iterable[str | None]) -> list[str]:
        """Attempt to remove every path, then raise once for the ones that failed."""
        removed: list[str] = []
        failures: list[tuple[str, OSError]] = []
        seen: set[str] = set()
        for relative_path in relative_paths:
            if not relative_path or relative_path in seen:
                continue
            seen.add(relative_path)
            try:
                if self.delete_if_exists(relative_path):
                    removed.append(relative_path)
            except OSError as exc:
                self.logger.warning("file_delete_failed", path=relative_path, error=str(exc))
                failures.append((relative_path, exc))
        if failures:
            raise FileDeletionError(failures)
        return removed


def get_storage(settings: Settings) -> MediaStorage:
    return MediaStorage(base_path=Path(settings.media_root))


__all__ = [
    "MediaStorage",
    "StorageStat",
    "VIDEOS_DIR",
    "THUMBNAILS_DIR",
    "get_storage",
]
