from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from reelhouse.core.db import Base


class ProcessingStatus(str, enum.Enum):
    processing = "processing"
    completed = "completed"
    failed = "failed"


ORIGINAL_QUALITY = "original"


def _utcnow() -> datetime:
    # Microsecond precision; SQLite's CURRENT_TIMESTAMP only has whole seconds.
    return datetime.now(timezone.utc)


class VideoAsset(Base):
    __tablename__ = "videos"
    __table_args__ = (
        Index("ix_videos_created_at", "created_at"),
        Index("ix_videos_processing_status", "processing_status"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    original_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    qualities: Mapped[dict] = mapped_column(JSON, nullable=False)
    thumbnail_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    source_width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processing_status: Mapped[ProcessingStatus] = mapped_column(
        Enum(ProcessingStatus), default=ProcessingStatus.processing, nullable=False
    )
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploader_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    uploader_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )

    def file_paths(self) -> list[str]:
        """Every on-disk path this record references."""
        paths = [self.original_path, self.thumbnail_path]
        paths.extend(path for path in (self.qualities or {}).values() if path)
        return paths


__all__ = ["VideoAsset", "ProcessingStatus", "ORIGINAL_QUALITY"]
