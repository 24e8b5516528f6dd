from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from reelhouse.db.models import ProcessingStatus


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class VideoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str = ""
    original_path: str = Field(..., json_schema_extra={"example": "videos/1700000000000-123456789.mp4"})
    qualities: Dict[str, str] = Field(
        ...,
        description="Quality label to media-root relative path; always holds 'original'.",
        json_schema_extra={"example": {"original": "videos/1700000000000-123456789.mp4"}},
    )
    thumbnail_path: str
    duration_seconds: int
    source_width: Optional[int] = None
    source_height: Optional[int] = None
    processing_status: ProcessingStatus
    processing_error: Optional[str] = None
    uploader_id: Optional[str] = None
    uploader_name: Optional[str] = None
    views: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VideoListResponse(BaseModel):
    videos: List[VideoResponse]
    current_page: int
    total_pages: int
    total_videos: int


class VideoUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "VideoResponse",
    "VideoListResponse",
    "VideoUpdateRequest",
    "MessageResponse",
]
