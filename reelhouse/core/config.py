from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="REELHOUSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for bearer token validation.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the Reelhouse API."""

    model_config = SettingsConfigDict(
        env_prefix="REELHOUSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Reelhouse API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./reelhouse.db",
        description="SQLAlchemy compatible DSN.",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for the durable transcode queue.",
    )

    media_root: Path = Field(default_factory=lambda: Path("media"), description="Root for originals, renditions and thumbnails.")
    media_url_prefix: str = Field(default="/media", description="Mount point for serving files under media_root.")

    max_upload_size_bytes: int = Field(default=500 * 1024 * 1024, description="Hard limit for video uploads.")
    upload_chunk_size_bytes: int = Field(default=1024 * 1024, description="Chunk size used when streaming uploads to disk.")
    allowed_video_extensions: tuple[str, ...] = Field(
        default=("mp4", "avi", "mkv", "mov", "wmv", "flv", "webm"),
        description="Accepted upload extensions (lowercase, without dot).",
    )

    ffmpeg_binary: str = Field(default="ffmpeg")
    ffprobe_binary: str = Field(default="ffprobe")
    probe_timeout_s: float = Field(default=30.0, description="Upper bound for a single ffprobe run.")
    thumbnail_timeout_s: float = Field(default=60.0, description="Upper bound for thumbnail extraction.")
    transcode_timeout_s: float = Field(default=3600.0, description="Upper bound for a single rendition encode.")
    transcode_concurrency: int = Field(default=1, ge=1, description="Renditions encoded in parallel per video.")
    transcode_max_attempts: int = Field(default=2, ge=1, description="Attempts per rendition before it is skipped.")
    fail_when_no_renditions: bool = Field(
        default=True,
        description="Mark a video failed when every planned rendition failed.",
    )

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    job_queue_backend: Literal["immediate", "inline", "rq"] = Field(
        default="immediate",
        description="Backend for transcode jobs (inline runs in-process after the response; rq schedules via Redis).",
    )
    job_queue_name: str = Field(default="reelhouse-transcode")
    job_retry_backoff_base: float = Field(default=2.0, description="Backoff multiplier between retries.")
    job_retry_initial_delay_s: float = Field(default=1.0, description="Initial delay before the first retry.")
    resume_interrupted_jobs: bool = Field(
        default=True,
        description="Re-schedule videos left in processing when the API starts (in-process backend only).",
    )

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def normalized_job_backend(self) -> str:
        if self.job_queue_backend == "inline":
            return "immediate"
        return self.job_queue_backend

    @property
    def allowed_extensions(self) -> frozenset[str]:
        override = os.getenv("REELHOUSE_ALLOWED_EXTENSIONS")
        if override:
            values = [item.strip().lower().lstrip(".") for item in override.split(",") if item.strip()]
            if values:
                return frozenset(values)
        return frozenset(ext.lower().lstrip(".") for ext in self.allowed_video_extensions)


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "REELHOUSE_ENV": "REELHOUSE_ENVIRONMENT",
        "REELHOUSE_DB_URL": "REELHOUSE_DATABASE_URL",
        "REELHOUSE_JOB_BACKEND": "REELHOUSE_JOB_QUEUE_BACKEND",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()
    secrets = Secrets.from_settings(settings)

    if settings.environment == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "get_settings"]
