from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from redis import Redis
from rq import Queue
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reelhouse.media.engine import MediaEngine
from reelhouse.media.ladder import QUALITY_PROFILES

from .config import Settings
from .storage import MediaStorage


@dataclass(slots=True)
class JobContext:
    """Everything a transcode job needs, independent of the request that created it."""

    settings: Settings
    storage: MediaStorage
    session_factory: async_sessionmaker[AsyncSession]
    media_engine: MediaEngine


class BaseJobBackend(ABC):
    #: Whether jobs live only in this process (and are lost if it exits).
    in_process: bool = False

    @abstractmethod
    async def enqueue(self, video_id: str) -> None: ...


class ImmediateJobBackend(BaseJobBackend):
    in_process = True

    def __init__(self, context: JobContext):
        self.context = context

    async def enqueue(self, video_id: str) -> None:
        from reelhouse.workers.tasks import run_transcode_job

        await run_transcode_job(video_id, self.context)


class RQJobBackend(BaseJobBackend):
    def __init__(self, queue: Queue, *, job_timeout: float | None = None):
        self.queue = queue
        self.job_timeout = job_timeout

    async def enqueue(self, video_id: str) -> None:  # pragma: no cover - exercised via worker
        from reelhouse.workers.tasks import run_job

        timeout = int(self.job_timeout) if self.job_timeout else None
        await asyncio.to_thread(self.queue.enqueue, run_job, video_id, job_timeout=timeout)


def get_job_backend(settings: Settings, context: JobContext) -> BaseJobBackend:
    backend = settings.normalized_job_backend
    if backend == "immediate":
        return ImmediateJobBackend(context)
    if backend == "rq":  # pragma: no cover - requires redis
        connection = Redis.from_url(settings.redis_url)
        # Budget the whole ladder: every rung may use its full per-attempt timeout.
        job_timeout = settings.transcode_timeout_s * settings.transcode_max_attempts * len(QUALITY_PROFILES) + settings.probe_timeout_s
        return RQJobBackend(Queue(settings.job_queue_name, connection=connection), job_timeout=job_timeout)
    raise ValueError(f"Unsupported job backend: {settings.job_queue_backend}")


__all__ = ["BaseJobBackend", "ImmediateJobBackend", "JobContext", "RQJobBackend", "get_job_backend"]
