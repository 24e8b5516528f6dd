from __future__ import annotations

import asyncio

from reelhouse.core.config import get_settings
from reelhouse.core.db import create_engine, create_session_factory
from reelhouse.core.jobs import BaseJobBackend, JobContext
from reelhouse.core.logging import configure_logging, get_logger, level_from_name
from reelhouse.core.storage import get_storage
from reelhouse.media.engine import get_media_engine
from reelhouse.services.ingest_service import IngestService


async def run_transcode_job(video_id: str, context: JobContext) -> None:
    """Run the background half of ingestion; no client waits on it, so failures are only logged."""
    logger = get_logger(component="transcode_job", video_id=video_id)
    try:
        async with context.session_factory() as session:
            service = IngestService(context.settings, context.storage, session, context.media_engine)
            status = await service.transcode_video(video_id)
    except Exception:
        logger.exception("transcode_job_failed")
        return
    logger.info("transcode_job_done", status=status.value if status else None)


async def resume_interrupted_jobs(context: JobContext, backend: BaseJobBackend) -> list[asyncio.Task[None]]:
    """Re-schedule videos left in processing by a previous in-process run."""
    logger = get_logger(component="transcode_recovery")
    async with context.session_factory() as session:
        service = IngestService(context.settings, context.storage, session, context.media_engine)
        video_ids = await service.find_processing_ids()
    if video_ids:
        logger.info("resuming_interrupted_jobs", video_ids=video_ids)
    return [asyncio.create_task(backend.enqueue(video_id)) for video_id in video_ids]


def run_job(video_id: str) -> None:
    """Entry-point executed by the RQ worker."""

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    storage = get_storage(settings)
    engine = create_engine(settings)
    context = JobContext(
        settings=settings,
        storage=storage,
        session_factory=create_session_factory(engine),
        media_engine=get_media_engine(settings),
    )

    async def _runner() -> None:
        try:
            await run_transcode_job(video_id, context)
        finally:
            await engine.dispose()

    asyncio.run(_runner())


__all__ = ["run_job", "run_transcode_job", "resume_interrupted_jobs"]
