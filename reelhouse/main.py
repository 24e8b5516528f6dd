from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from reelhouse.api.v1 import get_api_router
from reelhouse.api.v1.routes_videos import declared_upload_too_large
from reelhouse.core.config import get_settings
from reelhouse.core.db import create_engine, create_session_factory
from reelhouse.core.errors import PersistenceError
from reelhouse.core.jobs import JobContext, get_job_backend
from reelhouse.core.logging import configure_logging, get_logger, level_from_name
from reelhouse.core.storage import get_storage
from reelhouse.media.engine import MediaEngine, get_media_engine
from reelhouse.workers.tasks import resume_interrupted_jobs


UPLOAD_PATH = "/v1/videos"


def create_app(media_engine: MediaEngine | None = None) -> FastAPI:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    logger = get_logger(component="app")
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    media_engine = media_engine or get_media_engine(settings)
    job_context = JobContext(
        settings=settings,
        storage=storage,
        session_factory=session_factory,
        media_engine=media_engine,
    )
    job_backend = get_job_backend(settings, job_context)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.media_engine = media_engine
        app.state.job_backend = job_backend
        app.state.resumed_jobs = []
        if settings.resume_interrupted_jobs and job_backend.in_process:
            app.state.resumed_jobs = await resume_interrupted_jobs(job_context, job_backend)
        try:
            yield
        finally:
            pending = [task for task in app.state.resumed_jobs if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                # Cancelled videos stay in processing and are picked up on the next start.
                await asyncio.gather(*pending, return_exceptions=True)
                logger.info("resumed_jobs_cancelled", count=len(pending))
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    @app.middleware("http")
    async def reject_oversized_uploads(request: Request, call_next):
        if request.method == "POST" and request.url.path.rstrip("/") == UPLOAD_PATH:
            if declared_upload_too_large(request, get_settings()):
                logger.info("upload_rejected", reason="content_length", content_length=request.headers.get("content-length"))
                return JSONResponse(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, content={"detail": "upload_too_large"})
        return await call_next(request)

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("persistence_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "persistence_failed"})

    app.include_router(get_api_router())
    app.mount(settings.media_url_prefix, StaticFiles(directory=storage.base_path), name="media")
    return app


__all__ = ["create_app"]
