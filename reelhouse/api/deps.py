from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reelhouse.core.auth import AuthContext, get_auth_context, require_admin
from reelhouse.core.config import Settings, get_settings
from reelhouse.core.jobs import BaseJobBackend
from reelhouse.core.storage import MediaStorage
from reelhouse.media.engine import MediaEngine
from reelhouse.services.ingest_service import IngestService


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> MediaStorage:
    storage: MediaStorage = request.app.state.storage
    return storage


def get_media_engine(request: Request) -> MediaEngine:
    engine: MediaEngine = request.app.state.media_engine
    return engine


def get_job_backend(request: Request) -> BaseJobBackend:
    backend: BaseJobBackend = request.app.state.job_backend
    return backend


def get_app_settings() -> Settings:
    return get_settings()


async def get_ingest_service(
    session: AsyncSession = Depends(get_session),
    storage: MediaStorage = Depends(get_storage),
    engine: MediaEngine = Depends(get_media_engine),
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[IngestService]:
    service = IngestService(settings, storage, session, engine)
    yield service


VideoService = Annotated[IngestService, Depends(get_ingest_service)]
AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]
AdminDependency = Annotated[AuthContext, Depends(require_admin)]
JobBackendDependency = Annotated[BaseJobBackend, Depends(get_job_backend)]


__all__ = [
    "get_session",
    "get_storage",
    "get_media_engine",
    "get_job_backend",
    "get_app_settings",
    "get_ingest_service",
    "VideoService",
    "AuthDependency",
    "AdminDependency",
    "JobBackendDependency",
]
