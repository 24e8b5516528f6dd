from __future__ import annotations

import asyncio
import enum
import math
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reelhouse.core.config import Settings
from reelhouse.core.errors import (
    FileDeletionError,
    PersistenceError,
    TranscodeError,
    UnsupportedMediaTypeError,
    UploadTooLargeError,
    ValidationError,
    VideoNotFoundError,
)
from reelhouse.core.logging import get_logger
from reelhouse.core.storage import MediaStorage
from reelhouse.db.models import ORIGINAL_QUALITY, ProcessingStatus, VideoAsset
from reelhouse.domain import MediaEngine, MediaProbe, RenditionTranscoder, ThumbnailExtractor, plan_qualities

ChunkReader = Callable[[int], Awaitable[bytes]]


@dataclass(slots=True)
class Uploader:
    user_id: Optional[str] = None
    name: Optional[str] = None


@dataclass(slots=True)
class MediaToolkit:
    probe: MediaProbe
    thumbnails: ThumbnailExtractor
    transcoder: RenditionTranscoder

    @classmethod
    def from_settings(cls, settings: Settings, engine: MediaEngine) -> "MediaToolkit":
        probe = MediaProbe(engine, timeout=settings.probe_timeout_s)
        return cls(
            probe=probe,
            thumbnails=ThumbnailExtractor(engine, probe, timeout=settings.thumbnail_timeout_s),
            transcoder=RenditionTranscoder(
                engine,
                timeout=settings.transcode_timeout_s,
                max_attempts=settings.transcode_max_attempts,
                retry_initial_delay_s=settings.job_retry_initial_delay_s,
                retry_backoff_base=settings.job_retry_backoff_base,
            ),
        )


class FinaliseOutcome(str, enum.Enum):
    written = "written"
    gone = "gone"
    superseded = "superseded"


@dataclass(slots=True)
class RenditionOutcome:
    quality: str
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.path is not None


class IngestService:
    def __init__(
        self,
        settings: Settings,
        storage: MediaStorage,
        session: AsyncSession,
        engine: MediaEngine,
        *,
        media: MediaToolkit | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self.session = session
        self.media = media or MediaToolkit.from_settings(settings, engine)
        self.logger = get_logger(component="ingest_service")

    # -- received ---------------------------------------------------------

    def check_extension(self, filename: str) -> str:
        extension = PurePosixPath(filename).suffix.lower().lstrip(".")
        if not extension or extension not in self.settings.allowed_extensions:
            raise UnsupportedMediaTypeError(filename)
        return extension

    async def receive_upload(self, filename: str, read: ChunkReader) -> str:
        """Stream an upload into a freshly allocated file and return its relative path."""
        self.check_extension(filename)
        relative_path = self.storage.allocate_upload_name(filename)
        target = self.storage.resolve(relative_path)
        limit = self.settings.max_upload_size_bytes
        written = 0
        try:
            with target.open("xb") as handle:
                while True:
                    chunk = await read(self.settings.upload_chunk_size_bytes)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > limit:
                        raise UploadTooLargeError(limit)
                    handle.write(chunk)
        except BaseException:
            self.storage.delete_if_exists(relative_path)
            raise
        if written == 0:
            self.storage.delete_if_exists(relative_path)
            raise ValidationError("video_file_empty")
        self.logger.info("upload_received", path=relative_path, filename=filename, size_bytes=written)
        return relative_path

    # -- probing -> recorded(processing) ----------------------------------

    async def ingest_upload(
        self,
        *,
        original_path: str,
        title: Optional[str],
        description: Optional[str] = None,
        uploader: Uploader | None = None,
    ) -> VideoAsset:
        """Run the synchronous half of ingestion and persist a processing record."""
        logger = self.logger.bind(original_path=original_path)
        clean_title = (title or "").strip()
        if not clean_title:
            self.storage.delete_if_exists(original_path)
            logger.info("upload_rejected", reason="title_required")
            raise ValidationError("title_required")

        source = self.storage.resolve(original_path)
        thumbnail_path = self.storage.thumbnail_path(original_path)
        probe_result, thumbnail_result = await asyncio.gather(
            self.media.probe.probe(source),
            self.media.thumbnails.extract(source, self.storage.resolve(thumbnail_path)),
            return_exceptions=True,
        )
        for outcome in (probe_result, thumbnail_result):
            if isinstance(outcome, BaseException):
                self._discard(original_path, thumbnail_path)
                logger.warning("upload_rejected", reason=type(outcome).__name__, error=str(outcome))
                raise outcome

        uploader = uploader or Uploader()
        video = VideoAsset(
            id=uuid4().hex,
            title=clean_title,
            description=description or "",
            original_path=original_path,
            qualities={ORIGINAL_QUALITY: original_path},
            thumbnail_path=thumbnail_path,
            duration_seconds=probe_result.duration_seconds,
            source_width=probe_result.width,
            source_height=probe_result.height,
            processing_status=ProcessingStatus.processing,
            uploader_id=uploader.user_id,
            uploader_name=uploader.name,
            views=0,
        )
        self.session.add(video)
        try:
            await self.session.commit()
            await self.session.refresh(video)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            self._discard(original_path, thumbnail_path)
            logger.error("video_create_failed", error=str(exc))
            raise PersistenceError(str(exc)) from exc

        logger.info("video_recorded", video_id=video.id, duration_seconds=video.duration_seconds, height=video.source_height)
        return video

    # -- transcoding -> completed | failed --------------------------------

    async def transcode_video(self, video_id: str) -> ProcessingStatus | None:
        """Produce the rendition ladder for a processing record and finalise its status."""
        logger = get_logger(component="transcode_job", video_id=video_id)
        video = await self.session.get(VideoAsset, video_id)
        if video is None:
            logger.warning("video_not_found")
            return None
        if video.processing_status != ProcessingStatus.processing:
            logger.info("transcode_skipped", status=video.processing_status.value)
            return video.processing_status

        original_path = video.original_path
        qualities: dict[str, str] = dict(video.qualities or {})
        qualities[ORIGINAL_QUALITY] = original_path
        ladder: tuple[str, ...] = ()
        outcomes: list[RenditionOutcome] = []
        fatal: BaseException | None = None

        try:
            source = self.storage.resolve(original_path)
            height = video.source_height
            if not height:
                height = (await self.media.probe.probe_resolution(source)).height
            ladder = plan_qualities(height)
            logger.info("transcode_started", ladder=list(ladder), source_height=height)
            outcomes, fatal = await self._transcode_ladder(source, original_path, ladder, logger)
        except Exception as exc:
            fatal = exc

        produced = [outcome for outcome in outcomes if outcome.succeeded]
        for outcome in produced:
            qualities[outcome.quality] = outcome.path  # type: ignore[assignment]

        error: str | None = None
        if fatal is not None:
            status = ProcessingStatus.failed
            error = f"{type(fatal).__name__}: {fatal}"
            logger.error("transcode_aborted", error=error)
        elif ladder and not produced and self.settings.fail_when_no_renditions:
            status = ProcessingStatus.failed
            error = "no_renditions_produced"
        else:
            status = ProcessingStatus.completed

        skipped = [outcome.quality for outcome in outcomes if not outcome.succeeded]
        finalised, current = await self._finalise(video_id, qualities=qualities, status=status, error=error)
        if finalised is FinaliseOutcome.gone:
            logger.warning("video_gone_before_finalise", discarded=[item.path for item in produced])
            self._discard(*(item.path for item in produced))
            return None
        if finalised is FinaliseOutcome.superseded and current is not None:
            # Another job already finalised this record; keep only the files it references.
            referenced = set((current.qualities or {}).values())
            orphans = [item.path for item in produced if item.path not in referenced]
            logger.warning("transcode_superseded", status=current.processing_status.value, discarded=orphans)
            self._discard(*orphans)
            return current.processing_status

        logger.info(
            "transcode_finished",
            status=status.value,
            produced=[outcome.quality for outcome in produced],
            skipped=skipped,
        )
        return status

    async def _transcode_ladder(
        self,
        source: Path,
        original_path: str,
        ladder: tuple[str, ...],
        logger: Any,
    ) -> tuple[list[RenditionOutcome], BaseException | None]:
        semaphore = asyncio.Semaphore(self.settings.transcode_concurrency)
        abort = asyncio.Event()

        async def _one(quality: str) -> RenditionOutcome:
            async with semaphore:
                if abort.is_set():
                    return RenditionOutcome(quality=quality, error="aborted")
                relative_path = self.storage.rendition_path(original_path, quality)
                try:
                    await self.media.transcoder.transcode(source, self.storage.resolve(relative_path), quality)
                except TranscodeError as exc:
                    logger.warning("rendition_skipped", quality=quality, error=str(exc))
                    return RenditionOutcome(quality=quality, error=str(exc))
                except Exception:
                    abort.set()
                    raise
                return RenditionOutcome(quality=quality, path=relative_path)

        results = await asyncio.gather(*(_one(quality) for quality in ladder), return_exceptions=True)

        outcomes: list[RenditionOutcome] = []
        fatal: BaseException | None = None
        for quality, result in zip(ladder, results):
            if isinstance(result, BaseException):
                fatal = fatal or result
                outcomes.append(RenditionOutcome(quality=quality, error=str(result)))
            else:
                outcomes.append(result)
        return outcomes, fatal

    async def _finalise(
        self,
        video_id: str,
        *,
        qualities: dict[str, str],
        status: ProcessingStatus,
        error: str | None,
    ) -> tuple[FinaliseOutcome, VideoAsset | None]:
        # Only a processing record may transition; the status never reverts.
        stmt = (
            update(VideoAsset)
            .where(VideoAsset.id == video_id, VideoAsset.processing_status == ProcessingStatus.processing)
            .values(qualities=qualities, processing_status=status, processing_error=error)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(str(exc)) from exc
        if result.rowcount:
            return FinaliseOutcome.written, None
        current = await self.session.get(VideoAsset, video_id, populate_existing=True)
        if current is None:
            return FinaliseOutcome.gone, None
        return FinaliseOutcome.superseded, current

    async def find_processing_ids(self) -> list[str]:
        stmt = select(VideoAsset.id).where(VideoAsset.processing_status == ProcessingStatus.processing)
        return list((await self.session.scalars(stmt)).all())

    # -- reads, updates, deletion -----------------------------------------

    async def list_videos(self, *, page: int = 1, limit: int = 12) -> dict[str, Any]:
        page = max(page, 1)
        limit = max(limit, 1)
        total = await self.session.scalar(select(func.count()).select_from(VideoAsset)) or 0
        stmt = (
            select(VideoAsset)
            .order_by(VideoAsset.created_at.desc(), VideoAsset.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        videos = list((await self.session.scalars(stmt)).all())
        return {
            "videos": videos,
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_videos": total,
        }

    async def get_video(self, video_id: str, *, count_view: bool = True) -> VideoAsset:
        if count_view:
            stmt = (
                update(VideoAsset)
                .where(VideoAsset.id == video_id)
                .values(views=VideoAsset.views + 1)
                .execution_options(synchronize_session=False)
            )
            await self._execute_and_commit(stmt)
        video = await self._require(video_id)
        await self.session.refresh(video)
        return video

    async def update_video(
        self,
        video_id: str,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> VideoAsset:
        video = await self._require(video_id)
        if title is not None:
            clean_title = title.strip()
            if not clean_title:
                raise ValidationError("title_empty")
            video.title = clean_title
        if description is not None:
            video.description = description
        try:
            await self.session.commit()
            await self.session.refresh(video)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(str(exc)) from exc
        return video

    async def delete_video(self, video_id: str) -> list[str]:
        """Remove every referenced file, then the record. Returns the files actually removed."""
        video = await self._require(video_id)
        try:
            removed = await asyncio.to_thread(self.storage.delete_all, video.file_paths())
        except FileDeletionError:
            self.logger.error("video_delete_incomplete", video_id=video_id)
            raise
        await self.session.delete(video)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(str(exc)) from exc
        self.logger.info("video_deleted", video_id=video_id, removed=removed)
        return removed

    async def _require(self, video_id: str) -> VideoAsset:
        video = await self.session.get(VideoAsset, video_id)
        if video is None:
            raise VideoNotFoundError(video_id)
        return video

    async def _execute_and_commit(self, stmt: Any) -> None:
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(str(exc)) from exc

    def _discard(self, *relative_paths: Optional[str]) -> None:
        try:
            self.storage.delete_all(relative_paths)
        except FileDeletionError as exc:
            self.logger.error("cleanup_failed", error=str(exc))


__all__ = [
    "FinaliseOutcome",
    "IngestService",
    "MediaToolkit",
    "RenditionOutcome",
    "Uploader",
]
