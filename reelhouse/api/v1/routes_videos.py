from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, Query, Request, UploadFile, status

from reelhouse.api import deps
from reelhouse.core.config import Settings
from reelhouse.core.errors import (
    FileDeletionError,
    MediaError,
    PersistenceError,
    UploadTooLargeError,
    ValidationError,
    VideoNotFoundError,
)
from reelhouse.services.ingest_service import Uploader

from . import schemas


router = APIRouter(prefix="/videos", tags=["videos"])

# Room for the multipart envelope and the text fields around the file part.
UPLOAD_FORM_OVERHEAD_BYTES = 1024 * 1024


def declared_upload_too_large(request: Request, settings: Settings) -> bool:
    """Check the declared Content-Length before the multipart body is spooled to disk."""
    content_length = request.headers.get("content-length")
    if not content_length:
        return False
    try:
        declared = int(content_length)
    except ValueError:
        # Streaming validation still applies.
        return False
    return declared > settings.max_upload_size_bytes + UPLOAD_FORM_OVERHEAD_BYTES


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="video_not_found")


@router.get("", response_model=schemas.VideoListResponse)
async def list_videos(
    service: deps.VideoService,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
) -> schemas.VideoListResponse:
    result = await service.list_videos(page=page, limit=limit)
    return schemas.VideoListResponse(
        videos=[schemas.VideoResponse.model_validate(video) for video in result["videos"]],
        current_page=result["current_page"],
        total_pages=result["total_pages"],
        total_videos=result["total_videos"],
    )


@router.get("/{video_id}", response_model=schemas.VideoResponse)
async def get_video(video_id: str, service: deps.VideoService) -> schemas.VideoResponse:
    try:
        video = await service.get_video(video_id)
    except VideoNotFoundError:
        raise _not_found()
    return schemas.VideoResponse.model_validate(video)


@router.post("", response_model=schemas.VideoResponse, status_code=status.HTTP_201_CREATED)
async def upload_video(
    background_tasks: BackgroundTasks,
    service: deps.VideoService,
    context: deps.AdminDependency,
    jobs: deps.JobBackendDependency,
    video: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
) -> schemas.VideoResponse:
    """Store the upload, probe it and create the record; renditions are produced after the response."""
    if video is None or not video.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="video_file_required")

    try:
        original_path = await service.receive_upload(video.filename, video.read)
    except UploadTooLargeError as exc:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="upload_too_large") from exc
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    finally:
        await video.close()

    try:
        asset = await service.ingest_upload(
            original_path=original_path,
            title=title,
            description=description,
            uploader=Uploader(user_id=context.user_id, name=context.name),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MediaError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="persistence_failed") from exc

    response = schemas.VideoResponse.model_validate(asset)
    background_tasks.add_task(jobs.enqueue, asset.id)
    return response


@router.patch("/{video_id}", response_model=schemas.VideoResponse)
@router.put("/{video_id}", response_model=schemas.VideoResponse)
async def update_video(
    video_id: str,
    payload: schemas.VideoUpdateRequest,
    service: deps.VideoService,
    context: deps.AdminDependency,
) -> schemas.VideoResponse:
    try:
        video = await service.update_video(video_id, title=payload.title, description=payload.description)
    except VideoNotFoundError:
        raise _not_found()
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return schemas.VideoResponse.model_validate(video)


@router.delete("/{video_id}", response_model=schemas.MessageResponse)
async def delete_video(
    video_id: str,
    service: deps.VideoService,
    context: deps.AdminDependency,
) -> schemas.MessageResponse:
    try:
        await service.delete_video(video_id)
    except VideoNotFoundError:
        raise _not_found()
    except FileDeletionError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"file_deletion_failed:{','.join(path for path, _ in exc.failures)}",
        ) from exc
    return schemas.MessageResponse(message="Video deleted successfully")


__all__ = ["router", "declared_upload_too_large", "UPLOAD_FORM_OVERHEAD_BYTES"]
