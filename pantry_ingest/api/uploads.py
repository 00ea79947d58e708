"""Upload API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from pantry_ingest.api.dependencies import get_current_user_id, get_upload_service
from pantry_ingest.schemas.upload import (
    QueueUploadResponse,
    UploadReservation,
    UploadReserveRequest,
    UploadResponse,
)
from pantry_ingest.services.errors import NotFoundError, UploadStateError, UploadValidationError
from pantry_ingest.services.uploads import UploadService
from pantry_ingest.tasks.uploads import process_upload_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/uploads", tags=["uploads"])


@router.post("", response_model=UploadReservation, status_code=status.HTTP_201_CREATED)
def reserve_upload(
    request: UploadReserveRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[UploadService, Depends(get_upload_service)],
):
    """Reserve an upload and get a signed URL to PUT the file to."""
    try:
        reservation = service.reserve_upload(
            user_id,
            filename=request.filename,
            content_type=request.content_type,
            size_bytes=request.size_bytes,
            source_type=request.source_type,
        )
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    upload = reservation.upload
    return UploadReservation(
        upload_id=upload.id,
        storage_path=upload.storage_path,
        bucket=upload.bucket,
        upload_url=reservation.upload_url,
        upload_url_expires_at=reservation.expires_at,
        status=upload.status,
    )


@router.get("/{upload_id}", response_model=UploadResponse)
def get_upload(
    upload_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[UploadService, Depends(get_upload_service)],
):
    """Get an upload's status."""
    try:
        return service.get_upload(user_id, upload_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.post(
    "/{upload_id}/queue",
    response_model=QueueUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def queue_upload(
    upload_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[UploadService, Depends(get_upload_service)],
):
    """Queue a written upload for processing.

    Only valid while the upload is awaiting its file.
    """
    try:
        job = service.queue_upload(user_id, upload_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except UploadStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    process_upload_job.delay(job.id)
    logger.info(f"Enqueued upload job {job.id} for upload {upload_id}")
    return QueueUploadResponse(job_id=job.id, status=job.status)
