"""Ingestion job API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from pantry_ingest.api.dependencies import get_current_user_id, get_ingestion_service
from pantry_ingest.schemas.ingestion import (
    IngestionJobCreate,
    IngestionJobCreateResponse,
    IngestionJobResponse,
    ToolInvocationResponse,
)
from pantry_ingest.services.errors import NotFoundError, UploadStateError
from pantry_ingest.services.ingestion_service import IngestionService, job_path
from pantry_ingest.tasks.ingestion import run_ingestion_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ingestion", tags=["ingestion"])


@router.post(
    "/jobs", response_model=IngestionJobCreateResponse, status_code=status.HTTP_201_CREATED
)
def create_ingestion_job(
    request: IngestionJobCreate,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[IngestionService, Depends(get_ingestion_service)],
):
    """Create an ingestion job from text or an already processed upload.

    The job runs in the background; poll ``job_path`` or subscribe to the
    jobs WebSocket for the outcome.
    """
    has_text = bool(request.text and request.text.strip())
    if has_text == bool(request.upload_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide either text or upload_id, not both",
        )

    try:
        job = service.create_job(
            user_id,
            text=request.text if has_text else None,
            upload_id=request.upload_id,
            metadata=request.metadata,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except UploadStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    run_ingestion_job.delay(job.id)
    return IngestionJobCreateResponse(job_id=job.id, status=job.status, job_path=job_path(job.id))


@router.get("/jobs/{job_id}", response_model=IngestionJobResponse)
def get_ingestion_job(
    job_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[IngestionService, Depends(get_ingestion_service)],
):
    """Get a job's status and the tool calls its run made."""
    try:
        job = service.get_job(user_id, job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return IngestionJobResponse(
        id=job.id,
        user_id=job.user_id,
        text=job.text,
        upload_id=job.upload_id,
        metadata=job.job_metadata or {},
        status=job.status,
        agent_response=job.agent_response,
        result_summary=job.result_summary,
        last_error=job.last_error,
        completed_at=job.completed_at,
        created_at=job.created_at,
        updated_at=job.updated_at,
        tool_invocations=[
            ToolInvocationResponse.model_validate(record)
            for record in service.tool_invocations(job.id)
        ],
    )
