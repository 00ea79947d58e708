"""Upload schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from pantry_ingest.models.enums import UploadSourceType


class UploadReserveRequest(BaseModel):
    """Reserve storage for a file the client is about to upload."""

    filename: str = Field(..., max_length=1024)
    content_type: str = Field(..., min_length=1, max_length=255)
    size_bytes: int | None = Field(None, ge=0)
    source_type: UploadSourceType | None = None


class UploadReservation(BaseModel):
    """Where and until when the client may write the file."""

    upload_id: str
    storage_path: str
    bucket: str
    upload_url: str
    upload_url_expires_at: datetime
    status: str


class UploadResponse(BaseModel):
    """Upload status document."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    original_filename: str
    content_type: str
    size_bytes: int | None
    source_type: str
    storage_path: str
    bucket: str
    status: str
    last_error: str | None
    processing_job_id: str | None
    ingestion_job_id: str | None
    text_preview: str | None
    created_at: datetime
    updated_at: datetime


class QueueUploadResponse(BaseModel):
    """Response when an upload is queued for processing."""

    job_id: str
    status: str
