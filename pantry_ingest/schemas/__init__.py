"""Pydantic schemas for API requests and responses."""

from pantry_ingest.schemas.extraction import ExtractedItem, ExtractionResult, ParseRequest, ParseResponse
from pantry_ingest.schemas.ingestion import (
    AgentRunRequest,
    AgentRunResponse,
    IngestionJobCreate,
    IngestionJobCreateResponse,
    IngestionJobResponse,
)
from pantry_ingest.schemas.inventory import (
    ApplyOutcome,
    ApplySummary,
    ApplyUpdatesRequest,
    ApplyUpdatesResponse,
    UpdateRecord,
)
from pantry_ingest.schemas.upload import (
    QueueUploadResponse,
    UploadReservation,
    UploadReserveRequest,
    UploadResponse,
)

__all__ = [
    "ExtractedItem",
    "ExtractionResult",
    "ParseRequest",
    "ParseResponse",
    "UpdateRecord",
    "ApplyOutcome",
    "ApplySummary",
    "ApplyUpdatesRequest",
    "ApplyUpdatesResponse",
    "UploadReserveRequest",
    "UploadReservation",
    "UploadResponse",
    "QueueUploadResponse",
    "IngestionJobCreate",
    "IngestionJobCreateResponse",
    "IngestionJobResponse",
    "AgentRunRequest",
    "AgentRunResponse",
]
