"""Ingestion job and agent schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IngestionJobCreate(BaseModel):
    """Request to ingest text (or an already uploaded file) asynchronously."""

    text: str | None = Field(None, max_length=50000)
    upload_id: str | None = Field(None, max_length=64)
    metadata: dict[str, Any] | None = None


class IngestionJobCreateResponse(BaseModel):
    """Response when creating an ingestion job."""

    job_id: str
    status: str
    job_path: str


class ToolInvocationResponse(BaseModel):
    """Recorded tool call."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    sequence: int
    status: str
    arguments: dict | None
    output: dict | None
    created_at: datetime


class IngestionJobResponse(BaseModel):
    """Ingestion job status document."""

    id: str
    user_id: str
    text: str
    upload_id: str | None
    metadata: dict
    status: str
    agent_response: str | None
    result_summary: dict | None
    last_error: str | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    tool_invocations: list[ToolInvocationResponse] = []


class AgentRunRequest(BaseModel):
    """Run the ingestion agent inline."""

    text: str = Field(..., max_length=50000)
    metadata: dict[str, Any] | None = None


class AgentRunResponse(BaseModel):
    """Inline agent run result."""

    success: bool
    response: str | None = None
    error: str | None = None
