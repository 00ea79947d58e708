"""Inline agent endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from pantry_ingest.api.dependencies import get_current_user_id, get_ingestion_service
from pantry_ingest.schemas.ingestion import AgentRunRequest, AgentRunResponse
from pantry_ingest.services.ingestion_service import IngestionService

router = APIRouter(prefix="/api/v1/agent", tags=["agent"])


@router.post("/run", response_model=AgentRunResponse)
def run_agent(
    request: AgentRunRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[IngestionService, Depends(get_ingestion_service)],
):
    """Run the ingestion agent and wait for its answer.

    Agent failures are reported in the body with ``success: false``.
    """
    if not request.text.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="text is required")
    return service.run_agent(user_id, request.text, request.metadata)
