"""Inventory API endpoints: parse, apply, list and audit trail."""

import base64
import binascii
import logging
import time
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from pantry_ingest.api.dependencies import (
    get_current_user_id,
    get_inventory_service,
    get_metrics_service,
)
from pantry_ingest.schemas.extraction import ExtractionResult, ParseRequest, ParseResponse
from pantry_ingest.schemas.inventory import (
    ApplyUpdatesRequest,
    ApplyUpdatesResponse,
    AuditLogResponse,
    InventoryItemResponse,
)
from pantry_ingest.schemas.metrics import InteractionEvent
from pantry_ingest.services.extraction import ExtractionService, get_extraction_service
from pantry_ingest.services.inventory_service import InventoryService
from pantry_ingest.services.metrics import MetricsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])

PARSER_AGENT_NAME = "grocery_parser"


@router.post("/parse", response_model=ParseResponse)
def parse_inventory_input(
    request: ParseRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    extraction: Annotated[ExtractionService, Depends(get_extraction_service)],
    metrics: Annotated[MetricsService, Depends(get_metrics_service)],
):
    """Parse grocery text or a base64 image into reviewable updates.

    Nothing is written to the inventory. A provider failure still returns
    200 with the fallback parser's items and a warning.
    """
    has_text = bool(request.text and request.text.strip())
    if has_text == bool(request.image):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide either text or image, not both",
        )

    started = time.perf_counter()
    if has_text:
        result: ExtractionResult = extraction.parse_text(request.text)
        event_input = request.text
    else:
        try:
            image_bytes = base64.b64decode(request.image, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Image must be valid base64"
            ) from None
        result = extraction.parse_image(image_bytes, request.media_type, request.image_type)
        event_input = f"[{request.image_type} image]"

    metrics.record_interaction(
        InteractionEvent(
            user_id=user_id,
            input=event_input,
            agent=PARSER_AGENT_NAME,
            success=result.error is None or result.used_fallback,
            used_fallback=result.used_fallback,
            latency_ms=(time.perf_counter() - started) * 1000,
            confidence=result.overall_confidence,
            error=result.error,
            details={"items": len(result.items), "provider": result.provider},
            timestamp=datetime.now(UTC),
        )
    )

    return ParseResponse(
        updates=result.items,
        confidence=result.overall_confidence,
        needs_review=result.needs_review,
        used_fallback=result.used_fallback,
        original_text=result.original_text,
        warnings=result.error,
        message=f"Parsed {len(result.items)} items from input",
    )


@router.post("/update", response_model=ApplyUpdatesResponse)
def apply_inventory_updates(
    request: ApplyUpdatesRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[InventoryService, Depends(get_inventory_service)],
):
    """Apply a batch of updates. Per-item failures are reported in the body."""
    if not request.updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="updates must be a non-empty array"
        )
    return service.apply_updates(user_id, request.updates, request.action_type)


@router.get("", response_model=list[InventoryItemResponse])
def list_inventory(
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[InventoryService, Depends(get_inventory_service)],
    category: str | None = None,
    location: str | None = None,
    search: str | None = None,
    low_stock_only: bool = False,
):
    """List the user's inventory, most recently updated first."""
    return service.list_items(
        user_id,
        category=category,
        location=location,
        search=search,
        low_stock_only=low_stock_only,
    )


@router.get("/low-stock", response_model=list[InventoryItemResponse])
def list_low_stock(
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[InventoryService, Depends(get_inventory_service)],
    include_out_of_stock: bool = True,
):
    """Items at or below their low-stock threshold."""
    return service.low_stock(user_id, include_out_of_stock=include_out_of_stock)


@router.get("/audit-logs", response_model=list[AuditLogResponse])
def list_audit_logs(
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[InventoryService, Depends(get_inventory_service)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
):
    """Most recent automated inventory changes."""
    return service.audit_logs(user_id, limit=limit)
