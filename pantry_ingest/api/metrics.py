"""Agent metrics endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from pantry_ingest.api.dependencies import get_current_user_id, get_metrics_service
from pantry_ingest.schemas.metrics import MetricsSnapshotResponse, RecomputeResponse
from pantry_ingest.services.metrics import GLOBAL_KEY, MetricsService, MetricsTotals

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


def _snapshot_response(service: MetricsService, key: str) -> MetricsSnapshotResponse:
    snapshot = service.get_snapshot(key)
    if snapshot is None:
        totals = MetricsTotals()
        return MetricsSnapshotResponse(
            key=key,
            total=totals.total,
            success_count=totals.success_count,
            fallback_count=totals.fallback_count,
            latency_sum=totals.latency_sum,
            confidence_sum=totals.confidence_sum,
            latency_buckets=totals.latency_buckets,
            confidence_buckets=totals.confidence_buckets,
        )
    return MetricsSnapshotResponse.model_validate(snapshot)


@router.get("/global", response_model=MetricsSnapshotResponse)
def get_global_metrics(
    _user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[MetricsService, Depends(get_metrics_service)],
):
    """Counters across all interactions."""
    return _snapshot_response(service, GLOBAL_KEY)


@router.get("/daily/{day}", response_model=MetricsSnapshotResponse)
def get_daily_metrics(
    day: str,
    _user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[MetricsService, Depends(get_metrics_service)],
):
    """Counters for one UTC day (YYYY-MM-DD)."""
    try:
        key = date.fromisoformat(day).isoformat()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="day must be YYYY-MM-DD"
        ) from None
    return _snapshot_response(service, key)


@router.post("/recompute", response_model=RecomputeResponse)
def recompute_metrics(
    _user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[MetricsService, Depends(get_metrics_service)],
):
    """Rebuild all snapshots from the interaction log."""
    events, snapshots = service.recompute_snapshots()
    return RecomputeResponse(events=events, snapshots=snapshots)
