"""Metrics schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class InteractionEvent(BaseModel):
    """One completed pipeline invocation."""

    user_id: str
    input: str = ""
    agent: str
    success: bool
    used_fallback: bool = False
    latency_ms: float = Field(0.0, ge=0)
    confidence: float | None = Field(None, ge=0, le=1)
    error: str | None = None
    details: dict | None = None
    timestamp: datetime


class MetricsSnapshotResponse(BaseModel):
    """Rolling counters for a key ("global" or YYYY-MM-DD)."""

    model_config = ConfigDict(from_attributes=True)

    key: str
    total: int
    success_count: int
    fallback_count: int
    latency_sum: float
    confidence_sum: float
    latency_buckets: dict[str, int]
    confidence_buckets: dict[str, int]


class RecomputeResponse(BaseModel):
    events: int
    snapshots: int
