"""Interaction event log and the metrics snapshots folded from it."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pantry_ingest.database import Base
from pantry_ingest.models.mixins import TimestampMixin


class AgentInteraction(Base):
    """Append-only record of one completed pipeline invocation."""

    __tablename__ = "agent_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    input: Mapped[str] = mapped_column(Text, nullable=False, default="")
    agent: Mapped[str] = mapped_column(String(50), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    used_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    latency_ms: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class AgentMetricsSnapshot(Base, TimestampMixin):
    """Rolling counters keyed by "global" or a UTC date (YYYY-MM-DD)."""

    __tablename__ = "agent_metrics"

    key: Mapped[str] = mapped_column(String(20), primary_key=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fallback_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latency_sum: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence_sum: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    latency_buckets: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    confidence_buckets: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
