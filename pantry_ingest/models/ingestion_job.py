"""Ingestion job and tool invocation models for agent-driven processing."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pantry_ingest.database import Base
from pantry_ingest.models.enums import IngestionJobStatus, ToolInvocationStatus
from pantry_ingest.models.mixins import TimestampMixin


class IngestionJob(Base, TimestampMixin):
    """Durable record whose status is the contract for async ingestion."""

    __tablename__ = "ingestion_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    upload_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    job_metadata: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=IngestionJobStatus.PENDING.value,
        index=True,
    )  # pending, completed, failed
    agent_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<IngestionJob(id={self.id}, user_id={self.user_id}, status={self.status})>"


class ToolInvocation(Base, TimestampMixin):
    """One tool call and its result, updated in place when the call finishes."""

    __tablename__ = "tool_invocations"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)  # Controller's call id
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # Call order within the run
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ToolInvocationStatus.IN_PROGRESS.value
    )
    arguments: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    output: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<ToolInvocation(id={self.id}, name={self.name}, status={self.status})>"
