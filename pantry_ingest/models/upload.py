"""Upload and UploadJob models for the binary ingestion pipeline."""

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pantry_ingest.database import Base
from pantry_ingest.models.enums import UploadJobStatus, UploadSourceType, UploadStatus
from pantry_ingest.models.mixins import TimestampMixin


class Upload(Base, TimestampMixin):
    """A file the user reserved space for and (eventually) wrote to storage."""

    __tablename__ = "uploads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)  # Sanitized
    original_filename: Mapped[str] = mapped_column(String(1024), nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    source_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UploadSourceType.UNKNOWN.value
    )
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    bucket: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UploadStatus.AWAITING_UPLOAD.value,
        index=True,
    )  # awaiting_upload, queued, processing, completed, failed
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ingestion_job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    text_preview: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Upload(id={self.id}, user_id={self.user_id}, status={self.status})>"


class UploadJob(Base, TimestampMixin):
    """Blob-processing job, consumed by the upload worker."""

    __tablename__ = "upload_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    upload_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    bucket: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UploadJobStatus.QUEUED.value,
        index=True,
    )  # queued, received, awaiting_parser, completed, failed
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<UploadJob(id={self.id}, upload_id={self.upload_id}, status={self.status})>"
