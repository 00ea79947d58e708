"""Upload pipeline: reservation, queueing and blob processing.

State machine (``Upload.status``)::

    awaiting_upload -> queued -> processing -> completed | failed

Reservation owns ``awaiting_upload``, ``queue_upload`` owns the move to
``queued`` and the blob processor owns ``processing``. Only the ingestion
runner writes the terminal states.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO

from pypdf import PdfReader
from sqlalchemy.orm import Session

from pantry_ingest.config import Settings, get_settings
from pantry_ingest.models.enums import UploadJobStatus, UploadSourceType, UploadStatus
from pantry_ingest.models.ingestion_job import IngestionJob
from pantry_ingest.models.upload import Upload, UploadJob
from pantry_ingest.services.errors import (
    ExtractionError,
    NotFoundError,
    UploadStateError,
    UploadValidationError,
)
from pantry_ingest.services.extraction import ExtractionService
from pantry_ingest.services.ingestion_service import IngestionService
from pantry_ingest.services.realtime import JobEventType, publish_job_event
from pantry_ingest.services.storage import ObjectStore, generate_signed_upload_url

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 120
TEXT_PREVIEW_LENGTH = 280


def sanitize_filename(filename: str | None) -> str:
    """Make a client filename safe to use as the last storage path segment.

    Path separators are removed, anything outside ``[A-Za-z0-9_.-]`` becomes
    ``_`` and the result is capped at 120 characters. An empty result gets
    a generated ``upload-<uuid>`` name.
    """
    if not filename:
        return f"upload-{uuid.uuid4()}"
    trimmed = re.sub(r"[/\\]", "", filename.strip())
    if not trimmed:
        return f"upload-{uuid.uuid4()}"
    return re.sub(r"[^\w.-]", "_", trimmed, flags=re.ASCII)[:MAX_FILENAME_LENGTH]


def build_storage_path(user_id: str, upload_id: str, filename: str) -> str:
    return f"uploads/{user_id}/{upload_id}/{filename}"


def infer_source_type(content_type: str) -> UploadSourceType:
    """Guess what kind of content a MIME type carries."""
    base = content_type.split(";")[0].strip().lower()
    if base.startswith("text/"):
        return UploadSourceType.TEXT
    if base == "application/pdf":
        return UploadSourceType.PDF
    if base.startswith("image/"):
        return UploadSourceType.IMAGE_RECEIPT
    return UploadSourceType.UNKNOWN


def extract_pdf_text(data: bytes) -> str:
    """Concatenate the text layer of every page."""
    reader = PdfReader(BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n".join(page.strip() for page in pages if page.strip())


@dataclass
class UploadReservationResult:
    upload: Upload
    upload_url: str
    expires_at: datetime


class UploadService:
    """Service for the upload state machine."""

    def __init__(
        self,
        db: Session,
        store: ObjectStore,
        settings: Settings | None = None,
    ):
        self.db = db
        self.store = store
        self.settings = settings or get_settings()

    def _publish(self, upload: Upload) -> None:
        publish_job_event(
            upload.user_id,
            JobEventType.UPLOAD_UPDATED,
            {
                "upload_id": upload.id,
                "status": upload.status,
                "ingestion_job_id": upload.ingestion_job_id,
                "last_error": upload.last_error,
            },
        )

    def reserve_upload(
        self,
        user_id: str,
        filename: str,
        content_type: str,
        size_bytes: int | None = None,
        source_type: UploadSourceType | None = None,
    ) -> UploadReservationResult:
        """Create an upload record and a signed URL to write the file to.

        Raises:
            UploadValidationError: If the content type is missing or the
                declared size is over the limit.
        """
        content_type = (content_type or "").strip()
        if not content_type:
            raise UploadValidationError("content_type is required")
        if size_bytes is not None and size_bytes > self.settings.max_upload_bytes:
            raise UploadValidationError(
                f"File too large: {size_bytes} bytes (max {self.settings.max_upload_bytes})"
            )

        upload_id = uuid.uuid4().hex
        safe_name = sanitize_filename(filename)
        storage_path = build_storage_path(user_id, upload_id, safe_name)
        bucket = self.settings.uploads_bucket
        upload_url, expires_at = generate_signed_upload_url(
            bucket, storage_path, content_type, self.settings
        )

        upload = Upload(
            id=upload_id,
            user_id=user_id,
            filename=safe_name,
            original_filename=filename or safe_name,
            content_type=content_type,
            size_bytes=size_bytes,
            source_type=(source_type or infer_source_type(content_type)).value,
            storage_path=storage_path,
            bucket=bucket,
            status=UploadStatus.AWAITING_UPLOAD.value,
        )
        self.db.add(upload)
        self.db.commit()
        self.db.refresh(upload)

        logger.info(f"Reserved upload {upload_id} for user {user_id} at {storage_path}")
        return UploadReservationResult(upload=upload, upload_url=upload_url, expires_at=expires_at)

    def get_upload(self, user_id: str, upload_id: str) -> Upload:
        """Get a user's upload.

        Raises:
            NotFoundError: If it does not exist or belongs to someone else.
        """
        upload = (
            self.db.query(Upload)
            .filter(Upload.id == upload_id, Upload.user_id == user_id)
            .first()
        )
        if not upload:
            raise NotFoundError(f"Upload {upload_id} not found")
        return upload

    def queue_upload(self, user_id: str, upload_id: str) -> UploadJob:
        """Create the processing job for a written upload.

        The caller enqueues the blob processor with the returned job id.

        Raises:
            NotFoundError: If the upload does not exist.
            UploadStateError: If the upload is not awaiting its file, or the
                file has not been written yet.
        """
        upload = self.get_upload(user_id, upload_id)
        if upload.status != UploadStatus.AWAITING_UPLOAD.value:
            raise UploadStateError(
                f"Upload {upload_id} cannot be queued from status '{upload.status}'"
            )
        if not self.store.exists(upload.bucket, upload.storage_path):
            raise UploadStateError(f"Upload {upload_id} has no file yet; PUT it to the upload URL first")

        job = UploadJob(
            id=uuid.uuid4().hex,
            upload_id=upload.id,
            user_id=upload.user_id,
            storage_path=upload.storage_path,
            bucket=upload.bucket,
            content_type=upload.content_type,
            source_type=upload.source_type,
            status=UploadJobStatus.QUEUED.value,
            attempts=0,
        )
        self.db.add(job)
        upload.status = UploadStatus.QUEUED.value
        upload.processing_job_id = job.id
        upload.last_error = None
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Queued upload {upload_id} as job {job.id}")
        self._publish(upload)
        return job

    def extract_text(self, job: UploadJob, extraction: ExtractionService) -> str:
        """Read the blob for a job and turn it into plain text.

        Raises:
            ExtractionError: If the content cannot be read.
        """
        try:
            data = self.store.read(job.bucket, job.storage_path)
        except NotFoundError as e:
            raise ExtractionError(str(e)) from e

        source_type = UploadSourceType(job.source_type)
        if source_type == UploadSourceType.TEXT:
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ExtractionError(f"Text upload is not valid UTF-8: {e}") from e
        elif source_type == UploadSourceType.PDF:
            try:
                text = extract_pdf_text(data)
            except Exception as e:
                raise ExtractionError(f"Failed to read PDF: {e}") from e
        elif source_type.is_image:
            text = extraction.transcribe_image(data, job.content_type, source_type)
        else:
            raise ExtractionError(f"Unsupported content type: {job.content_type}")

        text = text.strip()
        if not text:
            raise ExtractionError("No text could be extracted from the upload")
        return text

    def process_upload_job(self, job_id: str, extraction: ExtractionService) -> IngestionJob | None:
        """Turn a queued upload job into a pending ingestion job.

        Returns ``None`` when the job was already processed (redelivery).
        A failed extraction still produces the ingestion job, with the error
        in its metadata, so the runner records the terminal failure.

        Raises:
            NotFoundError: If the job or its upload does not exist.
        """
        job = self.db.query(UploadJob).filter(UploadJob.id == job_id).first()
        if not job:
            raise NotFoundError(f"Upload job {job_id} not found")
        if job.status != UploadJobStatus.QUEUED.value:
            logger.info(f"Upload job {job_id} already in status '{job.status}', skipping")
            return None
        upload = self.db.query(Upload).filter(Upload.id == job.upload_id).first()
        if not upload:
            raise NotFoundError(f"Upload {job.upload_id} not found")

        job.status = UploadJobStatus.RECEIVED.value
        job.attempts = (job.attempts or 0) + 1
        self.db.commit()

        extraction_error = None
        try:
            text = self.extract_text(job, extraction)
        except ExtractionError as e:
            logger.warning(f"Text extraction failed for upload {upload.id}: {e}")
            extraction_error = str(e)
            text = ""
        except Exception as e:
            # Storage or decoding faults still end in a terminal failure via the runner
            logger.error(f"Failed to read upload {upload.id}: {e}", exc_info=True)
            extraction_error = f"Failed to read upload: {e}"
            text = ""

        metadata = {
            "source": "upload",
            "upload_id": upload.id,
            "source_type": job.source_type,
            "filename": upload.filename,
        }
        if extraction_error:
            metadata["extraction_error"] = extraction_error

        ingestion_job = IngestionService(self.db, extraction, self.settings).create_job_record(
            user_id=upload.user_id,
            text=text,
            upload_id=upload.id,
            metadata=metadata,
            commit=False,
        )
        job.status = UploadJobStatus.AWAITING_PARSER.value
        upload.status = UploadStatus.PROCESSING.value
        upload.text_preview = text[:TEXT_PREVIEW_LENGTH] or None
        upload.ingestion_job_id = ingestion_job.id
        self.db.commit()
        self.db.refresh(ingestion_job)

        logger.info(
            f"Upload {upload.id} handed to ingestion job {ingestion_job.id} "
            f"({len(text)} chars extracted)"
        )
        self._publish(upload)
        return ingestion_job
