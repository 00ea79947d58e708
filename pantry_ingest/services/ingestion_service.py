"""Ingestion jobs: creation, execution through the agent, and inline runs.

``run_job`` is the only writer of terminal job states, and it carries the
outcome over to the linked upload. Failed jobs are never retried here; a
caller re-submits by creating a new job.
"""

import logging
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from pantry_ingest.config import Settings, get_settings
from pantry_ingest.models.enums import (
    AuditActionType,
    IngestionJobStatus,
    UploadJobStatus,
    UploadStatus,
)
from pantry_ingest.models.ingestion_job import IngestionJob, ToolInvocation
from pantry_ingest.models.upload import Upload, UploadJob
from pantry_ingest.schemas.ingestion import AgentRunResponse
from pantry_ingest.schemas.metrics import InteractionEvent
from pantry_ingest.services.agent import (
    AgentConfig,
    AgentController,
    AgentRunner,
    AgentRunResult,
    ToolContext,
    build_agent_config,
    build_controller,
)
from pantry_ingest.services.errors import ExtractionError, NotFoundError, UploadStateError
from pantry_ingest.services.extraction import ExtractionService
from pantry_ingest.services.inventory_service import InventoryService
from pantry_ingest.services.metrics import MetricsService
from pantry_ingest.services.realtime import JobEventType, publish_job_event

logger = logging.getLogger(__name__)

INGEST_AGENT_NAME = "grocery_ingest"
INLINE_AGENT_NAME = "grocery_agent"


def job_path(job_id: str) -> str:
    """Path clients poll for a job's status."""
    return f"/api/v1/ingestion/jobs/{job_id}"


class IngestionService:
    """Service for ingestion jobs and inline agent runs."""

    def __init__(
        self,
        db: Session,
        extraction: ExtractionService,
        settings: Settings | None = None,
        controller: AgentController | None = None,
        config: AgentConfig | None = None,
    ):
        self.db = db
        self.extraction = extraction
        self.settings = settings or get_settings()
        self._controller = controller
        self.config = config or build_agent_config(self.settings)

    @property
    def controller(self) -> AgentController:
        if self._controller is None:
            self._controller = build_controller(self.settings)
        return self._controller

    def _publish(self, job: IngestionJob) -> None:
        publish_job_event(
            job.user_id,
            JobEventType.INGESTION_JOB_UPDATED,
            {
                "job_id": job.id,
                "status": job.status,
                "upload_id": job.upload_id,
                "last_error": job.last_error,
            },
        )

    # --- Creation --------------------------------------------------------

    def create_job_record(
        self,
        user_id: str,
        text: str,
        upload_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        commit: bool = True,
    ) -> IngestionJob:
        """Insert a pending job. The caller enqueues ``run_ingestion_job``."""
        job = IngestionJob(
            id=uuid.uuid4().hex,
            user_id=user_id,
            text=text,
            upload_id=upload_id,
            job_metadata=metadata or {},
            status=IngestionJobStatus.PENDING.value,
        )
        self.db.add(job)
        if commit:
            self.db.commit()
            self.db.refresh(job)
            self._publish(job)
        else:
            self.db.flush()
        logger.info(f"Created ingestion job {job.id} for user {user_id}")
        return job

    def create_job(
        self,
        user_id: str,
        text: str | None = None,
        upload_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IngestionJob:
        """Create a job from text, or re-submit the text extracted from an upload.

        Raises:
            NotFoundError: If the upload does not exist for this user.
            UploadStateError: If the upload has no extracted text yet.
        """
        metadata = dict(metadata or {})
        if upload_id is None:
            metadata.setdefault("source", "text")
            return self.create_job_record(user_id, text or "", metadata=metadata)

        upload = (
            self.db.query(Upload)
            .filter(Upload.id == upload_id, Upload.user_id == user_id)
            .first()
        )
        if not upload:
            raise NotFoundError(f"Upload {upload_id} not found")
        previous = (
            self.db.query(IngestionJob)
            .filter(IngestionJob.id == upload.ingestion_job_id)
            .first()
            if upload.ingestion_job_id
            else None
        )
        if previous is None or not previous.text.strip():
            raise UploadStateError(f"Upload {upload_id} has no extracted text to ingest")

        metadata.update({"source": "upload_resubmit", "upload_id": upload.id})
        return self.create_job_record(user_id, previous.text, upload_id=upload.id, metadata=metadata)

    def get_job(self, user_id: str, job_id: str) -> IngestionJob:
        """Get a user's job.

        Raises:
            NotFoundError: If it does not exist or belongs to someone else.
        """
        job = (
            self.db.query(IngestionJob)
            .filter(IngestionJob.id == job_id, IngestionJob.user_id == user_id)
            .first()
        )
        if not job:
            raise NotFoundError(f"Ingestion job {job_id} not found")
        return job

    def tool_invocations(self, run_id: str) -> list[ToolInvocation]:
        return (
            self.db.query(ToolInvocation)
            .filter(ToolInvocation.run_id == run_id)
            .order_by(ToolInvocation.sequence)
            .all()
        )

    # --- Execution -------------------------------------------------------

    def _run_agent(
        self,
        user_id: str,
        text: str,
        metadata: dict[str, Any] | None,
        run_id: str,
    ) -> AgentRunResult:
        context = ToolContext(
            db=self.db,
            user_id=user_id,
            run_id=run_id,
            inventory=InventoryService(self.db, self.settings),
            extraction=self.extraction,
            audit_action=AuditActionType.AGENT,
        )
        return AgentRunner(self.config, self.controller).run(context, text, metadata)

    def _propagate_to_upload(self, job: IngestionJob) -> None:
        """Carry a terminal job state over to the upload that produced it."""
        if not job.upload_id:
            return
        upload = self.db.query(Upload).filter(Upload.id == job.upload_id).first()
        if not upload or upload.ingestion_job_id != job.id:
            return
        if UploadStatus(upload.status).is_terminal:
            return

        completed = job.status == IngestionJobStatus.COMPLETED.value
        upload.status = (UploadStatus.COMPLETED if completed else UploadStatus.FAILED).value
        upload.last_error = job.last_error
        upload_job = self.db.query(UploadJob).filter(UploadJob.upload_id == upload.id).first()
        if upload_job:
            upload_job.status = (
                UploadJobStatus.COMPLETED if completed else UploadJobStatus.FAILED
            ).value
        publish_job_event(
            upload.user_id,
            JobEventType.UPLOAD_UPDATED,
            {"upload_id": upload.id, "status": upload.status, "last_error": upload.last_error},
        )

    def run_job(self, job_id: str) -> IngestionJob:
        """Run a pending job to a terminal state.

        Jobs that are not pending are returned untouched. Exactly one
        interaction event is recorded per run.

        Raises:
            NotFoundError: If the job does not exist.
        """
        job = self.db.query(IngestionJob).filter(IngestionJob.id == job_id).first()
        if not job:
            raise NotFoundError(f"Ingestion job {job_id} not found")
        if job.status != IngestionJobStatus.PENDING.value:
            logger.info(f"Ingestion job {job_id} already {job.status}, skipping")
            return job

        user_id, text = job.user_id, job.text
        metadata = dict(job.job_metadata or {})
        started = time.perf_counter()
        result: AgentRunResult | None = None
        error: str | None = None

        try:
            if metadata.get("extraction_error"):
                raise ExtractionError(metadata["extraction_error"])
            if not text.strip():
                raise ExtractionError("No text to ingest")
            result = self._run_agent(user_id, text, metadata, run_id=job_id)
        except Exception as e:
            logger.error(f"Ingestion job {job_id} failed: {e}", exc_info=True)
            self.db.rollback()
            error = str(e) or e.__class__.__name__

        job = self.db.query(IngestionJob).filter(IngestionJob.id == job_id).one()
        if result is not None:
            job.status = IngestionJobStatus.COMPLETED.value
            job.agent_response = result.response
            job.result_summary = result.summary()
            job.last_error = None
        else:
            job.status = IngestionJobStatus.FAILED.value
            job.last_error = error
        job.completed_at = datetime.now(UTC)
        self._propagate_to_upload(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"Ingestion job {job_id} {job.status}")
        self._publish(job)

        MetricsService(self.db).record_interaction(
            InteractionEvent(
                user_id=user_id,
                input=text,
                agent=INGEST_AGENT_NAME,
                success=result is not None,
                used_fallback=result is None or result.used_fallback,
                latency_ms=(time.perf_counter() - started) * 1000,
                confidence=result.confidence if result else None,
                error=error,
                details={
                    "job_id": job_id,
                    "upload_id": job.upload_id,
                    "tool_calls": len(result.tool_results) if result else 0,
                },
                timestamp=datetime.now(UTC),
            )
        )
        return job

    def run_agent(
        self,
        user_id: str,
        text: str,
        metadata: dict[str, Any] | None = None,
    ) -> AgentRunResponse:
        """Run the same tool-mediated flow inline and return its answer."""
        run_id = uuid.uuid4().hex
        started = time.perf_counter()
        result: AgentRunResult | None = None
        error: str | None = None
        try:
            result = self._run_agent(user_id, text, metadata, run_id=run_id)
        except Exception as e:
            logger.error(f"Agent run {run_id} failed: {e}", exc_info=True)
            self.db.rollback()
            error = str(e) or e.__class__.__name__

        MetricsService(self.db).record_interaction(
            InteractionEvent(
                user_id=user_id,
                input=text,
                agent=INLINE_AGENT_NAME,
                success=result is not None,
                used_fallback=result is None or result.used_fallback,
                latency_ms=(time.perf_counter() - started) * 1000,
                confidence=result.confidence if result else None,
                error=error,
                details={
                    "run_id": run_id,
                    "tool_calls": len(result.tool_results) if result else 0,
                },
                timestamp=datetime.now(UTC),
            )
        )

        if result is None:
            return AgentRunResponse(success=False, error=error)
        return AgentRunResponse(success=True, response=result.response)
