"""Celery task for processing written uploads."""

import logging

from pantry_ingest.celery_app import app as celery_app
from pantry_ingest.database import SessionLocal
from pantry_ingest.services.extraction import get_extraction_service
from pantry_ingest.services.storage import get_object_store
from pantry_ingest.services.uploads import UploadService
from pantry_ingest.tasks.ingestion import run_ingestion_job

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.process_upload_job")
def process_upload_job(job_id: str) -> dict:
    """Extract text from an upload's blob and hand it to an ingestion job.

    Args:
        job_id: ID of the UploadJob created when the upload was queued

    Returns:
        Dict with the created ingestion job id, or why nothing was done
    """
    db = SessionLocal()
    try:
        service = UploadService(db, get_object_store())
        ingestion_job = service.process_upload_job(job_id, get_extraction_service())
        if ingestion_job is None:
            return {"skipped": True, "job_id": job_id}

        run_ingestion_job.delay(ingestion_job.id)
        return {"job_id": job_id, "ingestion_job_id": ingestion_job.id}

    except Exception as e:
        logger.error(f"Error processing upload job {job_id}: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}

    finally:
        db.close()
