"""Celery task for running ingestion jobs through the agent."""

import logging

from pantry_ingest.celery_app import app as celery_app
from pantry_ingest.database import SessionLocal
from pantry_ingest.services.extraction import get_extraction_service
from pantry_ingest.services.ingestion_service import IngestionService

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.run_ingestion_job")
def run_ingestion_job(job_id: str) -> dict:
    """Run a pending ingestion job to completion.

    Failures are recorded on the job itself. Nothing is retried; clients
    re-submit by creating a new job.

    Args:
        job_id: ID of the IngestionJob

    Returns:
        Dict with the job's final status
    """
    db = SessionLocal()
    try:
        job = IngestionService(db, get_extraction_service()).run_job(job_id)
        return {"job_id": job.id, "status": job.status, "last_error": job.last_error}

    except Exception as e:
        logger.error(f"Error running ingestion job {job_id}: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}

    finally:
        db.close()
