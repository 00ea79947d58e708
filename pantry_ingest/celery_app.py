"""Celery application for the upload and ingestion workers."""

from celery import Celery

from pantry_ingest.config import get_settings

settings = get_settings()

app = Celery(
    "pantry_ingest",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["pantry_ingest.tasks.uploads", "pantry_ingest.tasks.ingestion"],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Blob processing is quick; agent runs can hold a worker for minutes
    task_routes={
        "tasks.process_upload_job": {"queue": "uploads"},
        "tasks.run_ingestion_job": {"queue": "ingestion"},
    },
    task_default_queue="uploads",
    worker_prefetch_multiplier=1,
    # Failed jobs are terminal; callers re-submit instead of Celery retrying
    task_acks_late=False,
    task_time_limit=600,
    task_soft_time_limit=540,
    result_expires=24 * 60 * 60,
)
