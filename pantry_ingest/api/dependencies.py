"""FastAPI dependencies for authentication, database and services."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from pantry_ingest.database import get_db
from pantry_ingest.services.auth import get_user_id_from_token
from pantry_ingest.services.extraction import ExtractionService, get_extraction_service
from pantry_ingest.services.ingestion_service import IngestionService
from pantry_ingest.services.inventory_service import InventoryService
from pantry_ingest.services.metrics import MetricsService
from pantry_ingest.services.storage import ObjectStore, get_object_store
from pantry_ingest.services.uploads import UploadService

security = HTTPBearer()


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> str:
    """Get the trusted user id from the bearer token.

    Accounts are owned by the identity service, so the token's ``sub`` is
    the whole identity and there is no local user lookup.
    """
    user_id = get_user_id_from_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def get_inventory_service(
    db: Annotated[Session, Depends(get_db)],
) -> InventoryService:
    """Get inventory service with dependencies."""
    return InventoryService(db)


def get_upload_service(
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[ObjectStore, Depends(get_object_store)],
) -> UploadService:
    """Get upload service with dependencies."""
    return UploadService(db, store)


def get_ingestion_service(
    db: Annotated[Session, Depends(get_db)],
    extraction: Annotated[ExtractionService, Depends(get_extraction_service)],
) -> IngestionService:
    """Get ingestion service with dependencies."""
    return IngestionService(db, extraction)


def get_metrics_service(
    db: Annotated[Session, Depends(get_db)],
) -> MetricsService:
    """Get metrics service with dependencies."""
    return MetricsService(db)
