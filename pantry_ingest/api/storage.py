"""Signed-URL object storage endpoint for client file uploads."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from pantry_ingest.config import Settings, get_settings
from pantry_ingest.services.errors import UploadValidationError
from pantry_ingest.services.storage import ObjectStore, get_object_store, verify_upload_token

router = APIRouter(prefix="/api/v1/storage", tags=["storage"])


@router.put("/{bucket}/{path:path}", status_code=status.HTTP_204_NO_CONTENT)
async def put_object(
    bucket: str,
    path: str,
    request: Request,
    store: Annotated[ObjectStore, Depends(get_object_store)],
    settings: Annotated[Settings, Depends(get_settings)],
    token: str = Query(...),
) -> None:
    """Write the raw request body to ``bucket/path``.

    Authorized by the signed token from the upload reservation rather than
    a bearer token; the Content-Type header must match the reservation.
    """
    try:
        verify_upload_token(token, bucket, path, request.headers.get("content-type"), settings)
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e

    body = await request.body()
    if len(body) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large (max {settings.max_upload_bytes} bytes)",
        )
    try:
        store.write(bucket, path, body)
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
