"""Object storage for uploaded files and the signed URLs used to write them.

Signed write URLs carry a short-lived JWT bound to one bucket, path and
content type. The local backend stores objects under ``storage_root``.
"""

import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from jose import ExpiredSignatureError, JWTError, jwt

from pantry_ingest.config import Settings, get_settings
from pantry_ingest.services.errors import NotFoundError, UploadValidationError

logger = logging.getLogger(__name__)

UPLOAD_TOKEN_TYPE = "upload"


class ObjectStore(Protocol):
    """Minimal blob store used by the upload pipeline."""

    def exists(self, bucket: str, path: str) -> bool: ...

    def read(self, bucket: str, path: str) -> bytes: ...

    def write(self, bucket: str, path: str, data: bytes) -> None: ...


class LocalObjectStore:
    """Filesystem-backed object store."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, bucket: str, path: str) -> Path:
        base = (self.root / bucket).resolve()
        target = (base / path).resolve()
        if base not in target.parents:
            raise UploadValidationError(f"Invalid storage path: {path}")
        return target

    def exists(self, bucket: str, path: str) -> bool:
        return self._resolve(bucket, path).is_file()

    def read(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise NotFoundError(f"Object {bucket}/{path} not found")
        return target.read_bytes()

    def write(self, bucket: str, path: str, data: bytes) -> None:
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info(f"Stored {len(data)} bytes at {bucket}/{path}")


def get_object_store() -> ObjectStore:
    """Get the configured object store."""
    return LocalObjectStore(get_settings().storage_root)


def _base_content_type(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def create_upload_token(
    bucket: str,
    path: str,
    content_type: str,
    settings: Settings | None = None,
) -> tuple[str, datetime]:
    """Create a write token for one object, returning it with its expiry."""
    settings = settings or get_settings()
    expires_at = datetime.now(UTC) + timedelta(seconds=settings.upload_url_ttl_seconds)
    claims = {
        "typ": UPLOAD_TOKEN_TYPE,
        "bucket": bucket,
        "path": path,
        "content_type": _base_content_type(content_type),
        "exp": expires_at,
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


def build_upload_url(bucket: str, path: str, token: str, settings: Settings | None = None) -> str:
    """Absolute URL the client PUTs the file to."""
    settings = settings or get_settings()
    base = settings.public_base_url.rstrip("/")
    return f"{base}/api/v1/storage/{quote(bucket)}/{quote(path)}?token={token}"


def generate_signed_upload_url(
    bucket: str,
    path: str,
    content_type: str,
    settings: Settings | None = None,
) -> tuple[str, datetime]:
    """Signed write URL for ``bucket/path`` and when it expires."""
    token, expires_at = create_upload_token(bucket, path, content_type, settings)
    return build_upload_url(bucket, path, token, settings), expires_at


def verify_upload_token(
    token: str,
    bucket: str,
    path: str,
    content_type: str | None,
    settings: Settings | None = None,
) -> None:
    """Check that a write token allows this bucket, path and content type.

    Raises:
        UploadValidationError: If the token is invalid, expired or bound to
            a different object or content type.
    """
    settings = settings or get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise UploadValidationError("Upload URL has expired") from None
    except JWTError:
        raise UploadValidationError("Invalid upload token") from None

    if claims.get("typ") != UPLOAD_TOKEN_TYPE:
        raise UploadValidationError("Invalid upload token")
    if claims.get("bucket") != bucket or claims.get("path") != path:
        raise UploadValidationError("Upload token does not match this object")
    if claims.get("content_type") != _base_content_type(content_type):
        raise UploadValidationError("Content type does not match the reservation")
