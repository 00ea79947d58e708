"""JWT handling for bearer tokens.

User accounts live in the identity service; this module only mints and
verifies the tokens that carry a trusted user id in ``sub``.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from pantry_ingest.config import get_settings

settings = get_settings()


def create_access_token(user_id: str, email: str | None = None) -> str:
    """Create a JWT access token."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.jwt_expiration_minutes)
    to_encode: dict = {
        "sub": str(user_id),
        "exp": expire,
    }
    if email:
        to_encode["email"] = email
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return payload
    except JWTError:
        return None


def get_user_id_from_token(token: str) -> str | None:
    """Return the trusted user id carried by a bearer token, if valid."""
    payload = decode_access_token(token)
    if payload is None or payload.get("typ") == "upload":
        return None
    user_id = payload.get("sub")
    return str(user_id) if user_id else None
