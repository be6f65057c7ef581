"""
Authentication for the booking API.

Supports:
- Signed JWT bearer tokens (``sub`` = user id)
- Bare ``Bearer <uuid>`` tokens for local development and tests

Authorization is not decided here: every route passes the user id to the
permission resolver.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader

from booking_core.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def _user_id_from_token(token: str) -> uuid.UUID:
    # Development tokens are the user id itself
    try:
        return uuid.UUID(token)
    except ValueError:
        pass

    try:
        payload = decode_jwt(token)
        return uuid.UUID(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

async def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
) -> uuid.UUID:
    """Main authentication dependency: the acting user's id."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")

    user_id = _user_id_from_token(authorization[7:].strip())
    request.state.user_id = user_id
    structlog.contextvars.bind_contextvars(user_id=str(user_id))
    return user_id
