"""
HS256 JWT verification.

Tokens are issued by the identity provider and shared-secret signed. The
engine only verifies them; `sub` carries the opaque user id and a `role`
claim of `service_role` marks trusted backend callers.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from shamba.config import get_settings


def create_access_token(
    user_id: str,
    role: str = "authenticated",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    Create a signed access token.

    Used by tests and local tooling; production tokens come from the
    identity provider with the same claims.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": user_id,
        "role": role,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)

    return payload
