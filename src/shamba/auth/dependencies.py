"""FastAPI authentication dependencies."""

from __future__ import annotations

from typing import Any

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shamba.auth.jwt import verify_token
from shamba.config import get_settings

_bearer = HTTPBearer(auto_error=False)


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> dict[str, Any]:
    """Verify the bearer token and return its claims. Raises 401 on failure."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e


async def get_current_user_id(claims: dict[str, Any] = Depends(get_token_claims)) -> str:
    """The authenticated user's id (the token subject)."""
    return str(claims["sub"])


async def require_service_role(claims: dict[str, Any] = Depends(get_token_claims)) -> dict[str, Any]:
    """
    Gate for backend-only endpoints.

    Raises 403 unless the token carries the service role.
    """
    if claims.get("role") != get_settings().jwt_service_role:
        raise HTTPException(status_code=403, detail="Service role required")
    return claims
