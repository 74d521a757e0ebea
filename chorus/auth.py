"""
Caller identity from access tokens.
"""

import time
from typing import Any

from pydantic import BaseModel, Field

from chorus.exceptions import UnauthorizedError
from chorus.services.tokens import decode_token_claims


class AuthUser(BaseModel):
    """Caller identity extracted from an access token."""

    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    app_metadata: dict[str, Any] = Field(default_factory=dict)


def verify_access_token(token: str, now: float | None = None) -> AuthUser:
    """Extract the caller from an access token, rejecting malformed or expired ones."""
    claims = decode_token_claims(token)
    if not claims or not claims.get("sub"):
        raise UnauthorizedError("Invalid token format")

    exp = claims.get("exp")
    current = time.time() if now is None else now
    if isinstance(exp, (int, float)) and exp < current:
        raise UnauthorizedError("Token expired")

    return AuthUser(
        id=str(claims["sub"]),
        email=claims.get("email"),
        user_metadata=claims.get("user_metadata") or {},
        app_metadata=claims.get("app_metadata") or {},
    )


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        raise UnauthorizedError("Missing authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Invalid authorization header")
    return token.strip()
