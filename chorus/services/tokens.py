"""
Access token claim decoding.

Tokens are decoded without signature verification. Their integrity is
established upstream by the identity provider; the claims are only read to
learn who the caller is and when the token expires.
"""

import time
from datetime import timedelta
from typing import Any

import jwt


def decode_token_claims(token: str) -> dict[str, Any] | None:
    """Decode a JWT payload without verifying it. Returns None if undecodable."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    return claims if isinstance(claims, dict) else None


def token_expires_within(
    token: str,
    margin: timedelta = timedelta(minutes=5),
    now: float | None = None,
) -> bool:
    """Check if a token is expired or expires within `margin`.

    Tokens that cannot be decoded or carry no numeric `exp` claim count as
    expired.
    """
    claims = decode_token_claims(token)
    if not claims:
        return True

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return True

    current = time.time() if now is None else now
    return exp < current + margin.total_seconds()
