"""
JWT token utilities for authentication.

Users are provisioned by the identity service; this module only mints
(development and tests) and verifies bearer tokens.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (should include: sub, user_id, role)
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT token string. Every call yields a distinct token
        (`jti`), so revoking one session never revokes another.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    to_encode = {**data, "exp": expire, "iat": now, "jti": uuid.uuid4().hex}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_user_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Mint a token for a User row. The role claim is informational only."""
    return create_access_token(
        data={"sub": user.username, "user_id": user.id, "role": user.role.value},
        expires_delta=expires_delta,
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Returns:
        Decoded payload if valid (sub, user_id, role, exp, iat, jti), None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def remaining_lifetime(payload: Dict[str, Any]) -> int:
    """Seconds until the token expires, at least 1."""
    exp = payload.get("exp")
    if exp is None:
        return settings.access_token_expire_minutes * 60
    return max(1, int(exp - datetime.now(timezone.utc).timestamp()))
