"""
JWT Token Handling

Create and verify the stateless access credential and the signed
refresh credential.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from keystone.api.config import settings


def create_access_token(
    user_id: str,
    email: str,
    role_id: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Create a new access token.

    Args:
        user_id: User's id
        email: User's email
        role_id: Id of the user's role at issue time
        expires_minutes: Override for ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT access token
    """
    now = datetime.now(timezone.utc)
    minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    expire = now + timedelta(minutes=minutes)

    payload = {
        "sub": user_id,
        "email": email,
        "role_id": role_id,
        "iat": now,
        "exp": expire,
        "type": "access",
    }

    return jwt.encode(
        payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def create_refresh_token(user_id: str, expires_at: datetime) -> str:
    """
    Create a new refresh token.

    Args:
        user_id: User's id
        expires_at: Absolute expiry, mirrored by the stored session row

    Returns:
        Encoded JWT refresh token
    """
    payload = {
        "sub": user_id,
        "iat": datetime.now(timezone.utc),
        "exp": expires_at,
        "type": "refresh",
        "jti": str(uuid4()),  # Unique token ID for revocation
    }

    return jwt.encode(
        payload, settings.JWT_REFRESH_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string
        token_type: Expected token type ("access" or "refresh")

    Returns:
        Decoded payload if valid, None otherwise
    """
    secret = (
        settings.JWT_REFRESH_SECRET_KEY if token_type == "refresh" else settings.JWT_SECRET_KEY
    )
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALGORITHM],
        )

        # Verify token type
        if payload.get("type") != token_type:
            return None

        return payload

    except ExpiredSignatureError:
        return None
    except InvalidTokenError:
        return None
