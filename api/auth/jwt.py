"""
JWT Token Utilities

Verify bearer tokens issued by the identity provider. Tokens carry the
platform role as a signed `role` claim so that admin checks never have
to consult access-controlled data.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from config.settings import settings


class TokenError(Exception):
    """Token validation error."""
    pass


def create_access_token(
    user_id: str,
    email: str,
    role: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    The identity provider normally issues tokens; this helper signs
    tokens with the same claims for development and tests.

    Args:
        user_id: Subject (user id)
        email: User email
        role: Platform role claim
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))

    to_encode = {
        "sub": str(user_id),
        "email": email,
        "exp": expire,
        "iat": now,
        "type": "access"
    }
    if role:
        to_encode["role"] = role
    if settings.jwt_issuer:
        to_encode["iss"] = settings.jwt_issuer

    return jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm
    )


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT token.

    Args:
        token: The JWT token to decode

    Returns:
        Decoded token payload

    Raises:
        TokenError: If token is invalid, expired or from the wrong issuer
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"verify_aud": False}
        )
    except JWTError as e:
        raise TokenError(f"Invalid token: {str(e)}")


def verify_token(token: str) -> dict:
    """
    Verify an access token and check it names a subject.

    Raises:
        TokenError: If the token is invalid or has no subject
    """
    payload = decode_token(token)

    if payload.get("type", "access") != "access":
        raise TokenError("Invalid token type. Expected access")
    if not payload.get("sub"):
        raise TokenError("Invalid token payload")

    return payload
