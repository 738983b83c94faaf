"""
Security utilities for Kader Learn.

Bearer tokens are issued by the hosted auth provider; the backend only
verifies them. ``create_access_token`` mirrors the provider's claim layout
and is used by local tooling and the test suite.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt

from .config import settings


def create_access_token(
    subject: str,
    role: str = "pengguna",
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[Dict[str, Any]] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: The user id placed in the ``sub`` claim
        role: Role claim (pengguna, admin or superadmin)
        expires_delta: Optional custom expiration time
        additional_claims: Optional additional claims to include in the token

    Returns:
        str: The encoded JWT token
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {"exp": expire, "sub": subject, "role": role}

    if additional_claims:
        to_encode.update(additional_claims)

    to_encode["iat"] = datetime.utcnow()

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify and decode a JWT token.

    Returns:
        The decoded payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None

    if not payload.get("sub"):
        return None
    return payload
