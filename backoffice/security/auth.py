"""
Signed session token utilities.

HTTP clients carry their session blob as a JWT: the serialized identity
sits in the ``session`` claim and the token's lifetime depends on whether
the user asked to be remembered.
"""

import json
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt

from backoffice.fastapi.core.init_settings import global_settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary containing token payload data
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token as string
    """
    to_encode = data.copy()

    # Set expiration time
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=global_settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    # Add expiration and issued at timestamps
    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow()
    })

    return jwt.encode(
        to_encode,
        global_settings.JWT_SECRET_KEY,
        algorithm=global_settings.JWT_ALGORITHM
    )


def get_token_payload(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode a JWT without raising.

    Returns:
        Token payload, or None if the token is invalid, expired or malformed
    """
    try:
        payload = jwt.decode(
            token,
            global_settings.JWT_SECRET_KEY,
            algorithms=[global_settings.JWT_ALGORITHM]
        )
    except JWTError:
        return None

    if payload.get("sub") is None:
        return None
    return payload


def session_lifetime(remember: bool) -> timedelta:
    if remember:
        return timedelta(days=global_settings.REMEMBER_ME_EXPIRE_DAYS)
    return timedelta(minutes=global_settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_session_token(blob: str, remember: bool = False) -> str:
    """
    Wrap a serialized identity in a signed session token.

    Args:
        blob: Identity serialized as JSON
        remember: Issue a long-lived token instead of a short one

    Returns:
        Encoded JWT token
    """
    identity = json.loads(blob)
    token_data = {
        "sub": identity.get("uid", ""),
        "origin": identity.get("origin"),
        "session": blob,
        "remember": remember,
    }
    return create_access_token(token_data, session_lifetime(remember))


def decode_session_token(token: str) -> Optional[str]:
    """Get the serialized identity out of a session token, or None if it is not valid."""
    payload = get_token_payload(token)
    if payload is None:
        return None
    blob = payload.get("session")
    return blob if isinstance(blob, str) else None


def session_expires_in(remember: bool) -> int:
    """Session token lifetime in seconds."""
    return int(session_lifetime(remember).total_seconds())
