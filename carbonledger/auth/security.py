"""
Password hashing and JWT token handling.

Access tokens carry the user's id (``sub``), email, role and customer and
are signed with ``jwt_secret``. Refresh tokens carry only the user id and
are signed with ``jwt_refresh_secret`` so that one can never be accepted
in place of the other.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from carbonledger.config import get_config
from carbonledger.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Stored password hash is not a recognised bcrypt hash")
        return False


def create_access_token(
    user_id: str,
    email: str,
    role: str,
    customer_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User identifier
        email: User email
        role: User role (ADMIN, EDITOR or VIEWER)
        customer_id: Customer the user belongs to
        expires_delta: Token lifetime (defaults to the configured minutes)

    Returns:
        Encoded JWT token
    """
    config = get_config()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=config.access_token_minutes))

    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "customer_id": customer_id,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=JWT_ALGORITHM)


def create_refresh_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT refresh token signed with the refresh secret."""
    config = get_config()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=config.refresh_token_days))

    payload = {
        "sub": user_id,
        "type": REFRESH_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, config.jwt_refresh_secret, algorithm=JWT_ALGORITHM)


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired", reason="TOKEN_EXPIRED")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid %s token: %s", expected_type, e)
        raise AuthenticationError("Invalid token", reason="INVALID_TOKEN")

    if payload.get("type") != expected_type or not payload.get("sub"):
        raise AuthenticationError("Invalid token", reason="INVALID_TOKEN")
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify an access token.

    Raises:
        AuthenticationError: ``TOKEN_EXPIRED`` or ``INVALID_TOKEN``
    """
    return _decode(token, get_config().jwt_secret, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Dict[str, Any]:
    """Decode and verify a refresh token (see decode_access_token)."""
    return _decode(token, get_config().jwt_refresh_secret, REFRESH_TOKEN_TYPE)
