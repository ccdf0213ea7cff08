# -*- coding: utf-8 -*-
"""
CarbonLedger API Dependencies
=============================

Common dependencies for FastAPI endpoints: database sessions, bearer
token authentication, role checks and customer scoping.

Author: CarbonLedger Platform Team
"""

import logging
from typing import Generator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from carbonledger.auth.security import decode_access_token
from carbonledger.db.base import get_session_factory
from carbonledger.db.models import User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

# Security scheme; missing credentials are reported as our own 401 body
security = HTTPBearer(auto_error=False)

WRITE_ROLES = ("ADMIN", "EDITOR")


def get_db() -> Generator[Session, None, None]:
    """
    Get database session dependency.

    Commits when the request handler returns normally and rolls back when
    it raises.

    Yields:
        Session: Database session
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Get current authenticated user from the bearer access token.

    Returns:
        The active User the token was issued to

    Raises:
        ApiError: 401 ``UNAUTHORIZED`` without a token, ``USER_NOT_FOUND``
            for unknown or deactivated users
        AuthenticationError: ``TOKEN_EXPIRED`` or ``INVALID_TOKEN``
    """
    if credentials is None or not credentials.credentials:
        raise ApiError("Access token required", 401, "UNAUTHORIZED")

    payload = decode_access_token(credentials.credentials)

    user = db.get(User, payload["sub"])
    if user is None or not user.active:
        raise ApiError("User not found", 401, "USER_NOT_FOUND")

    logger.debug("Authenticated user: %s", user.id)
    return user


def require_roles(*required_roles: str):
    """
    Dependency to require one of the given user roles.

    Args:
        *required_roles: Accepted role names

    Returns:
        Dependency function
    """
    def check_roles(user: User = Depends(get_current_user)) -> User:
        if user.role not in required_roles:
            raise ApiError("Insufficient permissions", 403, "FORBIDDEN")
        return user

    return check_roles


require_writer = require_roles(*WRITE_ROLES)
require_admin = require_roles("ADMIN")


def ensure_customer_access(user: User, customer_id: Optional[str]) -> None:
    """Admins see every customer; everyone else only their own."""
    if user.role != "ADMIN" and user.customer_id != customer_id:
        raise ApiError("Access denied", 403, "FORBIDDEN")


def require_customer_id(customer_id: Optional[str]) -> str:
    if not customer_id:
        raise ApiError("Customer ID is required", 400, "CUSTOMER_ID_REQUIRED")
    return customer_id
