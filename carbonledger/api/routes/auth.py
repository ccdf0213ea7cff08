# -*- coding: utf-8 -*-
"""Login, token refresh and current-user endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import get_current_user, get_db
from carbonledger.api.schemas import LoginRequest, RefreshRequest
from carbonledger.auth.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    verify_password,
)
from carbonledger.db.models import User
from carbonledger.exceptions import ApiError, AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter()


def _access_token(user: User) -> str:
    return create_access_token(user.id, user.email, user.role, user.customer_id)


@router.post("/login")
def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Exchange email and password for an access and a refresh token."""
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if user is None or not user.active or not verify_password(body.password, user.password_hash):
        logger.warning("Failed login for %s", body.email)
        raise ApiError("Invalid credentials", 401, "INVALID_CREDENTIALS")

    user.last_login_at = datetime.now(timezone.utc).replace(tzinfo=None)
    logger.info("User logged in: %s", user.id)
    return {
        "accessToken": _access_token(user),
        "refreshToken": create_refresh_token(user.id),
        "user": user.to_dict(),
    }


@router.post("/refresh")
def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    try:
        payload = decode_refresh_token(body.refresh_token)
    except AuthenticationError:
        raise ApiError("Invalid refresh token", 401, "INVALID_REFRESH_TOKEN")

    user = db.get(User, payload["sub"])
    if user is None or not user.active:
        raise ApiError("User not found", 401, "USER_NOT_FOUND")
    return {"accessToken": _access_token(user)}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    data = user.to_dict()
    data["customer"] = (
        {"id": user.customer.id, "name": user.customer.name, "code": user.customer.code}
        if user.customer else None
    )
    return data


@router.post("/logout")
def logout(user: User = Depends(get_current_user)):
    """Tokens are stateless; this only records the logout."""
    logger.info("User logged out: %s", user.id)
    return {"message": "Logged out successfully"}
