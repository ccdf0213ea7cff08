# -*- coding: utf-8 -*-
"""Upload history endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_admin,
    require_customer_id,
)
from carbonledger.db.models import Activity, Upload, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_upload_for_user(db: Session, upload_id: str, user: User) -> Upload:
    upload = db.get(Upload, upload_id)
    if upload is None:
        raise ApiError("Upload not found", 404, "UPLOAD_NOT_FOUND")
    ensure_customer_access(user, upload.customer_id)
    return upload


@router.get("")
def list_uploads(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """A customer's uploads, newest first, with activity counts."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    uploads = (
        db.query(Upload)
        .filter(Upload.customer_id == customer_id)
        .order_by(Upload.created_at.desc())
        .all()
    )
    ids = [u.id for u in uploads]
    counts = dict(
        db.query(Activity.upload_id, func.count(Activity.id))
        .filter(Activity.upload_id.in_(ids))
        .group_by(Activity.upload_id)
        .all()
    ) if ids else {}
    emails = dict(
        db.query(User.id, User.email).filter(User.id.in_({u.uploaded_by for u in uploads if u.uploaded_by}))
    ) if ids else {}

    rendered = []
    for upload in uploads:
        data = upload.to_dict()
        data["uploader"] = {"email": emails[upload.uploaded_by]} if upload.uploaded_by in emails else None
        data["_count"] = {"activities": counts.get(upload.id, 0)}
        rendered.append(data)
    return rendered


@router.get("/{upload_id}")
def get_upload(upload_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    upload = _get_upload_for_user(db, upload_id, user)
    data = upload.to_dict()
    data["_count"] = {"activities": len(upload.activities)}
    return data


@router.delete("/{upload_id}", status_code=204)
def delete_upload(upload_id: str, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    """Delete an upload record; its activities are kept with no upload link."""
    upload = _get_upload_for_user(db, upload_id, user)
    db.query(Activity).filter(Activity.upload_id == upload_id).update(
        {Activity.upload_id: None}, synchronize_session=False,
    )
    db.delete(upload)
    logger.info("Upload deleted: %s by %s", upload_id, user.id)
    return Response(status_code=204)
