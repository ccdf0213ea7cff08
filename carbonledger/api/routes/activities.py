# -*- coding: utf-8 -*-
"""
Activity data endpoints: paginated listing, CRUD, bulk creation and
per-type / per-site statistics.
"""

import logging
import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_customer_id,
    require_writer,
)
from carbonledger.api.schemas import ActivityCreate, ActivityUpdate, BulkActivityCreate
from carbonledger.calculation.engine import validate_activity_data
from carbonledger.db.models import Activity, EmissionResult, ReportingPeriod, Site, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def _render(activity: Activity) -> Dict[str, Any]:
    data = activity.to_dict(include_site=True)
    period = activity.period
    data["period"] = (
        {"id": period.id, "year": period.year, "quarter": period.quarter} if period else None
    )
    upload = activity.upload
    data["upload"] = {"id": upload.id, "originalName": upload.original_name} if upload else None
    return data


def _customer_filter(query, customer_id: str, period_id: Optional[str] = None):
    query = query.join(Site, Activity.site_id == Site.id).filter(Site.customer_id == customer_id)
    if period_id:
        query = query.filter(Activity.period_id == period_id)
    return query


def _get_activity_for_user(db: Session, activity_id: str, user: User) -> Activity:
    activity = db.get(Activity, activity_id)
    if activity is None:
        raise ApiError("Activity not found", 404, "ACTIVITY_NOT_FOUND")
    ensure_customer_access(user, activity.site.customer_id)
    return activity


def _check_site_and_period(db: Session, site_id: str, period_id: str, user: User) -> Site:
    site = db.get(Site, site_id)
    if site is None:
        raise ApiError("Site not found", 404, "SITE_NOT_FOUND")
    ensure_customer_access(user, site.customer_id)

    period = (
        db.query(ReportingPeriod)
        .filter(ReportingPeriod.id == period_id, ReportingPeriod.customer_id == site.customer_id)
        .first()
    )
    if period is None:
        raise ApiError("Reporting period not found", 404, "PERIOD_NOT_FOUND")
    return site


def _validate(data: Dict[str, Any]) -> None:
    errors = validate_activity_data(data)
    if errors:
        raise ApiError(", ".join(errors), 400, "ACTIVITY_VALIDATION_ERROR", errors)


# ---------------------------------------------------------------------------
# Listing and statistics
# ---------------------------------------------------------------------------


@router.get("")
def list_activities(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    period_id: Optional[str] = Query(None, alias="periodId"),
    site_id: Optional[str] = Query(None, alias="siteId"),
    activity_type: Optional[str] = Query(None, alias="type"),
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List a customer's activities, newest first, with pagination."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(1, limit))

    query = _customer_filter(db.query(Activity), customer_id, period_id)
    if site_id:
        query = query.filter(Activity.site_id == site_id)
    if activity_type:
        query = query.filter(Activity.type == activity_type)

    total = query.count()
    activities = (
        query.options(
            joinedload(Activity.site), joinedload(Activity.period), joinedload(Activity.upload),
        )
        .order_by(Activity.activity_date_start.desc(), Activity.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "activities": [_render(a) for a in activities],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


@router.get("/stats/summary")
def activity_stats(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    period_id: Optional[str] = Query(None, alias="periodId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Activity counts and quantity sums by type, and counts by site."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    total = _customer_filter(db.query(Activity), customer_id, period_id).count()

    by_type = _customer_filter(
        db.query(Activity.type, func.count(Activity.id), func.sum(Activity.quantity)),
        customer_id, period_id,
    ).group_by(Activity.type).all()

    by_site = _customer_filter(
        db.query(Activity.site_id, Site.name, func.count(Activity.id)),
        customer_id, period_id,
    ).group_by(Activity.site_id, Site.name).all()

    return {
        "totalActivities": total,
        "byType": [
            {"type": activity_type, "count": count, "totalQuantity": quantity or 0.0}
            for activity_type, count, quantity in by_type
        ],
        "bySite": [
            {"siteId": site_id, "siteName": name, "count": count}
            for site_id, name, count in by_site
        ],
    }


# ---------------------------------------------------------------------------
# Single activity
# ---------------------------------------------------------------------------


@router.get("/{activity_id}")
def get_activity(activity_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    activity = _get_activity_for_user(db, activity_id, user)

    results = (
        db.query(EmissionResult)
        .options(joinedload(EmissionResult.factor), joinedload(EmissionResult.calc_run))
        .filter(EmissionResult.activity_id == activity.id)
        .all()
    )

    data = _render(activity)
    data["emissionResults"] = []
    for result in results:
        item = result.to_dict()
        item["factor"] = result.factor.to_dict() if result.factor else None
        item["calcRun"] = {
            "id": result.calc_run.id,
            "status": result.calc_run.status,
            "createdAt": result.calc_run.to_dict()["createdAt"],
        }
        data["emissionResults"].append(item)
    return data


@router.post("", status_code=201)
def create_activity(body: ActivityCreate, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    values = body.model_dump()
    _validate(values)
    _check_site_and_period(db, body.site_id, body.period_id, user)

    activity = Activity(**values)
    db.add(activity)
    db.flush()
    logger.info(
        "Activity created: %s (site=%s, type=%s) by %s",
        activity.id, activity.site_id, activity.type, user.id,
    )
    return _render(activity)


@router.post("/bulk", status_code=201)
def bulk_create_activities(
    body: BulkActivityCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Create up to 1000 activities; failures are reported per item."""
    created = []
    errors = []

    for index, item in enumerate(body.activities):
        values = item.model_dump()
        problems = validate_activity_data(values)
        if problems:
            errors.append({"index": index, "errors": problems})
            continue

        try:
            with db.begin_nested():
                _check_site_and_period(db, item.site_id, item.period_id, user)
                activity = Activity(**values)
                db.add(activity)
                db.flush()
            created.append(activity)
        except ApiError as exc:
            errors.append({"index": index, "errors": [exc.message]})
        except SQLAlchemyError as exc:
            logger.warning("Bulk activity %d not saved: %s", index, exc)
            errors.append({"index": index, "errors": [str(exc.__cause__ or exc)]})

    logger.info(
        "Bulk activities created: requested=%d successful=%d failed=%d by %s",
        len(body.activities), len(created), len(errors), user.id,
    )
    return {
        "created": len(created),
        "failed": len(errors),
        "results": [a.to_dict() for a in created],
        "errors": errors,
    }


@router.put("/{activity_id}")
def update_activity(
    activity_id: str,
    body: ActivityUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Merge the changes over the stored activity and revalidate."""
    activity = _get_activity_for_user(db, activity_id, user)
    updates = body.updates()

    merged = {
        "quantity": activity.quantity,
        "unit": activity.unit,
        "type": activity.type,
        "activity_date_start": activity.activity_date_start,
        "activity_date_end": activity.activity_date_end,
    }
    merged.update(updates)
    _validate(merged)

    for name, value in updates.items():
        setattr(activity, name, value)
    db.flush()
    logger.info("Activity updated: %s by %s", activity.id, user.id)
    return _render(activity)


@router.delete("/{activity_id}", status_code=204)
def delete_activity(activity_id: str, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    activity = _get_activity_for_user(db, activity_id, user)
    db.delete(activity)
    logger.info("Activity deleted: %s by %s", activity_id, user.id)
    return Response(status_code=204)
