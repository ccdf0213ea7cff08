# -*- coding: utf-8 -*-
"""Reporting period endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_customer_id,
    require_writer,
)
from carbonledger.api.schemas import PeriodCreate, PeriodUpdate
from carbonledger.db.models import Customer, ReportingPeriod, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_period_for_user(db: Session, period_id: str, user: User) -> ReportingPeriod:
    period = db.get(ReportingPeriod, period_id)
    if period is None:
        raise ApiError("Reporting period not found", 404, "PERIOD_NOT_FOUND")
    ensure_customer_access(user, period.customer_id)
    return period


@router.get("")
def list_periods(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)
    periods = (
        db.query(ReportingPeriod)
        .filter(ReportingPeriod.customer_id == customer_id)
        .order_by(ReportingPeriod.year.desc(), ReportingPeriod.from_date.desc())
        .all()
    )
    return [p.to_dict() for p in periods]


@router.post("", status_code=201)
def create_period(body: PeriodCreate, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    ensure_customer_access(user, body.customer_id)
    if db.get(Customer, body.customer_id) is None:
        raise ApiError("Customer not found", 404, "CUSTOMER_NOT_FOUND")

    period = ReportingPeriod(**body.model_dump())
    db.add(period)
    db.flush()
    logger.info("Reporting period created: %s (%d %s)", period.id, period.year, period.quarter)
    return period.to_dict()


@router.put("/{period_id}")
def update_period(
    period_id: str,
    body: PeriodUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    period = get_period_for_user(db, period_id, user)
    updates = body.updates()

    from_date = updates.get("from_date", period.from_date)
    to_date = updates.get("to_date", period.to_date)
    if from_date > to_date:
        raise ApiError("fromDate must be on or before toDate", 400, "VALIDATION_ERROR")

    for name, value in updates.items():
        setattr(period, name, value)
    db.flush()
    return period.to_dict()


@router.delete("/{period_id}", status_code=204)
def delete_period(period_id: str, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    period = get_period_for_user(db, period_id, user)
    db.delete(period)
    logger.info("Reporting period deleted: %s by %s", period_id, user.id)
    return Response(status_code=204)
