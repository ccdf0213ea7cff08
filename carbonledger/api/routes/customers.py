# -*- coding: utf-8 -*-
"""Customer administration endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import func
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_admin,
)
from carbonledger.api.schemas import CustomerCreate
from carbonledger.db.models import Customer, Project, Site, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_customer(db: Session, customer_id: str) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise ApiError("Customer not found", 404, "CUSTOMER_NOT_FOUND")
    return customer


def _ensure_unique_code(db: Session, code: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(Customer).filter(Customer.code == code)
    if exclude_id:
        query = query.filter(Customer.id != exclude_id)
    if query.first() is not None:
        raise ApiError("A customer with this code already exists", 409, "CONFLICT")


def _counts(db: Session, model, customer_column) -> dict:
    rows = db.query(customer_column, func.count(model.id)).group_by(customer_column).all()
    return dict(rows)


@router.get("")
def list_customers(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    """All customers with site, user and project counts (admin only)."""
    site_counts = _counts(db, Site, Site.customer_id)
    user_counts = _counts(db, User, User.customer_id)
    project_counts = _counts(db, Project, Project.customer_id)

    customers = []
    for customer in db.query(Customer).order_by(Customer.name.asc()).all():
        data = customer.to_dict()
        data["_count"] = {
            "sites": site_counts.get(customer.id, 0),
            "users": user_counts.get(customer.id, 0),
            "projects": project_counts.get(customer.id, 0),
        }
        customers.append(data)
    return customers


@router.get("/{customer_id}")
def get_customer(
    customer_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_customer_access(user, customer_id)
    customer = _get_customer(db, customer_id)

    data = customer.to_dict()
    data["sites"] = [s.to_dict() for s in sorted(customer.sites, key=lambda s: s.name)]
    data["users"] = [
        {"id": u.id, "email": u.email, "role": u.role}
        for u in sorted(customer.users, key=lambda u: u.email)
    ]
    data["reportingPeriods"] = [
        p.to_dict() for p in sorted(customer.periods, key=lambda p: p.year, reverse=True)
    ]
    return data


@router.post("", status_code=201)
def create_customer(
    body: CustomerCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    _ensure_unique_code(db, body.code)
    customer = Customer(**body.model_dump())
    db.add(customer)
    db.flush()
    logger.info("Customer created: %s (%s)", customer.id, customer.name)
    return customer.to_dict()


@router.put("/{customer_id}")
def update_customer(
    customer_id: str,
    body: CustomerCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    customer = _get_customer(db, customer_id)
    _ensure_unique_code(db, body.code, exclude_id=customer_id)
    for name, value in body.model_dump().items():
        setattr(customer, name, value)
    db.flush()
    logger.info("Customer updated: %s", customer.id)
    return customer.to_dict()


@router.delete("/{customer_id}", status_code=204)
def delete_customer(
    customer_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    customer = _get_customer(db, customer_id)
    db.delete(customer)
    logger.warning("Customer deleted: %s by %s", customer_id, user.id)
    return Response(status_code=204)
