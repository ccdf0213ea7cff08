# -*- coding: utf-8 -*-
"""Site endpoints, scoped to the caller's customer."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_customer_id,
    require_writer,
)
from carbonledger.api.schemas import SiteCreate, SiteUpdate
from carbonledger.db.models import Activity, Customer, Project, Site, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_site_for_user(db: Session, site_id: str, user: User) -> Site:
    site = db.get(Site, site_id)
    if site is None:
        raise ApiError("Site not found", 404, "SITE_NOT_FOUND")
    ensure_customer_access(user, site.customer_id)
    return site


def _with_counts(db: Session, site: Site) -> dict:
    data = site.to_dict()
    data["_count"] = {
        "activities": db.query(func.count(Activity.id)).filter(Activity.site_id == site.id).scalar(),
        "projects": db.query(func.count(Project.id)).filter(Project.site_id == site.id).scalar(),
    }
    return data


@router.get("")
def list_sites(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)
    sites = (
        db.query(Site)
        .filter(Site.customer_id == customer_id)
        .order_by(Site.name.asc())
        .all()
    )
    return [_with_counts(db, site) for site in sites]


@router.get("/{site_id}")
def get_site(site_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    site = get_site_for_user(db, site_id, user)
    data = _with_counts(db, site)
    data["customer"] = site.customer.to_dict()
    return data


@router.post("", status_code=201)
def create_site(body: SiteCreate, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    ensure_customer_access(user, body.customer_id)
    if db.get(Customer, body.customer_id) is None:
        raise ApiError("Customer not found", 404, "CUSTOMER_NOT_FOUND")

    site = Site(**body.model_dump())
    db.add(site)
    db.flush()
    logger.info("Site created: %s (%s) for customer %s by %s", site.id, site.name, site.customer_id, user.id)
    return site.to_dict()


@router.put("/{site_id}")
def update_site(
    site_id: str,
    body: SiteUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    site = get_site_for_user(db, site_id, user)
    for name, value in body.updates().items():
        setattr(site, name, value)
    db.flush()
    logger.info("Site updated: %s by %s", site.id, user.id)
    return site.to_dict()


@router.delete("/{site_id}", status_code=204)
def delete_site(site_id: str, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    site = get_site_for_user(db, site_id, user)
    db.delete(site)
    logger.info("Site deleted: %s by %s", site_id, user.id)
    return Response(status_code=204)
