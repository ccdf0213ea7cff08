# -*- coding: utf-8 -*-
"""Emission factor library endpoints. Writes are admin-only."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import get_current_user, get_db, require_admin
from carbonledger.api.schemas import FactorCreate, FactorUpdate
from carbonledger.calculation.factors import (
    EmissionFactorData,
    create_factor,
    get_factor,
    get_factors,
    seed_default_factors,
    update_factor,
)
from carbonledger.db.models import User

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
def list_factors(
    category: Optional[str] = Query(None),
    geography: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    source_name: Optional[str] = Query(None, alias="sourceName"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [f.to_dict() for f in get_factors(db, category, geography, year, source_name)]


@router.get("/{factor_id}")
def read_factor(factor_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return get_factor(db, factor_id).to_dict()


@router.post("", status_code=201)
def add_factor(body: FactorCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    factor = create_factor(db, EmissionFactorData(**body.model_dump()))
    return factor.to_dict()


@router.put("/{factor_id}")
def version_factor(
    factor_id: str,
    body: FactorUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin),
):
    """Create a new version of a factor; the previous version is kept."""
    updates = {k: v for k, v in body.updates().items() if v is not None}
    factor = update_factor(db, factor_id, updates)
    logger.info("Emission factor %s versioned by %s", factor_id, user.id)
    return factor.to_dict()


@router.post("/seed")
def seed_factors(db: Session = Depends(get_db), user: User = Depends(require_admin)):
    inserted = seed_default_factors(db)
    return {"inserted": inserted, "message": f"Seeded {inserted} emission factors"}
