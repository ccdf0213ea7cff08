# -*- coding: utf-8 -*-
"""
Emission Factor Library - CarbonLedger

Versioned emission factors (kgCO2e per input unit) stored in the
database, with a default DESNZ/IPCC 2025 set that can be seeded
idempotently.

Lookup (``find_factor``) considers only factors valid on the reference
date and falls back in three tiers:

    1. exact (category, geography, year, input unit)
    2. same, with geography GLOBAL (skipped when already GLOBAL)
    3. (category, geography, input unit) in any year

Within a tier the latest year wins, then the most recently created
version.

Example:
    >>> from carbonledger.db.base import get_session
    >>> from carbonledger.calculation.factors import seed_default_factors, find_factor
    >>> with get_session() as session:
    ...     seed_default_factors(session)
    ...     factor = find_factor(session, "NATURAL_GAS", "UK", 2025, "kWh",
    ...                          as_of=date(2025, 6, 1))

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from carbonledger.db.models import EmissionFactor
from carbonledger.exceptions import FactorNotFoundError

logger = logging.getLogger(__name__)

__all__ = [
    "EmissionFactorData",
    "DEFAULT_FACTORS",
    "seed_default_factors",
    "find_factor",
    "get_factors",
    "get_factor",
    "create_factor",
    "update_factor",
]

GLOBAL_GEOGRAPHY = "GLOBAL"


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class EmissionFactorData(BaseModel):
    """Emission factor definition."""

    category: str = Field(..., min_length=1, max_length=100)
    geography: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1900, le=2100)
    input_unit: str = Field(..., min_length=1, max_length=50)
    output_unit: str = Field(default="kgCO2e", max_length=50)
    value: float = Field(..., ge=0)
    source_name: str = Field(..., min_length=1, max_length=255)
    source_version: str = Field(..., min_length=1, max_length=100)
    gwp_version: str = Field(default="AR6", max_length=20)

    model_config = {"extra": "forbid"}


def _desnz(category: str, input_unit: str, value: float) -> EmissionFactorData:
    return EmissionFactorData(
        category=category,
        geography="UK",
        year=2025,
        input_unit=input_unit,
        value=value,
        source_name="DESNZ",
        source_version="2025",
    )


DEFAULT_FACTORS: List[EmissionFactorData] = [
    # Scope 1 - stationary combustion
    _desnz("NATURAL_GAS", "kWh", 0.0002027),
    _desnz("LPG", "kWh", 0.00023032),
    # Scope 1 - mobile combustion
    _desnz("DIESEL", "kWh", 0.000239),
    _desnz("PETROL", "kWh", 0.000227),
    # Scope 1 - refrigerants
    EmissionFactorData(
        category="REFRIGERANTS_R134A",
        geography=GLOBAL_GEOGRAPHY,
        year=2025,
        input_unit="kg",
        value=1430,
        source_name="IPCC",
        source_version="2014",
        gwp_version="AR5",
    ),
    # Scope 2
    _desnz("ELECTRICITY_GRID", "kWh", 0.000177),
    EmissionFactorData(
        category="HEAT_STEAM",
        geography="UK",
        year=2025,
        input_unit="GJ",
        value=0.03,
        source_name="Supplier-Specific",
        source_version="2025",
    ),
    # Scope 3 - business travel
    _desnz("BUSINESS_TRAVEL_AIR", "passenger-km", 0.000106),
    _desnz("BUSINESS_TRAVEL_RAIL", "passenger-km", 0.000041),
    # Scope 3 - spend based
    _desnz("PURCHASED_GOODS_SERVICES", "GBP", 0.0001),
    _desnz("CAPITAL_GOODS", "GBP", 0.00005),
    _desnz("UPSTREAM_TRANSPORT", "GBP", 0.00009),
    # Scope 3 - fuel and energy related
    _desnz("FUEL_ENERGY_RELATED", "kWh", 0.00002315),
    # Scope 3 - waste
    _desnz("WASTE_LANDFILL", "tonne", 200),
]


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


def seed_default_factors(
    session: Session,
    factors: Optional[List[EmissionFactorData]] = None,
) -> int:
    """Insert default factors that are not present yet.

    A factor counts as present when (category, geography, year, source
    name, source version) already exists.

    Args:
        session: Database session.
        factors: Factor set to seed (defaults to DEFAULT_FACTORS).

    Returns:
        Number of factors inserted.
    """
    inserted = 0
    for data in factors or DEFAULT_FACTORS:
        existing = (
            session.query(EmissionFactor)
            .filter(
                EmissionFactor.category == data.category,
                EmissionFactor.geography == data.geography,
                EmissionFactor.year == data.year,
                EmissionFactor.source_name == data.source_name,
                EmissionFactor.source_version == data.source_version,
            )
            .first()
        )
        if existing is not None:
            continue

        session.add(_new_factor(data))
        inserted += 1
        logger.info(
            "Emission factor seeded: %s/%s/%d", data.category, data.geography, data.year,
        )

    session.flush()
    logger.info("Seeded %d emission factors", inserted)
    return inserted


def _new_factor(data: EmissionFactorData) -> EmissionFactor:
    """Build a factor valid for its calendar year."""
    return EmissionFactor(
        **data.model_dump(),
        valid_from=date(data.year, 1, 1),
        valid_to=date(data.year, 12, 31),
    )


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def _valid_query(session: Session, as_of: date):
    return session.query(EmissionFactor).filter(
        EmissionFactor.valid_from <= as_of,
        or_(EmissionFactor.valid_to.is_(None), EmissionFactor.valid_to >= as_of),
    )


def _first(query) -> Optional[EmissionFactor]:
    return query.order_by(
        EmissionFactor.year.desc(),
        EmissionFactor.created_at.desc(),
    ).first()


def find_factor(
    session: Session,
    category: str,
    geography: str = "UK",
    year: Optional[int] = None,
    input_unit: str = "kWh",
    as_of: Optional[date] = None,
) -> Optional[EmissionFactor]:
    """Find the emission factor to use for a calculation.

    Args:
        session: Database session.
        category: Factor category (e.g. NATURAL_GAS).
        geography: Geography code, defaults to UK.
        year: Factor year, defaults to the current year.
        input_unit: Unit of the activity quantity.
        as_of: Reference date for the validity window, defaults to today.

    Returns:
        Matching EmissionFactor or None.
    """
    as_of = as_of or date.today()
    year = year if year is not None else date.today().year

    factor = _first(
        _valid_query(session, as_of).filter(
            EmissionFactor.category == category,
            EmissionFactor.geography == geography,
            EmissionFactor.year == year,
            EmissionFactor.input_unit == input_unit,
        )
    )

    if factor is None and geography != GLOBAL_GEOGRAPHY:
        factor = _first(
            _valid_query(session, as_of).filter(
                EmissionFactor.category == category,
                EmissionFactor.geography == GLOBAL_GEOGRAPHY,
                EmissionFactor.year == year,
                EmissionFactor.input_unit == input_unit,
            )
        )

    if factor is None:
        factor = _first(
            _valid_query(session, as_of).filter(
                EmissionFactor.category == category,
                EmissionFactor.geography == geography,
                EmissionFactor.input_unit == input_unit,
            )
        )

    if factor is None:
        logger.debug(
            "No factor for %s/%s/%s/%s as of %s", category, geography, year, input_unit, as_of,
        )
    return factor


def get_factors(
    session: Session,
    category: Optional[str] = None,
    geography: Optional[str] = None,
    year: Optional[int] = None,
    source_name: Optional[str] = None,
) -> List[EmissionFactor]:
    """List factors, optionally filtered, ordered by category, geography, year desc."""
    query = session.query(EmissionFactor)
    if category:
        query = query.filter(EmissionFactor.category == category)
    if geography:
        query = query.filter(EmissionFactor.geography == geography)
    if year is not None:
        query = query.filter(EmissionFactor.year == year)
    if source_name:
        query = query.filter(EmissionFactor.source_name == source_name)
    return query.order_by(
        EmissionFactor.category.asc(),
        EmissionFactor.geography.asc(),
        EmissionFactor.year.desc(),
    ).all()


def get_factor(session: Session, factor_id: str) -> EmissionFactor:
    """Fetch a factor by id.

    Raises:
        FactorNotFoundError: If the factor does not exist.
    """
    factor = session.get(EmissionFactor, factor_id)
    if factor is None:
        raise FactorNotFoundError("Emission factor not found", context={"factor_id": factor_id})
    return factor


# ---------------------------------------------------------------------------
# Mutation
# ---------------------------------------------------------------------------


def create_factor(session: Session, data: EmissionFactorData) -> EmissionFactor:
    """Create a factor valid for its calendar year."""
    factor = _new_factor(data)
    session.add(factor)
    session.flush()
    logger.info("Emission factor created: %s (%s/%s/%d)", factor.id, data.category, data.geography, data.year)
    return factor


def update_factor(session: Session, factor_id: str, updates: Dict[str, Any]) -> EmissionFactor:
    """Create a new version of a factor with ``updates`` applied.

    The existing row is left untouched; the new version is valid from
    today with no end date.

    Args:
        session: Database session.
        factor_id: Id of the factor to version.
        updates: Field values to change (EmissionFactorData field names).

    Returns:
        The newly created factor version.

    Raises:
        FactorNotFoundError: If the factor does not exist.
    """
    existing = get_factor(session, factor_id)
    fields = {
        name: getattr(existing, name)
        for name in EmissionFactorData.model_fields
    }
    fields.update({k: v for k, v in updates.items() if k in EmissionFactorData.model_fields})
    data = EmissionFactorData(**fields)

    factor = EmissionFactor(**data.model_dump(), valid_from=date.today(), valid_to=None)
    session.add(factor)
    session.flush()
    logger.info("Emission factor %s versioned as %s", factor_id, factor.id)
    return factor
