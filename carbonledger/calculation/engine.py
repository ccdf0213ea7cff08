# -*- coding: utf-8 -*-
"""
Emission Calculation Engine

ZERO-HALLUCINATION GUARANTEE:
- 100% deterministic (same activity + factor table -> same result)
- Every result carries a SHA-256 provenance hash of its inputs
- Fail loudly on missing factors or unknown unit pairs

Per activity:

    category = map_activity_to_category(type)
    scope    = determine_scope(type)
    factor   = find_factor(category, site country, start year, unit, as of start)
    kgCO2e   = convert(quantity, unit, factor.input_unit) * factor.value

A calculation run applies this to every activity of a customer's period,
persists one EmissionResult per successful activity and records failures
on the run instead of aborting it.

Example:
    >>> from carbonledger.calculation.engine import run_calculation, get_calculation_results
    >>> run_id = run_calculation(session, customer_id, period_id, requested_by=user_id)
    >>> get_calculation_results(session, run_id)["aggregation"]["total_emissions"]

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from carbonledger.calculation.factors import find_factor
from carbonledger.calculation.scope import SCOPE_3, determine_scope, map_activity_to_category
from carbonledger.calculation.unit_converter import convert
from carbonledger.db.models import Activity, CalcRun, EmissionResult, Site
from carbonledger.exceptions import CalcRunNotFoundError, FactorNotFoundError
from carbonledger.metrics import record_activity_calculation, record_calc_run

logger = logging.getLogger(__name__)

__all__ = [
    "ActivityCalculation",
    "calculate_activity",
    "run_calculation",
    "get_calculation_results",
    "aggregate_results",
    "validate_activity_data",
]

DEFAULT_FACTOR_LIBRARY_VERSION = "DEFRA-2025.1"
NO_ACTIVITIES_MESSAGE = "No activities found for calculation"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ActivityCalculation:
    """Result of calculating one activity."""

    activity_id: str
    scope: str
    method: str
    quantity_base: float
    unit_base: str
    factor_id: str
    result_kg_co2e: float
    uncertainty: float
    provenance_hash: str = ""

    def __post_init__(self):
        if not self.provenance_hash:
            self.provenance_hash = self._calculate_provenance()

    def _calculate_provenance(self) -> str:
        """SHA-256 over every calculation input and output."""
        data = {k: v for k, v in asdict(self).items() if k != "provenance_hash"}
        payload = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def to_result(self, calc_run_id: str) -> EmissionResult:
        return EmissionResult(calc_run_id=calc_run_id, **asdict(self))


# ---------------------------------------------------------------------------
# Single activity
# ---------------------------------------------------------------------------


def calculate_activity(
    session: Session,
    activity: Activity,
    site_country: str = "UK",
) -> ActivityCalculation:
    """
    Calculate emissions for one activity.

    Args:
        session: Database session used for factor lookup
        activity: Activity row
        site_country: Geography of the activity's site

    Returns:
        ActivityCalculation

    Raises:
        FactorNotFoundError: If no factor matches
        UnitConversionError: If the activity unit cannot be converted to the factor unit
    """
    category = map_activity_to_category(activity.type)
    scope = determine_scope(activity.type)
    start = activity.activity_date_start

    factor = find_factor(
        session,
        category,
        geography=site_country,
        year=start.year,
        input_unit=activity.unit,
        as_of=start,
    )
    if factor is None:
        raise FactorNotFoundError(
            f"No emission factor found for {category}, {site_country}, {activity.unit}",
            category=category,
            geography=site_country,
            unit=activity.unit,
        )

    quantity_base = activity.quantity
    unit_base = activity.unit
    if activity.unit != factor.input_unit:
        quantity_base = convert(activity.quantity, activity.unit, factor.input_unit)
        unit_base = factor.input_unit

    result_kg = quantity_base * factor.value

    method = "DETERMINISTIC"
    if scope == SCOPE_3:
        method = "SPEND_BASED" if "spend" in factor.source_name else "ACTIVITY_BASED"

    calculation = ActivityCalculation(
        activity_id=activity.id,
        scope=scope,
        method=method,
        quantity_base=quantity_base,
        unit_base=unit_base,
        factor_id=factor.id,
        result_kg_co2e=result_kg,
        uncertainty=0.3 if scope == SCOPE_3 else 0.1,
    )

    logger.info(
        "Activity %s (%s) calculated: %s %s x %s = %.6f kgCO2e [%s, factor %s]",
        activity.id, activity.type, quantity_base, unit_base,
        factor.value, result_kg, scope, factor.id,
    )
    return calculation


# ---------------------------------------------------------------------------
# Calculation runs
# ---------------------------------------------------------------------------


def run_calculation(
    session: Session,
    customer_id: str,
    period_id: str,
    requested_by: Optional[str] = None,
    factor_library_version: str = DEFAULT_FACTOR_LIBRARY_VERSION,
) -> str:
    """
    Calculate every activity of a customer's reporting period.

    The run is FAILED only when every activity failed. On an unexpected
    error the session is rolled back, the run alone is committed as FAILED
    and the error is re-raised.

    Returns:
        Id of the CalcRun
    """
    started = time.perf_counter()
    calc_run = CalcRun(
        customer_id=customer_id,
        period_id=period_id,
        factor_library_version=factor_library_version,
        requested_by=requested_by,
        status="RUNNING",
    )
    session.add(calc_run)
    session.flush()
    run_id = calc_run.id

    try:
        activities = (
            session.query(Activity)
            .join(Site, Activity.site_id == Site.id)
            .options(joinedload(Activity.site))
            .filter(Activity.period_id == period_id, Site.customer_id == customer_id)
            .all()
        )

        if not activities:
            calc_run.status = "COMPLETED"
            calc_run.completed_at = _utcnow()
            calc_run.error_message = NO_ACTIVITIES_MESSAGE
            session.flush()
            record_calc_run(calc_run.status, time.perf_counter() - started)
            logger.info("Calculation run %s: %s", calc_run.id, NO_ACTIVITIES_MESSAGE)
            return calc_run.id

        results: List[ActivityCalculation] = []
        errors: List[str] = []

        for activity in activities:
            scope = determine_scope(activity.type)
            try:
                calculation = calculate_activity(session, activity, activity.site.country)
            except Exception as exc:
                message = getattr(exc, "message", None) or str(exc)
                errors.append(f"Activity {activity.id}: {message}")
                record_activity_calculation(scope, ok=False)
                logger.error(
                    "Activity calculation failed (run %s, activity %s): %s",
                    calc_run.id, activity.id, message,
                )
                continue
            results.append(calculation)
            record_activity_calculation(calculation.scope, calculation.result_kg_co2e)

        for calculation in results:
            session.add(calculation.to_result(calc_run.id))

        calc_run.status = "FAILED" if len(errors) == len(activities) else "COMPLETED"
        calc_run.completed_at = _utcnow()
        calc_run.error_message = "; ".join(errors) if errors else None
        session.flush()

        record_calc_run(calc_run.status, time.perf_counter() - started)
        logger.info(
            "Calculation run %s %s: %d activities, %d calculated, %d errors",
            calc_run.id, calc_run.status, len(activities), len(results), len(errors),
        )
        return calc_run.id

    except Exception as exc:
        # The caller's transaction is lost; the failure is recorded on its own.
        session.rollback()
        failed = session.get(CalcRun, run_id)
        if failed is None:
            failed = CalcRun(
                id=run_id,
                customer_id=customer_id,
                period_id=period_id,
                factor_library_version=factor_library_version,
                requested_by=requested_by,
            )
            session.add(failed)
        failed.status = "FAILED"
        failed.completed_at = _utcnow()
        failed.error_message = str(exc)
        session.commit()
        record_calc_run(failed.status, time.perf_counter() - started)
        logger.error("Calculation run %s failed: %s", run_id, exc, exc_info=True)
        raise


def aggregate_results(results: List[EmissionResult]) -> Dict[str, Any]:
    """Sum results per scope."""
    aggregation: Dict[str, Any] = {
        "scope1_total": 0.0,
        "scope2_total": 0.0,
        "scope3_total": 0.0,
        "total_emissions": 0.0,
        "result_count": len(results),
    }
    for result in results:
        key = {
            "SCOPE_1": "scope1_total",
            "SCOPE_2": "scope2_total",
            "SCOPE_3": "scope3_total",
        }.get(result.scope)
        if key:
            aggregation[key] += result.result_kg_co2e
        aggregation["total_emissions"] += result.result_kg_co2e
    return aggregation


def get_calculation_results(session: Session, calc_run_id: str) -> Dict[str, Any]:
    """
    Load a run with its results (activity, site and factor eager-loaded).

    Returns:
        {"calc_run": CalcRun, "results": [EmissionResult], "aggregation": {...}}

    Raises:
        CalcRunNotFoundError: If the run does not exist
    """
    calc_run = session.get(CalcRun, calc_run_id)
    if calc_run is None:
        raise CalcRunNotFoundError(calc_run_id)

    results = (
        session.query(EmissionResult)
        .options(
            joinedload(EmissionResult.activity).joinedload(Activity.site),
            joinedload(EmissionResult.factor),
        )
        .filter(EmissionResult.calc_run_id == calc_run_id)
        .order_by(EmissionResult.created_at.asc())
        .all()
    )

    return {
        "calc_run": calc_run,
        "results": results,
        "aggregation": aggregate_results(results),
    }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_activity_data(data: Dict[str, Any]) -> List[str]:
    """
    Check activity fields before persisting.

    Args:
        data: Dict with quantity, unit, type, activity_date_start, activity_date_end

    Returns:
        List of error messages (empty when valid)
    """
    errors: List[str] = []

    quantity = data.get("quantity")
    if not quantity or quantity <= 0:
        errors.append("Quantity must be positive")

    unit = data.get("unit")
    if not unit or not str(unit).strip():
        errors.append("Unit is required")

    if not data.get("type"):
        errors.append("Activity type is required")

    start: Optional[date] = data.get("activity_date_start")
    end: Optional[date] = data.get("activity_date_end")
    if not start:
        errors.append("Activity start date is required")
    if not end:
        errors.append("Activity end date is required")
    if start and end and start > end:
        errors.append("Start date must be before end date")

    return errors
