# -*- coding: utf-8 -*-
"""
Reporting endpoints: emissions overview, progress across calculation
runs and detailed export.

Totals are in kgCO2e. The overview and export default to the customer's
most recently completed calculation run.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session, joinedload

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_customer_id,
)
from carbonledger.calculation.export import emissions_report_csv
from carbonledger.calculation.scope import SCOPE_1, SCOPE_2, SCOPE_3
from carbonledger.db.models import Activity, CalcRun, EmissionResult, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()

SCOPE_KEYS = {SCOPE_1: "scope1", SCOPE_2: "scope2", SCOPE_3: "scope3"}


def scope_totals(results: List[EmissionResult]) -> Dict[str, float]:
    """Sum results into scope1/scope2/scope3/total."""
    totals = {"total": 0.0, "scope1": 0.0, "scope2": 0.0, "scope3": 0.0}
    for result in results:
        totals["total"] += result.result_kg_co2e
        key = SCOPE_KEYS.get(result.scope)
        if key:
            totals[key] += result.result_kg_co2e
    return totals


def _percentage(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def _latest_completed_run(db: Session, customer_id: str, period_id: Optional[str]) -> Optional[CalcRun]:
    query = db.query(CalcRun).filter(CalcRun.customer_id == customer_id, CalcRun.status == "COMPLETED")
    if period_id:
        query = query.filter(CalcRun.period_id == period_id)
    return query.order_by(CalcRun.completed_at.desc()).first()


def _results_query(db: Session, customer_id: str):
    return (
        db.query(EmissionResult)
        .join(CalcRun, EmissionResult.calc_run_id == CalcRun.id)
        .options(
            joinedload(EmissionResult.activity).joinedload(Activity.site),
            joinedload(EmissionResult.factor),
            joinedload(EmissionResult.calc_run),
        )
        .filter(CalcRun.customer_id == customer_id)
    )


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


def site_breakdown(results: List[EmissionResult], total: float) -> List[Dict[str, Any]]:
    by_site: Dict[str, Dict[str, Any]] = {}
    for result in results:
        site = result.activity.site
        entry = by_site.get(site.id)
        if entry is None:
            entry = by_site[site.id] = {
                "site": {"id": site.id, "name": site.name, "country": site.country},
                "results": [],
            }
        entry["results"].append(result)

    breakdown = []
    for entry in by_site.values():
        totals = scope_totals(entry["results"])
        breakdown.append({
            "site": entry["site"],
            "total": totals["total"],
            "byScope": {key: totals[key] for key in ("scope1", "scope2", "scope3")},
            "percentage": _percentage(totals["total"], total),
        })
    return sorted(breakdown, key=lambda item: item["total"], reverse=True)


def type_breakdown(results: List[EmissionResult], total: float) -> List[Dict[str, Any]]:
    by_type: Dict[str, Dict[str, Any]] = {}
    for result in results:
        entry = by_type.setdefault(
            result.activity.type, {"total": 0.0, "count": 0, "scope": result.scope},
        )
        entry["total"] += result.result_kg_co2e
        entry["count"] += 1

    breakdown = [
        {
            "type": activity_type,
            "total": entry["total"],
            "count": entry["count"],
            "scope": entry["scope"],
            "percentage": _percentage(entry["total"], total),
        }
        for activity_type, entry in by_type.items()
    ]
    return sorted(breakdown, key=lambda item: item["total"], reverse=True)


@router.get("/overview")
def overview(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    period_id: Optional[str] = Query(None, alias="periodId"),
    calc_run_id: Optional[str] = Query(None, alias="calcRunId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Scope totals with site and activity type breakdowns for one run."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    query = _results_query(db, customer_id)
    if period_id:
        query = query.filter(CalcRun.period_id == period_id)
    if not calc_run_id:
        latest = _latest_completed_run(db, customer_id, period_id)
        calc_run_id = latest.id if latest else None
    if calc_run_id:
        query = query.filter(EmissionResult.calc_run_id == calc_run_id)

    results = query.order_by(EmissionResult.result_kg_co2e.desc()).all()
    totals = scope_totals(results)
    total = totals["total"]

    calc_run = results[0].calc_run if results else None
    return {
        "summary": {
            "scope1": totals["scope1"],
            "scope2": totals["scope2"],
            "scope3": totals["scope3"],
            "total": total,
        },
        "siteBreakdown": site_breakdown(results, total),
        "typeBreakdown": type_breakdown(results, total),
        "calcRun": (
            {
                "id": calc_run.id,
                "createdAt": calc_run.to_dict()["createdAt"],
                "factorLibraryVersion": calc_run.factor_library_version,
            }
            if calc_run else None
        ),
        "totalResults": len(results),
        "lastUpdated": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@router.get("/progress")
def progress(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Totals per completed run in completion order, with the latest change."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    query = (
        db.query(CalcRun)
        .options(joinedload(CalcRun.period))
        .filter(CalcRun.customer_id == customer_id, CalcRun.status == "COMPLETED")
    )
    if date_from:
        query = query.filter(CalcRun.completed_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(CalcRun.completed_at <= datetime.combine(date_to, time.max))
    runs = query.order_by(CalcRun.completed_at.asc()).all()

    results_by_run: Dict[str, List[EmissionResult]] = defaultdict(list)
    if runs:
        for result in db.query(EmissionResult).filter(
            EmissionResult.calc_run_id.in_([r.id for r in runs]),
        ):
            results_by_run[result.calc_run_id].append(result)

    points = []
    for run in runs:
        period = run.period.to_dict() if run.period else None
        run_results = results_by_run[run.id]
        points.append({
            "calcRunId": run.id,
            "period": (
                {key: period[key] for key in ("year", "quarter", "fromDate", "toDate")} if period else None
            ),
            "date": run.to_dict()["completedAt"],
            "emissions": scope_totals(run_results),
            "resultCount": len(run_results),
        })

    trends = {"totalChange": 0.0, "scope1Change": 0.0, "scope2Change": 0.0, "scope3Change": 0.0}
    if len(points) >= 2:
        latest, previous = points[-1]["emissions"], points[-2]["emissions"]
        trends = {
            "totalChange": latest["total"] - previous["total"],
            "scope1Change": latest["scope1"] - previous["scope1"],
            "scope2Change": latest["scope2"] - previous["scope2"],
            "scope3Change": latest["scope3"] - previous["scope3"],
        }

    return {"progress": points, "trends": trends, "periodCount": len(points)}


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


@router.get("/export")
def export(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    period_id: Optional[str] = Query(None, alias="periodId"),
    calc_run_id: Optional[str] = Query(None, alias="calcRunId"),
    export_format: str = Query("csv", alias="format", pattern="^(csv|json)$"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Every emission result for a run, period or customer as CSV or JSON."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    query = _results_query(db, customer_id)
    if calc_run_id:
        query = query.filter(EmissionResult.calc_run_id == calc_run_id)
    elif period_id:
        query = query.filter(CalcRun.period_id == period_id)
    results = query.order_by(EmissionResult.scope.asc(), EmissionResult.result_kg_co2e.desc()).all()

    if not results:
        raise ApiError("No emission results found", 404, "NO_RESULTS")

    logger.info("Emissions export: customer=%s format=%s rows=%d", customer_id, export_format, len(results))
    if export_format == "json":
        return [r.to_dict(include_related=True) for r in results]

    return Response(
        content=emissions_report_csv(results),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=emissions_report_{customer_id}.csv"},
    )
