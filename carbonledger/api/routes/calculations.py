# -*- coding: utf-8 -*-
"""
Calculation run endpoints.

Runs execute synchronously inside the POST request; the 202 response
carries the run's final status.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_customer_id,
    require_writer,
)
from carbonledger.api.schemas import CalcRunRequest
from carbonledger.calculation.engine import get_calculation_results, run_calculation
from carbonledger.calculation.export import calc_run_csv
from carbonledger.config import get_config
from carbonledger.db.models import CalcRun, EmissionResult, ReportingPeriod, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_run_for_user(db: Session, calc_run_id: str, user: User) -> CalcRun:
    calc_run = db.get(CalcRun, calc_run_id)
    if calc_run is None:
        raise ApiError("Calculation run not found", 404, "CALC_RUN_NOT_FOUND")
    ensure_customer_access(user, calc_run.customer_id)
    return calc_run


@router.post("/runs", status_code=202)
def start_run(body: CalcRunRequest, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    """Calculate every activity of a customer's reporting period."""
    ensure_customer_access(user, body.customer_id)

    period = (
        db.query(ReportingPeriod)
        .filter(ReportingPeriod.id == body.period_id, ReportingPeriod.customer_id == body.customer_id)
        .first()
    )
    if period is None:
        raise ApiError("Reporting period not found for this customer", 404, "PERIOD_NOT_FOUND")

    calc_run_id = run_calculation(
        db,
        body.customer_id,
        body.period_id,
        requested_by=user.id,
        factor_library_version=body.factor_library_version or get_config().factor_library_version,
    )
    calc_run = db.get(CalcRun, calc_run_id)
    return {
        "calcRunId": calc_run_id,
        "status": calc_run.status,
        "message": "Calculation started successfully",
    }


@router.get("/runs")
def list_runs(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    period_id: Optional[str] = Query(None, alias="periodId"),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    query = db.query(CalcRun).options(joinedload(CalcRun.period)).filter(CalcRun.customer_id == customer_id)
    if period_id:
        query = query.filter(CalcRun.period_id == period_id)
    if status:
        query = query.filter(CalcRun.status == status)
    runs = query.order_by(CalcRun.created_at.desc()).all()

    counts = dict(
        db.query(EmissionResult.calc_run_id, func.count(EmissionResult.id))
        .filter(EmissionResult.calc_run_id.in_([r.id for r in runs]))
        .group_by(EmissionResult.calc_run_id)
        .all()
    ) if runs else {}
    requesters = {
        u.id: u.email
        for u in db.query(User).filter(User.id.in_({r.requested_by for r in runs if r.requested_by}))
    } if runs else {}

    rendered = []
    for run in runs:
        data = run.to_dict()
        period = run.period.to_dict() if run.period else None
        data["period"] = (
            {key: period[key] for key in ("year", "quarter", "fromDate", "toDate")} if period else None
        )
        data["requester"] = (
            {"email": requesters[run.requested_by]} if run.requested_by in requesters else None
        )
        data["_count"] = {"emissionResults": counts.get(run.id, 0)}
        rendered.append(data)
    return rendered


@router.get("/runs/{calc_run_id}/results")
def run_results(calc_run_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """A run's per-activity results with scope totals."""
    _get_run_for_user(db, calc_run_id, user)
    loaded = get_calculation_results(db, calc_run_id)
    aggregation = loaded["aggregation"]
    return {
        "calcRun": loaded["calc_run"].to_dict(),
        "aggregation": {
            "scope1Total": aggregation["scope1_total"],
            "scope2Total": aggregation["scope2_total"],
            "scope3Total": aggregation["scope3_total"],
            "totalEmissions": aggregation["total_emissions"],
            "resultCount": aggregation["result_count"],
        },
        "results": [r.to_dict(include_related=True) for r in loaded["results"]],
    }


@router.delete("/runs/{calc_run_id}", status_code=204)
def delete_run(calc_run_id: str, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    calc_run = _get_run_for_user(db, calc_run_id, user)
    db.query(EmissionResult).filter(EmissionResult.calc_run_id == calc_run_id).delete(
        synchronize_session=False,
    )
    db.delete(calc_run)
    logger.info("Calculation run deleted: %s by %s", calc_run_id, user.id)
    return Response(status_code=204)


@router.get("/runs/{calc_run_id}/export.csv")
def export_run(calc_run_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _get_run_for_user(db, calc_run_id, user)
    loaded = get_calculation_results(db, calc_run_id)
    return Response(
        content=calc_run_csv(loaded["results"]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=calc-run-{calc_run_id}-export.csv"},
    )
