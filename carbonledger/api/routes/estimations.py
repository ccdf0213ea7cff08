# -*- coding: utf-8 -*-
"""
Scope 3 estimation endpoints.

Organisational inputs (headcount, commute, travel spend, purchases, waste)
are stored once per customer and reporting period and turned into
category estimates on demand.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_writer,
)
from carbonledger.calculation.estimation import (
    EstimatedEmission,
    EstimationInputData,
    calculate_all,
    delete_estimation_input,
    get_estimation_input,
    save_estimation_input,
    to_tonnes,
    total,
)
from carbonledger.db.models import ReportingPeriod, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_inputs(payload: Dict[str, Any]) -> EstimationInputData:
    """Validate request inputs; unknown keys are ignored."""
    try:
        return EstimationInputData.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        message = first["msg"].removeprefix("Value error, ")
        raise ApiError(
            f"{location}: {message}" if location else message,
            400,
            "VALIDATION_ERROR",
            exc.errors(include_url=False, include_context=False),
        ) from exc


def _render(estimations: List[EstimatedEmission]) -> Dict[str, Any]:
    kg = total(estimations)
    return {
        "estimations": [e.model_dump(by_alias=True) for e in estimations],
        "totalKgCo2e": kg,
        "totalTonnesCo2e": to_tonnes(kg),
    }


def _not_found() -> ApiError:
    return ApiError(
        "Estimation input not found. Please provide estimation data first.",
        404,
        "ESTIMATION_NOT_FOUND",
    )


@router.get("/{customer_id}/{period_id}")
def get_inputs(
    customer_id: str,
    period_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_customer_access(user, customer_id)
    record = get_estimation_input(db, customer_id, period_id)
    if record is None:
        raise _not_found()
    return record.to_dict()


@router.post("", status_code=201)
def save_inputs(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Create or replace the estimation inputs for a customer and period."""
    customer_id = payload.get("customerId")
    period_id = payload.get("reportingPeriodId") or payload.get("periodId")
    if not customer_id or not period_id:
        raise ApiError(
            "customerId and reportingPeriodId are required", 400, "VALIDATION_ERROR",
        )
    ensure_customer_access(user, customer_id)

    period = db.get(ReportingPeriod, period_id)
    if period is None or period.customer_id != customer_id:
        raise ApiError("Reporting period not found", 404, "PERIOD_NOT_FOUND")

    data = parse_inputs(payload)
    record = save_estimation_input(db, customer_id, period_id, data, created_by=user.id)
    return {"message": "Estimation input saved successfully", "data": record.to_dict()}


@router.post("/{customer_id}/{period_id}/calculate")
def calculate(
    customer_id: str,
    period_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Estimate every category the stored inputs allow."""
    ensure_customer_access(user, customer_id)
    record = get_estimation_input(db, customer_id, period_id)
    if record is None:
        raise _not_found()

    estimations = calculate_all(EstimationInputData.from_record(record))
    response = _render(estimations)
    response["metadata"] = {
        "customerId": customer_id,
        "reportingPeriodId": period_id,
        "calculatedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "numberOfCategories": len(estimations),
    }
    logger.info(
        "Scope 3 estimation for %s/%s: %d categories, %.2f kgCO2e",
        customer_id, period_id, len(estimations), response["totalKgCo2e"],
    )
    return response


@router.post("/{customer_id}/{period_id}/preview")
def preview(
    customer_id: str,
    period_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    user: User = Depends(get_current_user),
):
    """Estimate from the posted inputs without storing them."""
    ensure_customer_access(user, customer_id)
    response = _render(calculate_all(parse_inputs(payload or {})))
    response["preview"] = True
    response["message"] = "This is a preview. Use POST /api/estimations to save the data."
    return response


@router.delete("/{customer_id}/{period_id}")
def delete_inputs(
    customer_id: str,
    period_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    ensure_customer_access(user, customer_id)
    if not delete_estimation_input(db, customer_id, period_id):
        raise _not_found()
    logger.info("Estimation input deleted for %s/%s by %s", customer_id, period_id, user.id)
    return {"message": "Estimation input deleted successfully"}
