# -*- coding: utf-8 -*-
"""
Reduction project endpoints.

Projects carry an estimated annual saving; yearly actuals are recorded
against them and compared as variance (actual minus estimate, kgCO2e).
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_customer_id,
    require_writer,
)
from carbonledger.api.schemas import ProjectActualCreate, ProjectCreate, ProjectUpdate
from carbonledger.db.models import Customer, Project, ProjectActual, Site, User
from carbonledger.exceptions import ApiError

logger = logging.getLogger(__name__)

router = APIRouter()

ALL = "ALL"


# ---------------------------------------------------------------------------
# Variance helpers
# ---------------------------------------------------------------------------


def variance_percentage(variance: float, estimated: float) -> float:
    return variance / estimated * 100 if estimated > 0 else 0.0


def variance_analysis(project: Project) -> List[Dict[str, Any]]:
    """Per-year comparison of actual and estimated savings, oldest first."""
    estimated = project.est_annual_saving_kg_co2e
    analysis = []
    for actual in sorted(project.actuals, key=lambda a: a.year):
        variance = actual.actual_saving_kg_co2e - estimated
        analysis.append({
            "year": actual.year,
            "estimated": estimated,
            "actual": actual.actual_saving_kg_co2e,
            "variance": variance,
            "variancePercentage": variance_percentage(variance, estimated),
            "performance": "above_target" if variance >= 0 else "below_target",
        })
    return analysis


def _tracked_variance(project: Project) -> float:
    """Total actual minus estimate over the years that have actuals."""
    total_actual = sum(a.actual_saving_kg_co2e for a in project.actuals)
    return total_actual - len(project.actuals) * project.est_annual_saving_kg_co2e


def _get_project_for_user(db: Session, project_id: str, user: User) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise ApiError("Project not found", 404, "PROJECT_NOT_FOUND")
    ensure_customer_access(user, project.customer_id)
    return project


def _check_site(db: Session, site_id: Optional[str], customer_id: str) -> None:
    if not site_id:
        return
    site = db.get(Site, site_id)
    if site is None or site.customer_id != customer_id:
        raise ApiError("Site not found", 404, "SITE_NOT_FOUND")


# ---------------------------------------------------------------------------
# Listing and statistics
# ---------------------------------------------------------------------------


@router.get("")
def list_projects(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    site_id: Optional[str] = Query(None, alias="siteId"),
    status: Optional[str] = Query(None),
    project_type: Optional[str] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """A customer's projects with current-year and cumulative variance."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    query = (
        db.query(Project)
        .options(selectinload(Project.actuals), selectinload(Project.site))
        .filter(Project.customer_id == customer_id)
    )
    if site_id:
        query = query.filter(Project.site_id == site_id)
    if status and status != ALL:
        query = query.filter(Project.lifecycle_state == status)
    if project_type and project_type != ALL:
        query = query.filter(Project.type == project_type)

    current_year = date.today().year
    rendered = []
    for project in query.order_by(Project.created_at.desc()).all():
        data = project.to_dict()
        current = next((a for a in project.actuals if a.year == current_year), None)
        data["variance"] = (
            current.actual_saving_kg_co2e - project.est_annual_saving_kg_co2e if current else None
        )
        data["cumulativeVariance"] = _tracked_variance(project)
        data["totalActualSavings"] = sum(a.actual_saving_kg_co2e for a in project.actuals)
        rendered.append(data)
    return rendered


@router.get("/stats/summary")
def project_stats(
    customer_id: Optional[str] = Query(None, alias="customerId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Project counts, estimated vs actual savings and target performance."""
    customer_id = require_customer_id(customer_id)
    ensure_customer_access(user, customer_id)

    def grouped(column) -> List[Any]:
        return (
            db.query(column, func.count(Project.id), func.sum(Project.est_annual_saving_kg_co2e))
            .filter(Project.customer_id == customer_id)
            .group_by(column)
            .all()
        )

    projects = (
        db.query(Project)
        .options(selectinload(Project.actuals))
        .filter(Project.customer_id == customer_id)
        .all()
    )
    total_estimated = sum(p.est_annual_saving_kg_co2e for p in projects)
    total_actual = sum(a.actual_saving_kg_co2e for p in projects for a in p.actuals)
    overall_variance = total_actual - total_estimated

    tracked = [p for p in projects if p.actuals]
    performance = {
        "projectsAboveTarget": 0,
        "projectsBelowTarget": 0,
        "projectsOnTarget": 0,
        "averageVariancePercentage": 0.0,
    }
    if tracked:
        variances = [_tracked_variance(p) for p in tracked]
        performance["projectsAboveTarget"] = sum(1 for v in variances if v > 0)
        performance["projectsBelowTarget"] = sum(1 for v in variances if v < 0)
        performance["projectsOnTarget"] = sum(1 for v in variances if v == 0)
        average = sum(variances) / len(variances)
        if total_estimated > 0:
            performance["averageVariancePercentage"] = average / (total_estimated / len(tracked)) * 100

    return {
        "totalProjects": len(projects),
        "byLifecycle": [
            {"lifecycleState": state, "count": count, "totalEstimated": est or 0.0}
            for state, count, est in grouped(Project.lifecycle_state)
        ],
        "byType": [
            {"type": project_type, "count": count, "totalEstimated": est or 0.0}
            for project_type, count, est in grouped(Project.type)
        ],
        "savings": {
            "totalEstimated": total_estimated,
            "totalActual": total_actual,
            "overallVariance": overall_variance,
            "variancePercentage": variance_percentage(overall_variance, total_estimated),
        },
        "performance": performance,
        "projectsWithTracking": len(tracked),
    }


# ---------------------------------------------------------------------------
# Single project
# ---------------------------------------------------------------------------


@router.get("/{project_id}")
def get_project(project_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """A project with per-year variance analysis and totals."""
    project = _get_project_for_user(db, project_id, user)
    analysis = variance_analysis(project)

    total_estimated = len(project.actuals) * project.est_annual_saving_kg_co2e
    total_actual = sum(a.actual_saving_kg_co2e for a in project.actuals)

    data = project.to_dict()
    data["varianceAnalysis"] = analysis
    data["summary"] = {
        "totalEstimated": total_estimated,
        "totalActual": total_actual,
        "totalVariance": total_actual - total_estimated,
        "averageAnnualPerformance": (
            sum(v["variancePercentage"] for v in analysis) / len(analysis) if analysis else 0.0
        ),
        "yearsTracked": len(project.actuals),
    }
    return data


@router.post("", status_code=201)
def create_project(body: ProjectCreate, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    ensure_customer_access(user, body.customer_id)
    if db.get(Customer, body.customer_id) is None:
        raise ApiError("Customer not found", 404, "CUSTOMER_NOT_FOUND")
    _check_site(db, body.site_id, body.customer_id)

    project = Project(**body.model_dump())
    db.add(project)
    db.flush()
    logger.info("Project created: %s (%s) by %s", project.id, project.type, user.id)
    return project.to_dict()


@router.put("/{project_id}")
def update_project(
    project_id: str,
    body: ProjectUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    project = _get_project_for_user(db, project_id, user)
    updates = body.updates()
    if "site_id" in updates:
        _check_site(db, updates["site_id"], project.customer_id)

    for name, value in updates.items():
        setattr(project, name, value)
    db.flush()
    db.refresh(project)
    logger.info("Project updated: %s by %s", project.id, user.id)
    return project.to_dict()


@router.delete("/{project_id}", status_code=204)
def delete_project(project_id: str, db: Session = Depends(get_db), user: User = Depends(require_writer)):
    project = _get_project_for_user(db, project_id, user)
    db.delete(project)
    logger.info("Project deleted: %s by %s", project_id, user.id)
    return Response(status_code=204)


@router.post("/{project_id}/actuals", status_code=201)
def record_actual(
    project_id: str,
    body: ProjectActualCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Record (or replace) a project's actual saving for one year."""
    project = _get_project_for_user(db, project_id, user)

    actual = (
        db.query(ProjectActual)
        .filter(ProjectActual.project_id == project.id, ProjectActual.year == body.year)
        .first()
    )
    if actual is None:
        actual = ProjectActual(project_id=project.id, year=body.year)
        db.add(actual)
    actual.actual_saving_kg_co2e = body.actual_saving_kg_co2e
    db.flush()

    estimated = project.est_annual_saving_kg_co2e
    variance = actual.actual_saving_kg_co2e - estimated
    logger.info(
        "Project actual recorded: project=%s year=%d variance=%.2f by %s",
        project.id, actual.year, variance, user.id,
    )

    data = actual.to_dict()
    data["variance"] = variance
    data["variancePercentage"] = variance_percentage(variance, estimated)
    data["estimated"] = estimated
    return data
