# -*- coding: utf-8 -*-
"""
Emissions inventory endpoints.

Two parsers are exposed, each with a preview and an import endpoint:

- the column-based inventory parser (``/parse``, ``/import``) for
  government-style inventory sheets with year, sector and value columns
- the intelligent parser (``/intelligent-parse``, ``/intelligent-import``)
  that recognises activities in free-form rows and scores its confidence

Files are posted directly as multipart ``file``. Imports record an Upload
with status ``imported`` and link every created activity to it.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_writer,
)
from carbonledger.api.routes.ingest import read_upload
from carbonledger.db.models import Activity, ReportingPeriod, Site, Upload, User
from carbonledger.exceptions import ApiError
from carbonledger.ingestion import intelligent_parser, inventory_parser
from carbonledger.ingestion.inventory_parser import InventoryActivity

logger = logging.getLogger(__name__)

router = APIRouter()

SAMPLE_SIZE = 10
MAX_ERROR_DETAILS = 20
NEXT_STEPS = [
    "Review imported activities in the Activities page",
    "Run calculations to compute emissions",
    "Generate reports for stakeholders",
]


def _check_site_and_period(db: Session, site_id: str, period_id: str, user: User) -> Site:
    site = db.get(Site, site_id)
    if site is None:
        raise ApiError("Site not found", 404, "SITE_NOT_FOUND")
    ensure_customer_access(user, site.customer_id)

    period = db.get(ReportingPeriod, period_id)
    if period is None or period.customer_id != site.customer_id:
        raise ApiError("Reporting period not found", 404, "PERIOD_NOT_FOUND")
    return site


def _import(
    db: Session,
    file: UploadFile,
    content: bytes,
    site: Site,
    period_id: str,
    user: User,
    activities: List[InventoryActivity],
    total_parsed: int,
) -> Upload:
    """Record the upload and create its activities."""
    upload = Upload(
        customer_id=site.customer_id,
        period_id=period_id,
        uploaded_by=user.id,
        original_name=file.filename,
        mime_type=file.content_type,
        size=len(content),
        status="imported",
        row_count=total_parsed,
        error_count=total_parsed - len(activities),
    )
    db.add(upload)
    db.flush()

    db.add_all(Activity(upload_id=upload.id, **a.model_dump()) for a in activities)
    db.flush()
    return upload


@router.post("/parse")
def parse_inventory(
    file: UploadFile = File(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Preview an inventory file: summary, sample rows and row errors."""
    content = read_upload(file)
    parsed = inventory_parser.parse_file(content, file.filename)
    rows = parsed.rows
    summary = inventory_parser.get_summary(rows)

    sample = [
        {
            "rowIndex": row.row_index,
            "mapped": row.mapped.model_dump(by_alias=True),
            "errors": row.errors,
            "warnings": row.warnings,
        }
        for row in rows[:SAMPLE_SIZE]
    ]
    error_details = [
        {"rowIndex": row.row_index, "errors": row.errors, "raw": row.raw}
        for row in rows if row.errors
    ][:MAX_ERROR_DETAILS]
    detected = parsed.columns if parsed.headers else {}

    logger.info(
        "Emissions inventory parsed: %s total=%d valid=%d errors=%d",
        file.filename, summary.total_rows, summary.valid_rows, summary.error_rows,
    )
    return {
        "summary": summary.model_dump(by_alias=True),
        "sample": sample,
        "errorDetails": error_details,
        "detectedColumns": detected,
        "message": (
            f"Successfully parsed {summary.valid_rows} valid rows out of {summary.total_rows} total rows."
            if summary.valid_rows > 0
            else "No valid rows found. Please check the error details."
        ),
    }


@router.post("/import")
def import_inventory(
    file: UploadFile = File(None),
    site_id: str = Query(..., alias="siteId"),
    period_id: str = Query(..., alias="periodId"),
    skip_errors: bool = Query(True, alias="skipErrors"),
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Import inventory rows as activities for one site and period."""
    site = _check_site_and_period(db, site_id, period_id, user)
    content = read_upload(file)

    rows = inventory_parser.parse_content(content, file.filename)
    activities = inventory_parser.to_activity_data(rows, site_id, period_id, skip_errors=skip_errors)
    if not activities:
        raise ApiError("No valid activities to import", 400, "NO_VALID_ACTIVITIES")

    upload = _import(db, file, content, site, period_id, user, activities, len(rows))
    logger.info(
        "Emissions inventory imported: upload=%s parsed=%d imported=%d by %s",
        upload.id, len(rows), len(activities), user.id,
    )
    return {
        "uploadId": upload.id,
        "totalParsed": len(rows),
        "totalImported": len(activities),
        "message": f"Successfully imported {len(activities)} activities from emissions inventory.",
        "nextSteps": NEXT_STEPS,
    }


@router.post("/intelligent-parse")
def intelligent_parse(
    file: UploadFile = File(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    content = read_upload(file)
    results = intelligent_parser.parse_content(content, file.filename)
    summary = intelligent_parser.get_summary(results)

    return {
        "method": "intelligent",
        "summary": summary.model_dump(by_alias=True),
        "results": [
            r.model_dump(
                by_alias=True,
                include={"activity_type", "quantity", "unit", "year", "scope", "confidence", "source_row"},
            )
            for r in results
        ],
        "message": (
            f"Found {summary.total_found} activities with "
            f"{summary.high_confidence} high-confidence matches"
        ),
    }


@router.post("/intelligent-import")
def intelligent_import(
    file: UploadFile = File(None),
    site_id: str = Query(..., alias="siteId"),
    period_id: str = Query(..., alias="periodId"),
    min_confidence: float = Query(
        intelligent_parser.MEDIUM_CONFIDENCE, alias="minConfidence", ge=0.0, le=1.0,
    ),
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Import recognised activities at or above ``minConfidence``."""
    site = _check_site_and_period(db, site_id, period_id, user)
    content = read_upload(file)

    results = intelligent_parser.parse_content(content, file.filename)
    activities = intelligent_parser.to_activity_data(
        results, site_id, period_id, min_confidence=min_confidence,
    )
    if not activities:
        raise ApiError(
            f"No activities found with confidence >= {min_confidence}", 400, "NO_VALID_ACTIVITIES",
        )

    upload = _import(db, file, content, site, period_id, user, activities, len(results))
    logger.info(
        "Intelligent import: upload=%s parsed=%d imported=%d min_confidence=%.2f by %s",
        upload.id, len(results), len(activities), min_confidence, user.id,
    )
    return {
        "uploadId": upload.id,
        "method": "intelligent",
        "totalParsed": len(results),
        "totalImported": len(activities),
        "minConfidence": min_confidence,
        "message": f"Successfully imported {len(activities)} activities using intelligent parsing",
        "nextSteps": NEXT_STEPS,
    }
