# -*- coding: utf-8 -*-
"""
Spreadsheet ingestion endpoints.

``POST /api/ingest`` runs the mapping/validation pipeline over an uploaded
workbook or CSV. Without ``save`` it is a preview; with ``save=true`` the
rows are stored as activities under a new Upload record. Response keys
are snake_case, matching IngestResult.
"""

import logging
import os
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from carbonledger.api.dependencies import (
    ensure_customer_access,
    get_current_user,
    get_db,
    require_writer,
)
from carbonledger.config import get_config
from carbonledger.db.models import Customer, ReportingPeriod, Upload, User
from carbonledger.exceptions import ApiError
from carbonledger.ingestion.mapping import EMISSION_CATEGORIES
from carbonledger.ingestion.service import get_available_categories, get_ingest_service

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = (".xlsx", ".xls", ".csv")
ALLOWED_MIME_TYPES = (
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/csv",
    "application/csv",
)


def read_upload(file: Optional[UploadFile]) -> bytes:
    """Check type and size of an uploaded spreadsheet and return its bytes."""
    if file is None or not file.filename:
        raise ApiError('No file uploaded. Please upload a file with field name "file".', 400, "NO_FILE")

    extension = os.path.splitext(file.filename)[1].lower()
    if extension not in ALLOWED_EXTENSIONS and file.content_type not in ALLOWED_MIME_TYPES:
        raise ApiError(
            "Invalid file type. Only Excel (.xlsx, .xls) and CSV files are allowed.",
            400,
            "INVALID_FILE_TYPE",
        )

    limit = get_config().max_upload_bytes
    content = file.file.read(limit + 1)
    if len(content) > limit:
        raise ApiError(
            f"File exceeds the {get_config().max_upload_mb} MB upload limit", 413, "FILE_TOO_LARGE",
        )

    logger.info(
        "File upload received: %s (%d bytes, %s)", file.filename, len(content), file.content_type,
    )
    return content


def _check_save_target(db: Session, customer_id: str, period_id: Optional[str]) -> None:
    if not period_id:
        raise ApiError("periodId is required when save=true", 400, "PERIOD_ID_REQUIRED")
    if db.get(Customer, customer_id) is None:
        raise ApiError(f"Customer not found: {customer_id}", 404, "CUSTOMER_NOT_FOUND")
    period = db.get(ReportingPeriod, period_id)
    if period is None:
        raise ApiError(f"Reporting period not found: {period_id}", 404, "PERIOD_NOT_FOUND")
    if period.customer_id != customer_id:
        raise ApiError(
            "Reporting period does not belong to the specified customer", 400, "PERIOD_CUSTOMER_MISMATCH",
        )


@router.post("")
def ingest(
    file: UploadFile = File(None),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    period_id: Optional[str] = Query(None, alias="periodId"),
    save: bool = Query(False),
    db: Session = Depends(get_db),
    user: User = Depends(require_writer),
):
    """Map, validate and optionally save an uploaded activity spreadsheet."""
    content = read_upload(file)

    customer_id = customer_id or user.customer_id
    if not customer_id:
        raise ApiError("customerId could not be determined", 400, "CUSTOMER_ID_REQUIRED")
    ensure_customer_access(user, customer_id)
    if save:
        _check_save_target(db, customer_id, period_id)

    service = get_ingest_service()
    result = service.ingest_file(content, file.filename, session=db)
    if result.status == "error":
        return JSONResponse(status_code=400, content=result.model_dump(mode="json", exclude_none=True))

    response: Dict[str, Any] = result.model_dump(mode="json", exclude_none=True)
    if not save:
        response["message"] = f"Successfully processed {result.rows_imported} rows (preview mode)"
        return response

    response["message"] = f"Successfully processed and saved {result.rows_imported} rows"
    response.pop("data", None)
    if not result.data:
        return response

    upload = Upload(
        customer_id=customer_id,
        period_id=period_id,
        uploaded_by=user.id,
        original_name=file.filename,
        mime_type=file.content_type,
        size=len(content),
        file_hash=result.provenance_hash,
        status="processing",
        row_count=result.rows_imported,
        error_count=result.rows_failed,
    )
    db.add(upload)
    db.flush()

    saved = service.save_ingested_data(db, result.data, customer_id, period_id, upload.id)

    upload.status = "completed_with_errors" if saved.errors else "completed"
    upload.error_count = len(saved.errors)
    upload.validation_results = {
        "rows_imported": saved.created,
        "rows_failed": len(saved.errors),
        "errors": saved.errors,
    }
    db.flush()
    logger.info(
        "Ingested data saved: upload=%s created=%d errors=%d",
        upload.id, saved.created, len(saved.errors),
    )

    response["upload_id"] = upload.id
    response["activities_created"] = saved.created
    response["save_errors"] = saved.errors
    return response


@router.get("/categories")
def categories(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Emission categories that have factors in the library."""
    available = get_available_categories(db)
    return {"status": "success", "categories": available, "count": len(available)}


@router.get("/template")
def template(user: User = Depends(get_current_user)):
    """Expected columns with example rows."""
    return {
        "columns": [
            "Emission Category",
            "Site Name",
            "Quantity",
            "Unit",
            "Activity Date Start",
            "Activity Date End",
            "Notes",
        ],
        "example_rows": [
            {
                "Emission Category": "Natural Gas",
                "Site Name": "Main Office",
                "Quantity": 1500,
                "Unit": "kWh",
                "Activity Date Start": "2024-01-01",
                "Activity Date End": "2024-01-31",
                "Notes": "January consumption",
            },
            {
                "Emission Category": "Diesel",
                "Site Name": "Warehouse",
                "Quantity": 250,
                "Unit": "litres",
                "Activity Date Start": "2024-01-01",
                "Activity Date End": "2024-01-31",
                "Notes": "Fleet fuel",
            },
        ],
        "supported_categories": list(EMISSION_CATEGORIES),
        "notes": [
            "Column names are flexible: similar names are mapped automatically",
            "Dates can be in various formats (YYYY-MM-DD, DD/MM/YYYY, etc.)",
            'Emission categories can use common names (e.g. "Natural Gas", "Diesel")',
            "Notes and Scope are optional; start and end dates are needed to save rows",
        ],
    }


@router.get("/help")
def help_text(user: User = Depends(get_current_user)):
    return {
        "endpoint": "POST /api/ingest",
        "description": "Intelligent file ingestion for emission activity data",
        "features": [
            "Accepts Excel (.xlsx, .xls) and CSV files",
            "Column mapping using synonyms and similarity matching",
            "Row validation with detailed issue reporting",
            "Preview mode to validate before saving",
            "Emission categories drawn from the factor library",
        ],
        "usage": {
            "method": "POST",
            "content_type": "multipart/form-data",
            "file_field": "file",
            "query_parameters": {
                "customerId": "Customer ID (defaults to the caller's customer)",
                "periodId": "Reporting period ID (required if save=true)",
                "save": 'Set to "true" to save to database, omit for preview mode',
            },
        },
        "response_fields": {
            "status": "success or error",
            "rows_imported": "Number of returned rows",
            "rows_failed": "Number of rejected rows",
            "data": "Validated rows (preview mode only)",
            "issues": "Validation issues per row",
            "header_mappings": "How columns were mapped",
            "available_categories": "Emission categories from the factor library",
        },
        "other_endpoints": {
            "GET /api/ingest/categories": "List available emission categories",
            "GET /api/ingest/template": "Get template structure",
            "GET /api/ingest/help": "This help documentation",
        },
    }
