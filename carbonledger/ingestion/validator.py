# -*- coding: utf-8 -*-
"""
Row Validator - CarbonLedger Ingestion

Lenient pydantic schema for normalised ingestion rows. Values are coerced
wherever possible and missing optional values receive defaults, so that
only rows without an emission category or with an unparseable quantity
are rejected.

Example:
    >>> from carbonledger.ingestion.validator import validate_rows
    >>> valid, issues = validate_rows([
    ...     {"emission_category": "MOBILE_COMBUSTION_DIESEL", "quantity": "1,200"},
    ...     {"emission_category": None, "quantity": 3},
    ... ])
    >>> valid[0]["quantity"], valid[0]["site_name"], issues[0].row_index
    (1200.0, 'Unknown Site', 2)

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from carbonledger.metrics import record_ingest_rows

logger = logging.getLogger(__name__)

__all__ = [
    "IngestRow",
    "ValidationIssue",
    "coerce_date",
    "validate_rows",
]

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%d %b %Y",
    "%d %B %Y",
    "%b %Y",
    "%B %Y",
)


def coerce_date(value: Any) -> Optional[Union[date, str]]:
    """Coerce a cell value to a date where possible.

    Datetimes lose their time component, bare years (1900-2100) become
    January 1st and recognised date strings are parsed. Anything else is
    returned as text.

    Args:
        value: Raw cell value.

    Returns:
        A date, the original text, or None for empty input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if float(value).is_integer() and 1900 <= int(value) <= 2100:
            return date(int(value), 1, 1)
        return str(value)

    text = str(value).strip()
    if not text:
        return None
    if text.isdigit() and len(text) == 4 and 1900 <= int(text) <= 2100:
        return date(int(text), 1, 1)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return text


def _to_text(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class IngestRow(BaseModel):
    """A normalised, validated ingestion row."""

    emission_category: str = Field(..., min_length=1)
    site_name: str = Field(default="Unknown Site")
    quantity: float = Field(default=0.0)
    unit: str = Field(default="units")
    activity_date_start: Optional[Union[date, str]] = None
    activity_date_end: Optional[Union[date, str]] = None
    scope: Optional[str] = None
    notes: str = Field(default="")

    model_config = {"extra": "ignore"}

    @field_validator("emission_category", mode="before")
    @classmethod
    def _category_required(cls, value: Any) -> Any:
        value = _to_text(value)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("Emission category/Activity type is required")
        return value

    @field_validator("site_name", mode="before")
    @classmethod
    def _default_site(cls, value: Any) -> Any:
        value = _to_text(value)
        if value is None or (isinstance(value, str) and not value.strip()):
            return "Unknown Site"
        return value

    @field_validator("unit", mode="before")
    @classmethod
    def _default_unit(cls, value: Any) -> Any:
        value = _to_text(value)
        if value is None or (isinstance(value, str) and not value.strip()):
            return "units"
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def _default_notes(cls, value: Any) -> Any:
        return "" if value is None else _to_text(value)

    @field_validator("scope", mode="before")
    @classmethod
    def _scope_text(cls, value: Any) -> Any:
        return _to_text(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value: Any) -> Any:
        if value is None:
            return 0.0
        if isinstance(value, str):
            text = value.strip().replace(",", "")
            if not text:
                return 0.0
            try:
                return float(text)
            except ValueError:
                raise ValueError(f"Invalid quantity: {value}") from None
        return value

    @field_validator("activity_date_start", "activity_date_end", mode="before")
    @classmethod
    def _coerce_dates(cls, value: Any) -> Any:
        return coerce_date(value)


class ValidationIssue(BaseModel):
    """A row that failed validation (``row_index`` is 1-based)."""

    row_index: int = Field(..., ge=1)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_rows(
    rows: Sequence[Dict[str, Any]],
) -> Tuple[List[Dict[str, Any]], List[ValidationIssue]]:
    """Partition normalised rows into valid rows and issues.

    Args:
        rows: Normalised rows.

    Returns:
        Tuple of (valid rows as dicts, validation issues).
    """
    valid: List[Dict[str, Any]] = []
    issues: List[ValidationIssue] = []

    for index, row in enumerate(rows):
        try:
            valid.append(IngestRow.model_validate(row).model_dump())
        except ValidationError as exc:
            issues.append(ValidationIssue(
                row_index=index + 1,
                errors=[
                    {
                        "field": ".".join(str(p) for p in err["loc"]),
                        "message": err["msg"],
                        "type": err["type"],
                    }
                    for err in exc.errors()
                ],
                raw=dict(row),
            ))

    record_ingest_rows(len(valid), len(issues))
    logger.info(
        "Validation completed: total=%d valid=%d invalid=%d",
        len(rows), len(valid), len(issues),
    )
    return valid, issues
