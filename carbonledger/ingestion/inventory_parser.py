# -*- coding: utf-8 -*-
"""
GPC/CRF Emissions Inventory Parser - CarbonLedger Ingestion

Parses city/organisation emissions inventories laid out in the GPC
(Global Protocol for Community-Scale GHG Inventories) / CRF reporting
format: one row per sector line with an inventory year, GPC reference,
CRF sector and sub-sector, scope, fuel type or activity, notation key
and an activity data amount plus unit.

Unlike the generic upload pipeline, columns are detected with regular
expressions over the header names and rows are validated strictly, with
per-row errors and warnings.

Notation keys (IPCC):
    NO  not occurring       NA  not applicable
    NE  not estimated       IE  included elsewhere
    NR  not reported        C   confidential

Example:
    >>> from carbonledger.ingestion.inventory_parser import parse_content, get_summary
    >>> rows = parse_content(content, "inventory.csv")
    >>> get_summary(rows).valid_rows

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from carbonledger.exceptions import FileReadError
from carbonledger.ingestion.file_reader import (
    UNREADABLE_FILE_MESSAGE,
    detect_format,
    read_grid,
)

logger = logging.getLogger(__name__)

__all__ = [
    "InventoryMappedRow",
    "ParsedInventoryRow",
    "ParsedInventory",
    "InventorySummary",
    "InventoryActivity",
    "COLUMN_PATTERNS",
    "detect_columns",
    "parse_row",
    "parse_file",
    "parse_content",
    "get_summary",
    "to_activity_data",
]

DEFAULT_SOURCE = "EMISSIONS_INVENTORY_UPLOAD"

# Checked in order; each header is claimed by the first field it matches.
COLUMN_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("gpc_ref_no", re.compile(r"gpc.*ref|gpc.*no|reference.*no", re.I)),
    ("notation_key", re.compile(r"notation.*key|notation", re.I)),
    ("crf_sub_sector", re.compile(r"crf.*sub.*sector|sub.*sector", re.I)),
    ("crf_sector", re.compile(r"crf.*sector|sector", re.I)),
    ("inventory_year", re.compile(r"inventory.*year|year", re.I)),
    ("activity_data_amount", re.compile(r"activity.*data.*amount|amount|quantity", re.I)),
    ("activity_data_unit", re.compile(r"activity.*data.*unit|unit", re.I)),
    ("scope", re.compile(r"scope", re.I)),
    ("fuel_type_or_activity", re.compile(r"fuel.*type|activity|fuel.*activity", re.I)),
    ("description", re.compile(r"description|desc|notes", re.I)),
]

NOTATION_KEYS = ("NO", "NA", "NE", "IE", "NR", "C")
_NOTATION_RE = re.compile(r"^(NO|NA|NE|IE|NR|C)$")
_NUMBER_PREFIX_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_INT_PREFIX_RE = re.compile(r"^[+-]?\d+")

SCOPE_ALIASES: Dict[str, str] = {
    "SCOPE 1": "SCOPE_1",
    "SCOPE1": "SCOPE_1",
    "1": "SCOPE_1",
    "SCOPE 2": "SCOPE_2",
    "SCOPE2": "SCOPE_2",
    "2": "SCOPE_2",
    "SCOPE 3": "SCOPE_3",
    "SCOPE3": "SCOPE_3",
    "3": "SCOPE_3",
    "INDIRECT EMISSIONS": "SCOPE_2",
    "DIRECT EMISSIONS": "SCOPE_1",
}

ACTIVITY_TYPE_MAP: Dict[str, str] = {
    # Electricity
    "ELECTRICITY": "ELECTRICITY",
    "ELECTRIC": "ELECTRICITY",
    "POWER": "ELECTRICITY",
    # Heating and cooling
    "DISTRICT HEATING": "DISTRICT_HEATING",
    "DISTRICT HEATING - HOT WATER": "DISTRICT_HEATING",
    "DISTRICT HEATING - STEAM": "DISTRICT_HEATING",
    "DISTRICT COOLING": "DISTRICT_COOLING",
    # Natural gas
    "NATURAL GAS": "NATURAL_GAS",
    "GAS": "NATURAL_GAS",
    # Fuels
    "DIESEL": "DIESEL",
    "DIESEL OIL": "DIESEL",
    "PETROL": "PETROL",
    "GASOLINE": "PETROL",
    "KEROSENE": "KEROSENE",
    "KEROSENE (PARAFFIN)": "KEROSENE",
    "LIQUEFIED PETROLEUM GAS (LPG)": "LPG",
    "LPG": "LPG",
    "COAL": "COAL",
    "COAL (BITUMINOUS OR BLACK COAL)": "COAL",
    "RESIDUAL FUEL OIL": "FUEL_OIL",
    "WOOD OR WOOD WASTE": "BIOMASS",
    # Bio
    "OTHER BIOGASS": "BIOGAS",
    "OTHER BIOGAS": "BIOGAS",
    "OTHER LIQUID BIOFUELS": "BIOFUEL",
    # Generic
    "FUEL": "FUEL",
    "TRANSPORT": "TRANSPORT",
    "WASTE": "WASTE",
    "WATER": "WATER",
}


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class InventoryMappedRow(_CamelModel):
    """Row values translated to activity fields."""

    inventory_year: Optional[int] = None
    sector: Optional[str] = None
    sub_sector: Optional[str] = None
    scope: Optional[str] = None
    activity_type: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    notation_key: Optional[str] = None
    source: str = DEFAULT_SOURCE
    notes: str = ""


class ParsedInventoryRow(_CamelModel):
    """One parsed inventory row with its validation outcome."""

    row_index: int
    raw: Dict[str, Any] = Field(default_factory=dict)
    mapped: InventoryMappedRow = Field(default_factory=InventoryMappedRow)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class InventorySummary(_CamelModel):
    total_rows: int = 0
    valid_rows: int = 0
    error_rows: int = 0
    warning_rows: int = 0
    year_range: Dict[str, Optional[int]] = Field(
        default_factory=lambda: {"min": None, "max": None},
    )
    activity_types: Dict[str, int] = Field(default_factory=dict)
    scopes: Dict[str, int] = Field(default_factory=dict)


class InventoryActivity(_CamelModel):
    """Activity ready to be persisted."""

    site_id: str
    period_id: str
    type: str
    quantity: float
    unit: str
    activity_date_start: date
    activity_date_end: date
    source: str = DEFAULT_SOURCE
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Column detection
# ---------------------------------------------------------------------------


def detect_columns(headers: Sequence[Any]) -> Dict[str, str]:
    """Map inventory fields to header names.

    Returns:
        Dict of field name -> header (only detected fields).
    """
    mapping: Dict[str, str] = {}
    for header in headers:
        if header is None:
            continue
        clean = str(header).strip()
        if not clean:
            continue
        for field, pattern in COLUMN_PATTERNS:
            if field in mapping:
                continue
            if pattern.search(clean):
                mapping[field] = clean
                break

    logger.info("Auto-detected inventory columns: %s", mapping)
    return mapping


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _parse_year(value: Any) -> Optional[int]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value) if 1900 <= value <= 2100 else None
    match = _INT_PREFIX_RE.match(_clean(value))
    if match:
        year = int(match.group(0))
        if 1900 <= year <= 2100:
            return year
    return None


def _parse_number(value: Any) -> Optional[float]:
    """Parse an amount; notation keys and unparseable text give None."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)

    text = _clean(value).upper()
    if _NOTATION_RE.match(text):
        return None

    match = _NUMBER_PREFIX_RE.match(re.sub(r"[,\s]", "", text))
    return float(match.group(0)) if match else None


def _parse_scope(value: Any) -> str:
    scope = _clean(value).upper()
    return SCOPE_ALIASES.get(scope, scope)


def _map_activity_type(value: Any) -> str:
    activity = _clean(value).upper()
    if activity in ACTIVITY_TYPE_MAP:
        return ACTIVITY_TYPE_MAP[activity]
    for key, mapped in ACTIVITY_TYPE_MAP.items():
        if key in activity:
            return mapped
    return re.sub(r"[^A-Z0-9_]", "_", activity)


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def parse_row(data: Dict[str, Any], row_index: int, mapping: Dict[str, str]) -> ParsedInventoryRow:
    """Parse and validate one inventory row.

    Args:
        data: Row keyed by header.
        row_index: Spreadsheet row number (for messages).
        mapping: Field -> header mapping from detect_columns.
    """
    errors: List[str] = []
    warnings: List[str] = []
    raw: Dict[str, Any] = {}
    mapped = InventoryMappedRow()

    for field, header in mapping.items():
        value = data.get(header)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        raw[field] = value

    if "inventory_year" in raw:
        year = _parse_year(raw["inventory_year"])
        if year is not None:
            mapped.inventory_year = year
        else:
            errors.append(f"Invalid inventory year: {raw['inventory_year']}")

    if "crf_sector" in raw:
        mapped.sector = _clean(raw["crf_sector"])
    if "crf_sub_sector" in raw:
        mapped.sub_sector = _clean(raw["crf_sub_sector"])
    if "scope" in raw:
        mapped.scope = _parse_scope(raw["scope"])
    if "fuel_type_or_activity" in raw:
        mapped.activity_type = _map_activity_type(raw["fuel_type_or_activity"])

    if "activity_data_amount" in raw:
        quantity = _parse_number(raw["activity_data_amount"])
        if quantity is not None:
            if quantity > 0:
                mapped.quantity = quantity
            elif quantity == 0:
                warnings.append("Activity data amount is zero")
                mapped.quantity = 0.0
            else:
                errors.append("Activity data amount must be non-negative")
        elif "notation_key" in raw:
            warnings.append(f"No quantity data (notation: {raw['notation_key']})")
        elif _NOTATION_RE.match(_clean(raw["activity_data_amount"]).upper()):
            # Notation key entered in the amount column
            raw["notation_key"] = _clean(raw["activity_data_amount"]).upper()
            warnings.append(f"No quantity data (notation: {raw['notation_key']})")
        else:
            errors.append(f"Invalid activity data amount: {raw['activity_data_amount']}")

    if "activity_data_unit" in raw:
        mapped.unit = _clean(raw["activity_data_unit"])
    if "notation_key" in raw:
        mapped.notation_key = _clean(raw["notation_key"])

    note_parts: List[str] = []
    if "gpc_ref_no" in raw:
        note_parts.append(f"GPC Ref: {_clean(raw['gpc_ref_no'])}")
    if mapped.sector:
        note_parts.append(f"Sector: {mapped.sector}")
    if mapped.sub_sector:
        note_parts.append(f"Sub-sector: {mapped.sub_sector}")
    if mapped.notation_key:
        note_parts.append(f"Notation: {mapped.notation_key}")
    if "description" in raw:
        note_parts.append(f"Description: {_clean(raw['description'])}")
    mapped.notes = " | ".join(note_parts)

    if mapped.quantity is None and not mapped.notation_key:
        errors.append("Either quantity or notation key must be provided")
    if mapped.quantity and not mapped.unit:
        errors.append("Unit is required when quantity is provided")
    if not mapped.activity_type:
        errors.append("Activity type is required")

    return ParsedInventoryRow(
        row_index=row_index, raw=raw, mapped=mapped, errors=errors, warnings=warnings,
    )


class ParsedInventory(_CamelModel):
    """A parsed inventory file: its header row, detected columns and rows."""

    headers: List[str] = Field(default_factory=list)
    columns: Dict[str, str] = Field(default_factory=dict)
    rows: List[ParsedInventoryRow] = Field(default_factory=list)


def parse_file(
    content: bytes,
    filename: Optional[str] = None,
    mapping: Optional[Dict[str, str]] = None,
) -> ParsedInventory:
    """Parse an inventory CSV or the first sheet of a workbook.

    The first row holds the headers. Row indexes are spreadsheet row
    numbers, so the first data row is 2. ``columns`` maps each detected
    inventory field to the header it was read from.

    Raises:
        FileReadError: If the content cannot be read.
    """
    fmt = detect_format(content, filename)
    try:
        sheets = read_grid(content, fmt)
    except FileReadError:
        raise
    except Exception as exc:
        logger.error("Inventory file %s unreadable as %s: %s", filename or "<upload>", fmt.value, exc)
        raise FileReadError(UNREADABLE_FILE_MESSAGE, filename=filename) from exc

    if not sheets:
        raise FileReadError("No worksheet found in Excel file", filename=filename)

    grid = sheets[0][1]
    if not grid:
        return ParsedInventory()
    headers = [
        _clean(h) or f"col_{i + 1}" for i, h in enumerate(grid[0])
    ]
    mapping = mapping or detect_columns(headers)

    results: List[ParsedInventoryRow] = []
    for offset, row in enumerate(grid[1:], start=2):
        if all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in row):
            continue
        data = {headers[i]: cell for i, cell in enumerate(row) if i < len(headers)}
        results.append(parse_row(data, offset, mapping))

    logger.info("Inventory parsing completed: %d rows parsed", len(results))
    return ParsedInventory(headers=headers, columns=mapping, rows=results)


def parse_content(
    content: bytes,
    filename: Optional[str] = None,
    mapping: Optional[Dict[str, str]] = None,
) -> List[ParsedInventoryRow]:
    """Parsed rows of an inventory file (see ``parse_file``)."""
    return parse_file(content, filename, mapping).rows


# ---------------------------------------------------------------------------
# Summary and conversion
# ---------------------------------------------------------------------------


def get_summary(rows: Sequence[ParsedInventoryRow]) -> InventorySummary:
    summary = InventorySummary(total_rows=len(rows))
    years: List[int] = []

    for row in rows:
        if row.errors:
            summary.error_rows += 1
        else:
            summary.valid_rows += 1
        if row.warnings:
            summary.warning_rows += 1
        if row.mapped.inventory_year:
            years.append(row.mapped.inventory_year)
        if row.mapped.activity_type:
            key = row.mapped.activity_type
            summary.activity_types[key] = summary.activity_types.get(key, 0) + 1
        if row.mapped.scope:
            summary.scopes[row.mapped.scope] = summary.scopes.get(row.mapped.scope, 0) + 1

    if years:
        summary.year_range = {"min": min(years), "max": max(years)}
    return summary


def to_activity_data(
    rows: Sequence[ParsedInventoryRow],
    site_id: str,
    period_id: str,
    skip_errors: bool = True,
) -> List[InventoryActivity]:
    """Convert parsed rows into activities spanning their inventory year.

    Rows without a (non-zero) quantity, a unit or an activity type are
    skipped, as are rows with errors when ``skip_errors`` is set.
    """
    activities: List[InventoryActivity] = []
    for row in rows:
        if skip_errors and row.errors:
            continue
        m = row.mapped
        if not m.quantity or not m.unit or not m.activity_type:
            continue

        year = m.inventory_year or date.today().year
        activities.append(InventoryActivity(
            site_id=site_id,
            period_id=period_id,
            type=m.activity_type,
            quantity=m.quantity,
            unit=m.unit,
            activity_date_start=date(year, 1, 1),
            activity_date_end=date(year, 12, 31),
            source=m.source or DEFAULT_SOURCE,
            notes=m.notes or None,
        ))
    return activities
