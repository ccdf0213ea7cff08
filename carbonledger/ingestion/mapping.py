# -*- coding: utf-8 -*-
"""
Ingestion Mapping Tables - CarbonLedger

Static lookup tables used by the header mapper and category normaliser:

    - EMISSION_CATEGORIES: canonical emission category identifiers
    - TARGET_FIELDS: canonical row schema for ingested activity data
    - FIELD_SYNONYMS: human column names per target field
    - CATEGORY_SYNONYMS: human category names per emission category
    - Sheet and header keywords used when choosing a sheet and header row

All matching against these tables is performed on lower-cased text, so
every synonym here is lower case.

Example:
    >>> from carbonledger.ingestion.mapping import FIELD_SYNONYMS
    >>> "qty" in FIELD_SYNONYMS["quantity"]
    True

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

from typing import Dict, List, Tuple

__all__ = [
    "EMISSION_CATEGORIES",
    "TARGET_FIELDS",
    "REQUIRED_FIELDS",
    "DATE_FIELDS",
    "FIELD_SYNONYMS",
    "CATEGORY_SYNONYMS",
    "MAPPING_CONFIDENCE_THRESHOLD",
    "SHEET_KEYWORDS",
    "HEADER_KEYWORDS",
]


# ---------------------------------------------------------------------------
# Canonical identifiers
# ---------------------------------------------------------------------------

EMISSION_CATEGORIES: Tuple[str, ...] = (
    "STATIONARY_COMBUSTION_NATURAL_GAS",
    "MOBILE_COMBUSTION_DIESEL",
    "PROCESS_EMISSIONS",
    "FUGITIVE_EMISSIONS_REFRIGERANTS",
    "STATIONARY_COMBUSTION_LPG",
)

TARGET_FIELDS: Tuple[str, ...] = (
    "emission_category",
    "site_name",
    "quantity",
    "unit",
    "activity_date_start",
    "activity_date_end",
    "scope",
    "notes",
)

REQUIRED_FIELDS: Tuple[str, ...] = ("emission_category", "quantity")

DATE_FIELDS: Tuple[str, ...] = ("activity_date_start", "activity_date_end")

MAPPING_CONFIDENCE_THRESHOLD = 0.6


# ---------------------------------------------------------------------------
# Column header synonyms
# ---------------------------------------------------------------------------

FIELD_SYNONYMS: Dict[str, List[str]] = {
    "emission_category": [
        "emission_category",
        "category",
        "emission type",
        "activity type",
        "type",
        "emission_type",
        "activity_type",
        "fuel type",
        "fuel_type",
        "source",
        "activity",
        "emission",
        "fuel",
        "energy type",
        "energy_type",
        "fuel type or activity",
        "fuel or activity",
        "activity or fuel",
        "f",
        "fuel/activity",
    ],
    "site_name": [
        "site_name",
        "site",
        "location",
        "facility",
        "facility_name",
        "site name",
        "location name",
        "building",
        "office",
        "site id",
        "site_id",
        "facility id",
        "facility_id",
        "gpc ref. no. crf - sector",
        "gpc ref",
        "sector",
        "crf sector",
    ],
    "quantity": [
        "quantity",
        "amount",
        "value",
        "consumption",
        "usage",
        "volume",
        "total",
        "qty",
        "activity data",
        "activity_data",
        "activity data - amount",
        "activity amount",
    ],
    "unit": [
        "unit",
        "units",
        "measurement unit",
        "uom",
        "unit of measure",
        "measure",
        "activity data - unit",
        "activity data unit",
    ],
    "activity_date_start": [
        "activity_date_start",
        "start_date",
        "from_date",
        "date_from",
        "start date",
        "from date",
        "period start",
        "begin date",
        "activity start",
        "date",
        "activity date",
        "activity_date",
        "transaction date",
        "transaction_date",
        "inventory year",
        "year",
    ],
    "activity_date_end": [
        "activity_date_end",
        "end_date",
        "to_date",
        "date_to",
        "end date",
        "to date",
        "period end",
        "finish date",
        "activity end",
        "date",
        "activity date",
        "activity_date",
        "transaction date",
        "transaction_date",
    ],
    "scope": [
        "scope",
        "emission scope",
        "emission_scope",
        "ghg scope",
        "ghg_scope",
        "scope type",
        "scope_type",
    ],
    "notes": [
        "notes",
        "note",
        "comments",
        "comment",
        "description",
        "remarks",
        "details",
        "additional info",
        "desc",
        "activity data - description",
        "activity description",
    ],
}


# ---------------------------------------------------------------------------
# Emission category synonyms
# ---------------------------------------------------------------------------

CATEGORY_SYNONYMS: Dict[str, List[str]] = {
    "STATIONARY_COMBUSTION_NATURAL_GAS": [
        "natural gas",
        "naturalgas",
        "natural_gas",
        "ng",
        "gas",
        "stationary combustion natural gas",
        "stationary natural gas",
        "natural gas combustion",
        "electricity",
        "electric",
        "power",
        "grid electricity",
        "mains electricity",
    ],
    "MOBILE_COMBUSTION_DIESEL": [
        "diesel",
        "mobile diesel",
        "mobile combustion diesel",
        "diesel fuel",
        "diesel combustion",
        "vehicle diesel",
        "transport diesel",
    ],
    "PROCESS_EMISSIONS": [
        "process emissions",
        "process",
        "industrial process",
        "manufacturing",
        "production emissions",
        "process_emissions",
    ],
    "FUGITIVE_EMISSIONS_REFRIGERANTS": [
        "refrigerants",
        "refrigerant",
        "fugitive emissions",
        "fugitive refrigerants",
        "fugitive emissions refrigerants",
        "hvac",
        "cooling",
        "ac refrigerant",
        "r134a",
        "r410a",
    ],
    "STATIONARY_COMBUSTION_LPG": [
        "lpg",
        "liquefied petroleum gas",
        "liquid petroleum gas",
        "propane",
        "butane",
        "stationary combustion lpg",
        "stationary lpg",
        "lpg combustion",
    ],
}


# ---------------------------------------------------------------------------
# Sheet / header heuristics
# ---------------------------------------------------------------------------

# Sheet names containing any of these score higher when picking a sheet.
SHEET_KEYWORDS: Tuple[str, ...] = (
    "emission",
    "activity",
    "data",
    "scope",
    "carbon",
    "ghg",
    "co2",
    "consumption",
    "quantity",
    "fuel",
    "energy",
    "site",
    "location",
)

# A header row must contain at least one cell mentioning one of these.
HEADER_KEYWORDS: Tuple[str, ...] = (
    "emission",
    "type",
    "category",
    "quantity",
    "site",
    "location",
    "date",
)
