# -*- coding: utf-8 -*-
"""
Scope classification and factor category mapping

Activity types are free text (API activity types, ingestion categories
or inventory labels). Scope is decided by substring matching on the
upper-cased type; the factor category by a fixed lookup table.

Example:
    >>> from carbonledger.calculation.scope import determine_scope, map_activity_to_category
    >>> determine_scope("STATIONARY_COMBUSTION_NATURAL_GAS")
    'SCOPE_1'
    >>> map_activity_to_category("ELECTRICITY")
    'ELECTRICITY_GRID'
"""

from typing import Dict, Tuple

SCOPE_1 = "SCOPE_1"
SCOPE_2 = "SCOPE_2"
SCOPE_3 = "SCOPE_3"

SCOPE_1_MARKERS: Tuple[str, ...] = (
    "NATURAL_GAS",
    "LPG",
    "DIESEL",
    "PETROL",
    "COAL",
    "FUEL_OIL",
    "REFRIGERANTS",
    "PROCESS_EMISSIONS",
    "FUGITIVE_EMISSIONS",
)

SCOPE_2_MARKERS: Tuple[str, ...] = (
    "ELECTRICITY",
    "HEAT_STEAM",
    "COOLING",
)

ACTIVITY_CATEGORY_MAP: Dict[str, str] = {
    "ELECTRICITY": "ELECTRICITY_GRID",
    "NATURAL_GAS": "NATURAL_GAS",
    "DIESEL": "DIESEL",
    "PETROL": "PETROL",
    "LPG": "LPG",
    "BUSINESS_TRAVEL": "BUSINESS_TRAVEL_AIR",
    "WASTE": "WASTE_LANDFILL",
    "WATER": "WATER_SUPPLY",
    "OTHER": "OTHER",
    # Generic API activity types
    "GAS": "NATURAL_GAS",
    "FUEL": "DIESEL",
    # Ingestion emission categories
    "STATIONARY_COMBUSTION_NATURAL_GAS": "NATURAL_GAS",
    "MOBILE_COMBUSTION_DIESEL": "DIESEL",
    "STATIONARY_COMBUSTION_LPG": "LPG",
    "FUGITIVE_EMISSIONS_REFRIGERANTS": "REFRIGERANTS_R134A",
}


def determine_scope(activity_type: str) -> str:
    """Classify an activity type as SCOPE_1, SCOPE_2 or SCOPE_3."""
    upper = (activity_type or "").upper()
    if any(marker in upper for marker in SCOPE_1_MARKERS):
        return SCOPE_1
    if any(marker in upper for marker in SCOPE_2_MARKERS):
        return SCOPE_2
    return SCOPE_3


def map_activity_to_category(activity_type: str) -> str:
    """Map an activity type to its emission factor category (identity when unmapped)."""
    return ACTIVITY_CATEGORY_MAP.get(activity_type, activity_type)
