# -*- coding: utf-8 -*-
"""
Row Normalizer - CarbonLedger Ingestion

Rewrites raw spreadsheet rows into the canonical target schema using the
header mappings, normalising emission category labels and filling in
missing activity dates.

Date fill rules:
    - neither date present: use the mapped date column for both
    - only the start date present: the end date copies it
    - only the end date present: the start date copies it

Example:
    >>> from carbonledger.ingestion.header_mapper import HeaderMapping
    >>> from carbonledger.ingestion.normalizer import normalize_rows
    >>> rows = [{"Fuel": "propane", "Qty": 5, "Date": "2024-03-01"}]
    >>> mappings = [
    ...     HeaderMapping(target_field="emission_category", source_column="Fuel", confidence=1),
    ...     HeaderMapping(target_field="activity_date_start", source_column="Date", confidence=1),
    ... ]
    >>> normalize_rows(rows, mappings)[0]["activity_date_end"]
    '2024-03-01'

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from carbonledger.ingestion.header_mapper import HeaderMapping, normalize_emission_category
from carbonledger.ingestion.mapping import TARGET_FIELDS

logger = logging.getLogger(__name__)

__all__ = ["normalize_row", "normalize_rows"]


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def normalize_row(row: Dict[str, Any], mapping_dict: Dict[str, str]) -> Dict[str, Any]:
    """Normalise one raw row.

    Args:
        row: Raw row keyed by source header.
        mapping_dict: target field -> source column.

    Returns:
        Dict keyed by every target field.
    """
    normalized: Dict[str, Any] = {}
    for field in TARGET_FIELDS:
        source = mapping_dict.get(field)
        if source is None:
            normalized[field] = None
            continue

        value = row.get(source)
        if field == "emission_category" and _present(value):
            # Keep the original label when it cannot be normalised
            value = normalize_emission_category(value) or value
        normalized[field] = value

    start = normalized["activity_date_start"]
    end = normalized["activity_date_end"]
    if not _present(start) and not _present(end):
        date_column: Optional[str] = (
            mapping_dict.get("activity_date_start") or mapping_dict.get("activity_date_end")
        )
        if date_column and _present(row.get(date_column)):
            normalized["activity_date_start"] = row[date_column]
            normalized["activity_date_end"] = row[date_column]
    elif _present(start) and not _present(end):
        normalized["activity_date_end"] = start
    elif not _present(start) and _present(end):
        normalized["activity_date_start"] = end

    return normalized


def normalize_rows(
    rows: Sequence[Dict[str, Any]],
    mappings: Sequence[HeaderMapping],
) -> List[Dict[str, Any]]:
    """Normalise raw rows into the target schema.

    Args:
        rows: Raw rows keyed by source header.
        mappings: Header mappings from the header mapper.

    Returns:
        One normalised dict per input row, in order.
    """
    mapping_dict = {m.target_field: m.source_column for m in mappings}
    normalized = [normalize_row(row, mapping_dict) for row in rows]
    logger.debug("Normalized %d rows using %d mappings", len(normalized), len(mapping_dict))
    return normalized
