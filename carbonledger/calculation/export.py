# -*- coding: utf-8 -*-
"""
CSV export of emission results.

Both exports expect EmissionResult rows with ``activity`` (and its
``site``), ``factor`` and, for the report, ``calc_run`` loaded. Quoting is
minimal (fields containing a comma, quote or line break are quoted with
embedded quotes doubled) and lines end with CRLF.
"""

import csv
import io
import logging
from typing import Iterable, List

from carbonledger.db.models import EmissionResult

logger = logging.getLogger(__name__)

CALC_RUN_HEADERS = [
    "Activity ID",
    "Activity Type",
    "Site",
    "Scope",
    "Emission Factor Name",
    "Emission Factor Source",
    "Quantity",
    "Unit",
    "Result (kgCO2e)",
]

REPORT_HEADERS = [
    "Site Name",
    "Site Country",
    "Activity Type",
    "Activity Date Start",
    "Activity Date End",
    "Quantity",
    "Unit",
    "Emission Scope",
    "CO2e (kg)",
    "CO2e (tonnes)",
    "Emission Factor Source",
    "Factor Version",
    "Calculation Date",
]


def _write(headers: List[str], rows: Iterable[List[object]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(headers)
    count = 0
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
        count += 1
    logger.debug("CSV export: %d rows", count)
    return buffer.getvalue()


def calc_run_csv(results: Iterable[EmissionResult]) -> str:
    """Per-activity results of one calculation run."""
    rows = (
        [
            r.activity.id,
            r.activity.type,
            r.activity.site.name if r.activity.site else "N/A",
            r.scope,
            r.factor.source_name,
            r.factor.source_version,
            r.activity.quantity,
            r.activity.unit,
            f"{r.result_kg_co2e:.4f}",
        ]
        for r in results
    )
    return _write(CALC_RUN_HEADERS, rows)


def emissions_report_csv(results: Iterable[EmissionResult]) -> str:
    """Detailed emissions report across runs."""
    rows = (
        [
            r.activity.site.name,
            r.activity.site.country,
            r.activity.type,
            r.activity.activity_date_start.isoformat(),
            r.activity.activity_date_end.isoformat(),
            r.activity.quantity,
            r.activity.unit,
            r.scope.replace("SCOPE_", "Scope "),
            f"{r.result_kg_co2e:.3f}",
            f"{r.result_kg_co2e / 1000:.6f}",
            r.factor.source_name,
            r.factor.source_version,
            r.calc_run.completed_at.date().isoformat() if r.calc_run.completed_at else "N/A",
        ]
        for r in results
    )
    return _write(REPORT_HEADERS, rows)


__all__ = ["calc_run_csv", "emissions_report_csv", "CALC_RUN_HEADERS", "REPORT_HEADERS"]
