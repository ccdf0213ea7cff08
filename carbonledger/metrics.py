# -*- coding: utf-8 -*-
"""
Prometheus Metrics - CarbonLedger

Metrics:
    1. carbonledger_ingest_files_total (Counter, labels: status)
    2. carbonledger_ingest_duration_seconds (Histogram)
    3. carbonledger_ingest_rows_total (Counter, labels: outcome)
    4. carbonledger_header_mappings_total (Counter, labels: field)
    5. carbonledger_calc_runs_total (Counter, labels: status)
    6. carbonledger_calc_run_duration_seconds (Histogram)
    7. carbonledger_activity_calculations_total (Counter, labels: scope, outcome)
    8. carbonledger_emissions_kgco2e_total (Counter, labels: scope)
    9. carbonledger_http_requests_total (Counter, labels: method, endpoint, status)
    10. carbonledger_http_request_duration_seconds (Histogram, labels: method, endpoint)

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Uploaded files by ingestion outcome
ingest_files_total = Counter(
    "carbonledger_ingest_files_total",
    "Total files passed through the ingestion pipeline",
    labelnames=["status"],
)

# 2. End-to-end ingestion duration
ingest_duration_seconds = Histogram(
    "carbonledger_ingest_duration_seconds",
    "File ingestion duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# 3. Rows by validation outcome
ingest_rows_total = Counter(
    "carbonledger_ingest_rows_total",
    "Total ingested rows by validation outcome",
    labelnames=["outcome"],
)

# 4. Header mappings by target field
header_mappings_total = Counter(
    "carbonledger_header_mappings_total",
    "Total source headers mapped onto target fields",
    labelnames=["field"],
)

# 5. Calculation runs by final status
calc_runs_total = Counter(
    "carbonledger_calc_runs_total",
    "Total calculation runs by final status",
    labelnames=["status"],
)

# 6. Calculation run duration
calc_run_duration_seconds = Histogram(
    "carbonledger_calc_run_duration_seconds",
    "Calculation run duration in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# 7. Per-activity calculations
activity_calculations_total = Counter(
    "carbonledger_activity_calculations_total",
    "Total activity calculations by scope and outcome",
    labelnames=["scope", "outcome"],
)

# 8. Emissions produced
emissions_kgco2e_total = Counter(
    "carbonledger_emissions_kgco2e_total",
    "Total calculated emissions in kgCO2e",
    labelnames=["scope"],
)

# 9. HTTP requests
http_requests_total = Counter(
    "carbonledger_http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"],
)

# 10. HTTP request latency
http_request_duration_seconds = Histogram(
    "carbonledger_http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=["method", "endpoint"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_ingest(status: str, duration_seconds: float) -> None:
    """Record a completed ingestion.

    Args:
        status: ``success`` or ``error``.
        duration_seconds: Processing time in seconds.
    """
    ingest_files_total.labels(status=status).inc()
    ingest_duration_seconds.observe(duration_seconds)


def record_ingest_rows(valid: int, invalid: int) -> None:
    """Record validated and rejected row counts."""
    if valid:
        ingest_rows_total.labels(outcome="valid").inc(valid)
    if invalid:
        ingest_rows_total.labels(outcome="invalid").inc(invalid)


def record_header_mapping(field: str) -> None:
    """Record one accepted header mapping for ``field``."""
    header_mappings_total.labels(field=field).inc()


def record_calc_run(status: str, duration_seconds: float) -> None:
    """Record a finished calculation run.

    Args:
        status: Final run status (COMPLETED or FAILED).
        duration_seconds: Run duration in seconds.
    """
    calc_runs_total.labels(status=status).inc()
    calc_run_duration_seconds.observe(duration_seconds)


def record_activity_calculation(scope: str, kg_co2e: float = 0.0, ok: bool = True) -> None:
    """Record one activity calculation and its emissions.

    Args:
        scope: Scope label (SCOPE_1, SCOPE_2, SCOPE_3 or unknown).
        kg_co2e: Emissions produced by the calculation.
        ok: Whether the calculation succeeded.
    """
    activity_calculations_total.labels(
        scope=scope, outcome="success" if ok else "failure",
    ).inc()
    if ok and kg_co2e > 0:
        emissions_kgco2e_total.labels(scope=scope).inc(kg_co2e)



def record_http_request(method: str, endpoint: str, status: int, duration_seconds: float) -> None:
    """Record one served HTTP request. ``endpoint`` is the route template."""
    http_requests_total.labels(method=method, endpoint=endpoint, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration_seconds)


__all__ = [
    "record_ingest",
    "record_ingest_rows",
    "record_header_mapping",
    "record_calc_run",
    "record_activity_calculation",
    "record_http_request",
]
