# -*- coding: utf-8 -*-
"""
CarbonLedger HTTP API - FastAPI application

This module builds the FastAPI application: CORS, request logging and
metrics middleware, the JSON error body shared by every failure, the
health and Prometheus endpoints, and the ``/api`` routers.

Error body:
    {"error": message, "code": CODE, "details": ... (debug only),
     "correlationId": X-Correlation-ID or "unknown", "timestamp": ISO-8601}

Example:
    >>> from carbonledger.api.app import create_app
    >>> app = create_app()
    >>> # uvicorn.run(app, host="0.0.0.0", port=8000)

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from carbonledger import __version__
from carbonledger.api.routes import (
    activities,
    auth,
    calculations,
    customers,
    estimations,
    factors,
    ingest,
    inventory,
    periods,
    projects,
    reporting,
    sites,
    uploads,
)
from carbonledger.calculation.factors import seed_default_factors
from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.db.base import get_engine, get_session, init_db
from carbonledger.exceptions import (
    ApiError,
    AuthenticationError,
    CalcRunNotFoundError,
    CarbonLedgerException,
    FactorNotFoundError,
    FileReadError,
    IngestionError,
    UnitConversionError,
)
from carbonledger.ingestion.service import get_ingest_service
from carbonledger.logging_config import configure_logging
from carbonledger.metrics import record_http_request

logger = logging.getLogger(__name__)

# Domain exception -> (HTTP status, public code)
_DOMAIN_ERRORS = (
    (FactorNotFoundError, 404, "FACTOR_NOT_FOUND"),
    (CalcRunNotFoundError, 404, "CALC_RUN_NOT_FOUND"),
    (FileReadError, 400, "FILE_READ_ERROR"),
    (IngestionError, 400, "INGESTION_ERROR"),
    (UnitConversionError, 400, "UNIT_CONVERSION_ERROR"),
)

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
}

ROUTERS = (
    (auth.router, "/api/auth", "Auth"),
    (customers.router, "/api/customers", "Customers"),
    (sites.router, "/api/sites", "Sites"),
    (periods.router, "/api/periods", "Reporting Periods"),
    (activities.router, "/api/activities", "Activities"),
    (calculations.router, "/api/calc", "Calculations"),
    (factors.router, "/api/factors", "Emission Factors"),
    (ingest.router, "/api/ingest", "Ingest"),
    (uploads.router, "/api/uploads", "Uploads"),
    (inventory.router, "/api/emissions-inventory", "Emissions Inventory"),
    (projects.router, "/api/projects", "Projects"),
    (reporting.router, "/api/reporting", "Reporting"),
    (estimations.router, "/api/estimations", "Estimations"),
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    details: Any = None,
) -> JSONResponse:
    """Render the shared JSON error body."""
    body = {
        "error": message,
        "code": code,
        "correlationId": request.headers.get("x-correlation-id", "unknown"),
        "timestamp": _utcnow_iso(),
    }
    if get_config().debug and details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


# =============================================================================
# Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    config = get_config()
    configure_logging(config.log_level, config.log_file)
    logger.info("Starting CarbonLedger API %s", __version__)

    init_db()
    if config.seed_factors_on_startup:
        with get_session() as session:
            seed_default_factors(session)
    get_ingest_service().startup()

    yield

    get_ingest_service().shutdown()
    logger.info("Shutting down CarbonLedger API")


# =============================================================================
# Error Handlers
# =============================================================================

def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("API error %s %s: [%s] %s", request.method, request.url.path, exc.code, exc.message)
        return error_response(request, exc.status_code, exc.message, exc.code, exc.details)

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request: Request, exc: AuthenticationError):
        logger.warning("Authentication failed on %s: %s", request.url.path, exc.reason)
        return error_response(request, 401, exc.message, exc.reason)

    @app.exception_handler(CarbonLedgerException)
    async def domain_error_handler(request: Request, exc: CarbonLedgerException):
        for exc_type, status_code, code in _DOMAIN_ERRORS:
            if isinstance(exc, exc_type):
                logger.warning("%s on %s: %s", code, request.url.path, exc.message)
                return error_response(request, status_code, exc.message, code, exc.context)
        logger.error("Unhandled domain error on %s: %s", request.url.path, exc, exc_info=True)
        return error_response(
            request, 500, exc.message, "INTERNAL_SERVER_ERROR", exc.context,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        return error_response(request, 400, message, "VALIDATION_ERROR", errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
        return error_response(request, exc.status_code, message, code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return error_response(request, 500, "Internal server error", "INTERNAL_SERVER_ERROR", str(exc))


# =============================================================================
# Application factory
# =============================================================================

def create_app(config: Optional[CarbonLedgerConfig] = None) -> FastAPI:
    """
    Build the CarbonLedger FastAPI application.

    Args:
        config: Configuration to read CORS and debug settings from
            (defaults to the global configuration)

    Returns:
        Configured FastAPI application
    """
    config = config or get_config()
    started_at = time.time()

    app = FastAPI(
        title="CarbonLedger",
        description="Carbon accounting: activity ingestion, emission factors and GHG Protocol reporting",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests and track metrics."""
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")
        logger.info(
            "%s %s - Status: %d - Duration: %.3fs",
            request.method, request.url.path, response.status_code, duration,
        )
        record_http_request(request.method, endpoint, response.status_code, duration)
        return response

    _register_exception_handlers(app)

    # -------------------------------------------------------------------------
    # Health and metrics
    # -------------------------------------------------------------------------

    def _health() -> dict:
        database = "ok"
        try:
            with get_engine().connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("Health check database query failed: %s", exc)
            database = "unavailable"
        return {
            "status": "healthy" if database == "ok" else "degraded",
            "name": "CarbonLedger",
            "version": __version__,
            "database": database,
            "uptimeSeconds": round(time.time() - started_at, 3),
            "timestamp": _utcnow_iso(),
        }

    @app.get("/health", tags=["Health"])
    def health():
        """Health check endpoint for liveness checks."""
        return _health()

    @app.get("/api/health", tags=["Health"])
    def api_health():
        return _health()

    @app.get("/metrics", tags=["Observability"])
    def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for router, prefix, tag in ROUTERS:
        app.include_router(router, prefix=prefix, tags=[tag])

    logger.debug("CarbonLedger app created with %d routers", len(ROUTERS))
    return app


__all__ = ["create_app", "error_response", "lifespan"]
