# -*- coding: utf-8 -*-
"""
CarbonLedger Service Configuration

Centralized configuration for the CarbonLedger service covering:
- Database connection
- JWT signing secrets and token lifetimes
- Ingestion limits and column mapping threshold
- Emission factor library defaults
- HTTP surface (debug mode, CORS origins)
- Logging

All settings can be overridden via environment variables with the
``CARBONLEDGER_`` prefix (e.g. ``CARBONLEDGER_MAX_UPLOAD_MB``).

Example:
    >>> from carbonledger.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.mapping_confidence_threshold, cfg.default_geography)

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "CARBONLEDGER_"


# ---------------------------------------------------------------------------
# CarbonLedgerConfig
# ---------------------------------------------------------------------------


@dataclass
class CarbonLedgerConfig:
    """Complete configuration for the CarbonLedger service.

    Attributes:
        database_url: SQLAlchemy database URL.
        jwt_secret: HMAC secret for access tokens.
        jwt_refresh_secret: HMAC secret for refresh tokens.
        access_token_minutes: Access token lifetime in minutes.
        refresh_token_days: Refresh token lifetime in days.
        mapping_confidence_threshold: Minimum similarity for header and
            category matches.
        max_upload_mb: Maximum accepted upload size in megabytes.
        max_rows_per_sheet: Maximum number of rows read per sheet.
        header_scan_rows: Rows scanned when looking for the header row.
        default_geography: Geography used when a site has no country.
        factor_library_version: Default factor library for calc runs.
        seed_factors_on_startup: Seed default emission factors at startup.
        debug: Include error details in API error bodies.
        cors_origins: Comma-separated list of allowed CORS origins.
        log_level: Root logging level.
        log_file: Optional log file path; enables file and error logs.
    """

    # -- Database ------------------------------------------------------------
    database_url: str = "sqlite:///./carbonledger.db"

    # -- Auth ----------------------------------------------------------------
    jwt_secret: str = "change-me-access-secret"
    jwt_refresh_secret: str = "change-me-refresh-secret"
    access_token_minutes: int = 15
    refresh_token_days: int = 7

    # -- Ingestion -----------------------------------------------------------
    mapping_confidence_threshold: float = 0.6
    max_upload_mb: int = 100
    max_rows_per_sheet: int = 1_000_000
    header_scan_rows: int = 50

    # -- Calculation ---------------------------------------------------------
    default_geography: str = "UK"
    factor_library_version: str = "DEFRA-2025.1"
    seed_factors_on_startup: bool = True

    # -- HTTP ----------------------------------------------------------------
    debug: bool = False
    cors_origins: str = "http://localhost:3000"

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"
    log_file: str = ""

    @property
    def max_upload_bytes(self) -> int:
        """Upload limit in bytes."""
        return self.max_upload_mb * 1024 * 1024

    @property
    def cors_origin_list(self) -> List[str]:
        """CORS origins as a list with blanks removed."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> CarbonLedgerConfig:
        """Build a CarbonLedgerConfig from environment variables.

        Every field can be overridden via ``CARBONLEDGER_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).

        Returns:
            Populated CarbonLedgerConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val)
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%s, using default %f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        config = cls(
            database_url=_str("DATABASE_URL", cls.database_url),
            jwt_secret=_str("JWT_SECRET", cls.jwt_secret),
            jwt_refresh_secret=_str(
                "JWT_REFRESH_SECRET", cls.jwt_refresh_secret,
            ),
            access_token_minutes=_int(
                "ACCESS_TOKEN_MINUTES", cls.access_token_minutes,
            ),
            refresh_token_days=_int(
                "REFRESH_TOKEN_DAYS", cls.refresh_token_days,
            ),
            mapping_confidence_threshold=_float(
                "MAPPING_CONFIDENCE_THRESHOLD",
                cls.mapping_confidence_threshold,
            ),
            max_upload_mb=_int("MAX_UPLOAD_MB", cls.max_upload_mb),
            max_rows_per_sheet=_int(
                "MAX_ROWS_PER_SHEET", cls.max_rows_per_sheet,
            ),
            header_scan_rows=_int("HEADER_SCAN_ROWS", cls.header_scan_rows),
            default_geography=_str(
                "DEFAULT_GEOGRAPHY", cls.default_geography,
            ),
            factor_library_version=_str(
                "FACTOR_LIBRARY_VERSION", cls.factor_library_version,
            ),
            seed_factors_on_startup=_bool(
                "SEED_FACTORS_ON_STARTUP", cls.seed_factors_on_startup,
            ),
            debug=_bool("DEBUG", cls.debug),
            cors_origins=_str("CORS_ORIGINS", cls.cors_origins),
            log_level=_str("LOG_LEVEL", cls.log_level),
            log_file=_str("LOG_FILE", cls.log_file),
        )

        logger.info(
            "CarbonLedgerConfig loaded: access_token_minutes=%d, "
            "refresh_token_days=%d, mapping_threshold=%.2f, "
            "max_upload_mb=%d, geography=%s, factor_library=%s",
            config.access_token_minutes,
            config.refresh_token_days,
            config.mapping_confidence_threshold,
            config.max_upload_mb,
            config.default_geography,
            config.factor_library_version,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[CarbonLedgerConfig] = None
_config_lock = threading.Lock()


def get_config() -> CarbonLedgerConfig:
    """Return the singleton CarbonLedgerConfig, creating from env if needed.

    Returns:
        CarbonLedgerConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = CarbonLedgerConfig.from_env()
    return _config_instance


def set_config(config: CarbonLedgerConfig) -> None:
    """Replace the singleton CarbonLedgerConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("CarbonLedgerConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None
    logger.debug("CarbonLedgerConfig singleton reset")


__all__ = [
    "CarbonLedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
]
