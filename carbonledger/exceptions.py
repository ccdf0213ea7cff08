# -*- coding: utf-8 -*-
"""CarbonLedger Exception Hierarchy.

Exception Hierarchy:
    CarbonLedgerException (base)
    ├── IngestionException
    │   ├── FileReadError
    │   └── IngestionError
    ├── CalculationException
    │   ├── UnitConversionError
    │   ├── FactorNotFoundError
    │   ├── CalcRunNotFoundError
    │   └── CalculationError
    ├── AuthenticationError
    └── ApiError

All exceptions carry:
- error_code: Unique error identifier
- context: Dictionary with error-specific details
- timestamp: When the error occurred

``ApiError`` additionally carries the HTTP status and the public error
code that the API renders in its JSON error body.

Example:
    >>> from carbonledger.exceptions import UnitConversionError
    >>> raise UnitConversionError("No conversion available from kWh to kg",
    ...     from_unit="kWh", to_unit="kg")

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class CarbonLedgerException(Exception):
    """Base exception for all CarbonLedger errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g. "CL_INGEST_FILE_READ_ERROR")
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "CL"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception with context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        """Generate error code from the exception class name.

        Returns:
            Error code like "CL_CALC_UNIT_CONVERSION_ERROR"
        """
        # CamelCase to SCREAMING_SNAKE_CASE
        error_type = re.sub(r"(?<!^)(?=[A-Z])", "_", self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Ingestion Exceptions
# ==============================================================================

class IngestionException(CarbonLedgerException):
    """Base exception for the file ingestion pipeline."""
    ERROR_PREFIX = "CL_INGEST"


class FileReadError(IngestionException):
    """Uploaded content could not be read as a workbook or CSV.

    Example:
        >>> raise FileReadError(
        ...     "Unable to read file. Please ensure it is a valid Excel or CSV file.",
        ...     filename="data.bin",
        ... )
    """

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if filename:
            context["filename"] = filename
        super().__init__(message, context=context)


class IngestionError(IngestionException):
    """A row or file could not be ingested."""


# ==============================================================================
# Calculation Exceptions
# ==============================================================================

class CalculationException(CarbonLedgerException):
    """Base exception for emission calculations."""
    ERROR_PREFIX = "CL_CALC"


class UnitConversionError(CalculationException):
    """No conversion path exists between two units."""

    def __init__(
        self,
        message: str,
        from_unit: Optional[str] = None,
        to_unit: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if from_unit is not None:
            context["from_unit"] = from_unit
        if to_unit is not None:
            context["to_unit"] = to_unit
        super().__init__(message, context=context)


class FactorNotFoundError(CalculationException):
    """No emission factor matches a lookup.

    Example:
        >>> raise FactorNotFoundError(
        ...     "No emission factor found for NATURAL_GAS, FR, kWh",
        ...     category="NATURAL_GAS", geography="FR", unit="kWh",
        ... )
    """

    def __init__(
        self,
        message: str,
        category: Optional[str] = None,
        geography: Optional[str] = None,
        unit: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        for key, value in (("category", category), ("geography", geography), ("unit", unit)):
            if value is not None:
                context[key] = value
        super().__init__(message, context=context)


class CalcRunNotFoundError(CalculationException):
    """Calculation run id does not exist."""

    def __init__(self, calc_run_id: str):
        super().__init__(
            "Calculation run not found",
            context={"calc_run_id": calc_run_id},
        )
        self.calc_run_id = calc_run_id


class CalculationError(CalculationException):
    """An activity could not be calculated."""


# ==============================================================================
# Auth / API
# ==============================================================================

class AuthenticationError(CarbonLedgerException):
    """Token or credential verification failed.

    ``reason`` is the public error code, e.g. ``TOKEN_EXPIRED``.
    """

    def __init__(self, message: str, reason: str = "INVALID_TOKEN"):
        super().__init__(message, error_code=reason)
        self.reason = reason


class ApiError(CarbonLedgerException):
    """Error rendered as a JSON error body by the HTTP layer.

    Example:
        >>> raise ApiError("Site not found", 404, "SITE_NOT_FOUND")
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "INTERNAL_SERVER_ERROR",
        details: Any = None,
    ):
        super().__init__(message, error_code=code)
        self.status_code = status_code
        self.code = code
        self.details = details


__all__ = [
    "CarbonLedgerException",
    "IngestionException",
    "FileReadError",
    "IngestionError",
    "CalculationException",
    "UnitConversionError",
    "FactorNotFoundError",
    "CalcRunNotFoundError",
    "CalculationError",
    "AuthenticationError",
    "ApiError",
]
