# -*- coding: utf-8 -*-
"""
CarbonLedger - carbon accounting service.

Ingests activity data from spreadsheets and the REST API, maps it onto
emission factors and computes greenhouse-gas emissions by GHG Protocol
scope.

Example:
    >>> from carbonledger.calculation.unit_converter import convert
    >>> convert(2, "MWh", "kWh")
    2000.0
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
