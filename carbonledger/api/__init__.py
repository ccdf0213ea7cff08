# -*- coding: utf-8 -*-
"""
CarbonLedger REST API

FastAPI application for customers, sites, activity data, spreadsheet
ingestion, emission calculations, reduction projects and reporting.
"""

from .app import create_app, error_response

__all__ = [
    "create_app",
    "error_response",
]
