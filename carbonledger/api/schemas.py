# -*- coding: utf-8 -*-
"""
Request models for the CarbonLedger HTTP API.

Request bodies use camelCase keys (``siteId``, ``activityDateStart``);
every model also accepts the snake_case field names. Unknown keys are
rejected so typos surface as 400 ``VALIDATION_ERROR`` instead of being
silently dropped.

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ActivityType = Literal["ELECTRICITY", "GAS", "FUEL", "TRANSPORT", "WASTE", "WATER", "OTHER"]
Quarter = Literal["Q1", "Q2", "Q3", "Q4", "H1", "H2", "ANNUAL"]
LifecycleState = Literal["PLANNED", "ACTIVE", "COMPLETED", "ARCHIVED"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ApiModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "forbid",
    }

    def updates(self) -> dict:
        """Fields the client actually sent, by attribute name."""
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(ApiModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Customers, sites, periods
# ---------------------------------------------------------------------------


class CustomerCreate(ApiModel):
    name: str = Field(..., min_length=2, max_length=100)
    code: str = Field(..., min_length=2, max_length=20)
    category: Optional[str] = Field(default=None, max_length=50)
    level: Optional[str] = Field(default=None, max_length=50)

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.upper()


class SiteCreate(ApiModel):
    customer_id: str
    name: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=2, max_length=100)
    region: Optional[str] = Field(default=None, max_length=100)
    postcode: Optional[str] = Field(default=None, max_length=20)


class SiteUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    country: Optional[str] = Field(default=None, min_length=2, max_length=100)
    region: Optional[str] = Field(default=None, max_length=100)
    postcode: Optional[str] = Field(default=None, max_length=20)


class PeriodCreate(ApiModel):
    customer_id: str
    year: int = Field(..., ge=2000, le=2100)
    quarter: Quarter
    from_date: date
    to_date: date

    @model_validator(mode="after")
    def check_range(self) -> "PeriodCreate":
        if self.from_date > self.to_date:
            raise ValueError("fromDate must be on or before toDate")
        return self


class PeriodUpdate(ApiModel):
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    quarter: Optional[Quarter] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


class ActivityCreate(ApiModel):
    site_id: str
    period_id: str
    type: ActivityType
    quantity: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=50)
    activity_date_start: date
    activity_date_end: date
    source: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=1000)


class ActivityUpdate(ApiModel):
    type: Optional[ActivityType] = None
    quantity: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = Field(default=None, min_length=1, max_length=50)
    activity_date_start: Optional[date] = None
    activity_date_end: Optional[date] = None
    source: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=1000)


class BulkActivityCreate(ApiModel):
    activities: List[ActivityCreate] = Field(..., min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Calculations and factors
# ---------------------------------------------------------------------------


class CalcRunRequest(ApiModel):
    customer_id: str
    period_id: str
    factor_library_version: Optional[str] = Field(default=None, max_length=100)


class FactorCreate(ApiModel):
    category: str = Field(..., min_length=1, max_length=100)
    geography: str = Field(..., min_length=1, max_length=50)
    year: int = Field(..., ge=1900, le=2100)
    input_unit: str = Field(..., min_length=1, max_length=50)
    output_unit: str = Field(default="kgCO2e", max_length=50)
    value: float = Field(..., ge=0)
    source_name: str = Field(..., min_length=1, max_length=255)
    source_version: str = Field(..., min_length=1, max_length=100)
    gwp_version: str = Field(default="AR6", max_length=20)


class FactorUpdate(ApiModel):
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    geography: Optional[str] = Field(default=None, min_length=1, max_length=50)
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    input_unit: Optional[str] = Field(default=None, min_length=1, max_length=50)
    output_unit: Optional[str] = Field(default=None, max_length=50)
    value: Optional[float] = Field(default=None, ge=0)
    source_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    source_version: Optional[str] = Field(default=None, min_length=1, max_length=100)
    gwp_version: Optional[str] = Field(default=None, max_length=20)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(ApiModel):
    customer_id: str
    site_id: Optional[str] = None
    type: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=1000)
    start_date: date
    lifecycle_state: LifecycleState = "PLANNED"
    est_annual_saving_kg_co2e: float = Field(..., ge=0, alias="estAnnualSavingKgCo2e")


class ProjectUpdate(ApiModel):
    site_id: Optional[str] = None
    type: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    start_date: Optional[date] = None
    lifecycle_state: Optional[LifecycleState] = None
    est_annual_saving_kg_co2e: Optional[float] = Field(default=None, ge=0, alias="estAnnualSavingKgCo2e")


class ProjectActualCreate(ApiModel):
    year: int = Field(..., ge=2020, le=2050)
    actual_saving_kg_co2e: float = Field(..., alias="actualSavingKgCo2e")


__all__ = [
    "ApiModel",
    "LoginRequest",
    "RefreshRequest",
    "CustomerCreate",
    "SiteCreate",
    "SiteUpdate",
    "PeriodCreate",
    "PeriodUpdate",
    "ActivityCreate",
    "ActivityUpdate",
    "BulkActivityCreate",
    "CalcRunRequest",
    "FactorCreate",
    "FactorUpdate",
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectActualCreate",
]
