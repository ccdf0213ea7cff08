"""
Database models for carbon accounting

Supports:
- Customers, users and sites (multi-tenancy by customer)
- Reporting periods and activity data
- File uploads
- Versioned emission factors
- Calculation runs and per-activity emission results
- Reduction projects with yearly actuals
- Scope 3 estimation inputs

``to_dict()`` renders the camelCase JSON representation used by the API.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from carbonledger.db.base import Base

ROLES = ("ADMIN", "EDITOR", "VIEWER")
QUARTERS = ("Q1", "Q2", "Q3", "Q4", "H1", "H2", "ANNUAL")
CALC_RUN_STATUSES = ("RUNNING", "COMPLETED", "FAILED")
LIFECYCLE_STATES = ("PLANNED", "ACTIVE", "COMPLETED", "ARCHIVED")
CONFIDENCE_LEVELS = ("HIGH", "MEDIUM", "LOW")


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat() + "Z"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class Customer(Base):
    """Reporting organisation"""

    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False, unique=True)
    category = Column(String(100), nullable=True)
    level = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    # Relationships
    users = relationship("User", back_populates="customer", cascade="all, delete-orphan")
    sites = relationship("Site", back_populates="customer", cascade="all, delete-orphan")
    periods = relationship("ReportingPeriod", back_populates="customer", cascade="all, delete-orphan")
    uploads = relationship("Upload", back_populates="customer", cascade="all, delete-orphan")
    calc_runs = relationship("CalcRun", back_populates="customer", cascade="all, delete-orphan")
    projects = relationship("Project", back_populates="customer", cascade="all, delete-orphan")
    estimation_inputs = relationship(
        "EstimationInput", back_populates="customer", cascade="all, delete-orphan",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "category": self.category,
            "level": self.level,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Customer(id={self.id}, code={self.code})>"


class User(Base):
    """Application user"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="VIEWER")
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    customer = relationship("Customer", back_populates="users")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "customerId": self.customer_id,
            "customerName": self.customer.name if self.customer else None,
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Site(Base):
    """Physical site belonging to a customer"""

    __tablename__ = "sites"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)
    region = Column(String(100), nullable=True)
    postcode = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    customer = relationship("Customer", back_populates="sites")
    activities = relationship("Activity", back_populates="site", cascade="all, delete-orphan")
    projects = relationship("Project", back_populates="site")

    __table_args__ = (
        Index("idx_site_customer", "customer_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "name": self.name,
            "country": self.country,
            "region": self.region,
            "postcode": self.postcode,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Site(id={self.id}, name={self.name})>"


class ReportingPeriod(Base):
    """Reporting period (year plus quarter/half/annual)"""

    __tablename__ = "reporting_periods"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    year = Column(Integer, nullable=False)
    quarter = Column(String(10), nullable=False, default="ANNUAL")
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    customer = relationship("Customer", back_populates="periods")
    activities = relationship("Activity", back_populates="period", cascade="all, delete-orphan")
    calc_runs = relationship("CalcRun", back_populates="period", cascade="all, delete-orphan")
    estimation_inputs = relationship(
        "EstimationInput", back_populates="period", cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_period_customer_year", "customer_id", "year"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "year": self.year,
            "quarter": self.quarter,
            "fromDate": _iso(self.from_date),
            "toDate": _iso(self.to_date),
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<ReportingPeriod(id={self.id}, year={self.year}, quarter={self.quarter})>"


class Upload(Base):
    """Uploaded activity file"""

    __tablename__ = "uploads"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    period_id = Column(
        String(36), ForeignKey("reporting_periods.id", ondelete="SET NULL"), nullable=True,
    )
    uploaded_by = Column(String(36), nullable=True)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(255), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    file_hash = Column(String(64), nullable=True)
    status = Column(String(30), nullable=False, default="processing")
    row_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    validation_results = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    customer = relationship("Customer", back_populates="uploads")
    activities = relationship("Activity", back_populates="upload")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "periodId": self.period_id,
            "uploadedBy": self.uploaded_by,
            "originalName": self.original_name,
            "mimeType": self.mime_type,
            "size": self.size,
            "fileHash": self.file_hash,
            "status": self.status,
            "rowCount": self.row_count,
            "errorCount": self.error_count,
            "validationResults": self.validation_results,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Upload(id={self.id}, status={self.status})>"


class Activity(Base):
    """Recorded activity quantity for a site in a period"""

    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=_uuid)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False)
    period_id = Column(
        String(36), ForeignKey("reporting_periods.id", ondelete="CASCADE"), nullable=False,
    )
    upload_id = Column(String(36), ForeignKey("uploads.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(100), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String(50), nullable=False)
    activity_date_start = Column(Date, nullable=False)
    activity_date_end = Column(Date, nullable=False)
    source = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    site = relationship("Site", back_populates="activities")
    period = relationship("ReportingPeriod", back_populates="activities")
    upload = relationship("Upload", back_populates="activities")
    results = relationship("EmissionResult", back_populates="activity", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_activity_site_period", "site_id", "period_id"),
        Index("idx_activity_type", "type"),
    )

    def to_dict(self, include_site: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "siteId": self.site_id,
            "periodId": self.period_id,
            "uploadId": self.upload_id,
            "type": self.type,
            "quantity": self.quantity,
            "unit": self.unit,
            "activityDateStart": _iso(self.activity_date_start),
            "activityDateEnd": _iso(self.activity_date_end),
            "source": self.source,
            "notes": self.notes,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_site and self.site is not None:
            data["site"] = {
                "id": self.site.id,
                "name": self.site.name,
                "country": self.site.country,
            }
        return data

    def __repr__(self):
        return f"<Activity(id={self.id}, type={self.type}, quantity={self.quantity})>"


class EmissionFactor(Base):
    """Versioned emission factor (kgCO2e per input unit)"""

    __tablename__ = "emission_factors"

    id = Column(String(36), primary_key=True, default=_uuid)
    category = Column(String(100), nullable=False)
    geography = Column(String(50), nullable=False)
    year = Column(Integer, nullable=False)
    input_unit = Column(String(50), nullable=False)
    output_unit = Column(String(50), nullable=False, default="kgCO2e")
    value = Column(Float, nullable=False)
    source_name = Column(String(255), nullable=False)
    source_version = Column(String(100), nullable=False)
    gwp_version = Column(String(20), nullable=False, default="AR6")
    valid_from = Column(Date, nullable=False)
    valid_to = Column(Date, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)

    results = relationship("EmissionResult", back_populates="factor")

    __table_args__ = (
        Index("idx_factor_lookup", "category", "geography", "year", "input_unit"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "geography": self.geography,
            "year": self.year,
            "inputUnit": self.input_unit,
            "outputUnit": self.output_unit,
            "value": self.value,
            "sourceName": self.source_name,
            "sourceVersion": self.source_version,
            "gwpVersion": self.gwp_version,
            "validFrom": _iso(self.valid_from),
            "validTo": _iso(self.valid_to),
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return (
            f"<EmissionFactor(category={self.category}, geography={self.geography}, "
            f"year={self.year}, value={self.value})>"
        )


class CalcRun(Base):
    """Batch emission calculation over a period's activities"""

    __tablename__ = "calc_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    period_id = Column(
        String(36), ForeignKey("reporting_periods.id", ondelete="CASCADE"), nullable=False,
    )
    factor_library_version = Column(String(100), nullable=False)
    requested_by = Column(String(36), nullable=True)
    status = Column(String(20), nullable=False, default="RUNNING")
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    customer = relationship("Customer", back_populates="calc_runs")
    period = relationship("ReportingPeriod", back_populates="calc_runs")
    results = relationship("EmissionResult", back_populates="calc_run", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_calc_run_customer_period", "customer_id", "period_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "periodId": self.period_id,
            "factorLibraryVersion": self.factor_library_version,
            "requestedBy": self.requested_by,
            "status": self.status,
            "errorMessage": self.error_message,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<CalcRun(id={self.id}, status={self.status})>"


class EmissionResult(Base):
    """Emissions computed for one activity within a calc run"""

    __tablename__ = "emission_results"

    id = Column(String(36), primary_key=True, default=_uuid)
    calc_run_id = Column(String(36), ForeignKey("calc_runs.id", ondelete="CASCADE"), nullable=False)
    activity_id = Column(String(36), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False)
    factor_id = Column(String(36), ForeignKey("emission_factors.id"), nullable=False)
    scope = Column(String(10), nullable=False)
    method = Column(String(30), nullable=False)
    quantity_base = Column(Float, nullable=False)
    unit_base = Column(String(50), nullable=False)
    result_kg_co2e = Column(Float, nullable=False)
    uncertainty = Column(Float, nullable=True)
    provenance_hash = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)

    calc_run = relationship("CalcRun", back_populates="results")
    activity = relationship("Activity", back_populates="results")
    factor = relationship("EmissionFactor", back_populates="results")

    __table_args__ = (
        Index("idx_result_calc_run", "calc_run_id"),
    )

    def to_dict(self, include_related: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "calcRunId": self.calc_run_id,
            "activityId": self.activity_id,
            "factorId": self.factor_id,
            "scope": self.scope,
            "method": self.method,
            "quantityBase": self.quantity_base,
            "unitBase": self.unit_base,
            "resultKgCo2e": self.result_kg_co2e,
            "uncertainty": self.uncertainty,
            "provenanceHash": self.provenance_hash,
            "createdAt": _iso(self.created_at),
        }
        if include_related:
            data["activity"] = self.activity.to_dict(include_site=True) if self.activity else None
            data["factor"] = self.factor.to_dict() if self.factor else None
        return data

    def __repr__(self):
        return f"<EmissionResult(id={self.id}, scope={self.scope}, kg={self.result_kg_co2e})>"


class Project(Base):
    """Emission reduction project"""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    site_id = Column(String(36), ForeignKey("sites.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    lifecycle_state = Column(String(20), nullable=False, default="PLANNED")
    est_annual_saving_kg_co2e = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    customer = relationship("Customer", back_populates="projects")
    site = relationship("Site", back_populates="projects")
    actuals = relationship(
        "ProjectActual",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="desc(ProjectActual.year)",
    )

    def to_dict(self, include_actuals: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "customerId": self.customer_id,
            "siteId": self.site_id,
            "type": self.type,
            "description": self.description,
            "startDate": _iso(self.start_date),
            "lifecycleState": self.lifecycle_state,
            "estAnnualSavingKgCo2e": self.est_annual_saving_kg_co2e,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "site": (
                {"id": self.site.id, "name": self.site.name, "country": self.site.country}
                if self.site else None
            ),
        }
        if include_actuals:
            data["projectActuals"] = [a.to_dict() for a in self.actuals]
        return data

    def __repr__(self):
        return f"<Project(id={self.id}, type={self.type}, state={self.lifecycle_state})>"


class ProjectActual(Base):
    """Actual savings achieved by a project in one year"""

    __tablename__ = "project_actuals"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    year = Column(Integer, nullable=False)
    actual_saving_kg_co2e = Column(Float, nullable=False)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    project = relationship("Project", back_populates="actuals")

    __table_args__ = (
        UniqueConstraint("project_id", "year", name="uq_project_actual_year"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "year": self.year,
            "actualSavingKgCo2e": self.actual_saving_kg_co2e,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class EstimationInput(Base):
    """Scope 3 estimation inputs for a customer and period"""

    __tablename__ = "estimation_inputs"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    period_id = Column(
        String(36), ForeignKey("reporting_periods.id", ondelete="CASCADE"), nullable=False,
    )
    created_by = Column(String(36), nullable=True)

    # Employee commuting
    number_of_employees = Column(Integer, nullable=True)
    avg_commute_km = Column(Float, nullable=True)
    avg_workdays_per_year = Column(Integer, nullable=True)
    transport_split_car = Column(Float, nullable=True)
    transport_split_public = Column(Float, nullable=True)
    transport_split_walk = Column(Float, nullable=True)

    # Business travel
    business_travel_spend_gbp = Column(Float, nullable=True)
    avg_flight_distance_km = Column(Float, nullable=True)
    number_of_flights = Column(Integer, nullable=True)

    # Purchased goods and services
    annual_spend_goods_gbp = Column(Float, nullable=True)
    annual_spend_services_gbp = Column(Float, nullable=True)

    # Waste
    waste_tonnes = Column(Float, nullable=True)
    waste_recycled_percent = Column(Float, nullable=True)

    # Office / facility
    office_area_m2 = Column(Float, nullable=True)
    data_center = Column(Boolean, nullable=True)
    data_center_servers = Column(Integer, nullable=True)

    confidence_level = Column(String(10), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    customer = relationship("Customer", back_populates="estimation_inputs")
    period = relationship("ReportingPeriod", back_populates="estimation_inputs")

    __table_args__ = (
        UniqueConstraint("customer_id", "period_id", name="uq_estimation_customer_period"),
    )

    # Column name -> API field name
    INPUT_FIELDS = {
        "number_of_employees": "numberOfEmployees",
        "avg_commute_km": "avgCommuteKm",
        "avg_workdays_per_year": "avgWorkdaysPerYear",
        "transport_split_car": "transportSplitCar",
        "transport_split_public": "transportSplitPublic",
        "transport_split_walk": "transportSplitWalk",
        "business_travel_spend_gbp": "businessTravelSpendGBP",
        "avg_flight_distance_km": "avgFlightDistanceKm",
        "number_of_flights": "numberOfFlights",
        "annual_spend_goods_gbp": "annualSpendGoodsGBP",
        "annual_spend_services_gbp": "annualSpendServicesGBP",
        "waste_tonnes": "wasteTonnes",
        "waste_recycled_percent": "wasteRecycledPercent",
        "office_area_m2": "officeAreaM2",
        "data_center": "dataCenter",
        "data_center_servers": "dataCenterServers",
        "confidence_level": "confidenceLevel",
        "notes": "notes",
    }

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "customerId": self.customer_id,
            "periodId": self.period_id,
            "createdBy": self.created_by,
        }
        for column, key in self.INPUT_FIELDS.items():
            data[key] = getattr(self, column)
        data["createdAt"] = _iso(self.created_at)
        data["updatedAt"] = _iso(self.updated_at)
        return data
