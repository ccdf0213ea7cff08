# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

import io
from datetime import date
from types import SimpleNamespace
from typing import Any, Dict, List, Sequence

import openpyxl
import pytest
from fastapi.testclient import TestClient

from carbonledger.api.app import create_app
from carbonledger.auth.security import create_access_token, hash_password
from carbonledger.calculation.factors import seed_default_factors
from carbonledger.config import CarbonLedgerConfig, reset_config, set_config
from carbonledger.db.base import get_session, get_session_factory, init_db, reset_engine
from carbonledger.db.models import Customer, ReportingPeriod, Site, User
from carbonledger.ingestion.header_mapper import reset_header_mapper
from carbonledger.ingestion.service import reset_ingest_service

TEST_PASSWORD = "password123"


def _reset_singletons() -> None:
    reset_engine()
    reset_ingest_service()
    reset_header_mapper()


# ==============================================================================
# Configuration and database
# ==============================================================================

@pytest.fixture
def config(tmp_path):
    """Install a configuration pointing at a fresh SQLite file."""
    cfg = CarbonLedgerConfig(
        database_url=f"sqlite:///{tmp_path / 'carbonledger-test.db'}",
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
        max_upload_mb=1,
    )
    set_config(cfg)
    _reset_singletons()
    yield cfg
    _reset_singletons()
    reset_config()


@pytest.fixture
def db(config):
    """A session on an initialised, empty database."""
    init_db()
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def seeded_db(db):
    """A session whose database holds the default factor library."""
    seed_default_factors(db)
    db.flush()
    return db


@pytest.fixture
def tenant(db):
    """Customer with one UK site and a 2025 annual period (unit-test level)."""
    customer = Customer(name="Acme Manufacturing", code="ACME")
    db.add(customer)
    db.flush()
    site = Site(customer_id=customer.id, name="Head Office", country="UK")
    period = ReportingPeriod(
        customer_id=customer.id,
        year=2025,
        quarter="ANNUAL",
        from_date=date(2025, 1, 1),
        to_date=date(2025, 12, 31),
    )
    db.add_all([site, period])
    db.flush()
    return SimpleNamespace(customer=customer, site=site, period=period)


# ==============================================================================
# HTTP API
# ==============================================================================

@pytest.fixture(scope="session")
def password_hash():
    """bcrypt is slow; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def client(config):
    """TestClient with the application lifespan (schema + factor seeding) run."""
    with TestClient(create_app(config)) as test_client:
        yield test_client


def _auth(user: User) -> Dict[str, str]:
    token = create_access_token(user.id, user.email, user.role, user.customer_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def world(client, password_hash):
    """Two customers, a site and period each, and users of every role.

    Returns a namespace of ids and ready-made auth headers.
    """
    with get_session() as session:
        acme = Customer(name="Acme Manufacturing", code="ACME")
        other = Customer(name="Globex", code="GLOBEX")
        session.add_all([acme, other])
        session.flush()

        site = Site(customer_id=acme.id, name="Head Office", country="UK")
        other_site = Site(customer_id=other.id, name="Globex Plant", country="UK")
        period = ReportingPeriod(
            customer_id=acme.id, year=2025, quarter="ANNUAL",
            from_date=date(2025, 1, 1), to_date=date(2025, 12, 31),
        )
        other_period = ReportingPeriod(
            customer_id=other.id, year=2025, quarter="ANNUAL",
            from_date=date(2025, 1, 1), to_date=date(2025, 12, 31),
        )
        admin = User(email="admin@carbonledger.test", password_hash=password_hash, role="ADMIN")
        editor = User(
            email="editor@acme.test", password_hash=password_hash, role="EDITOR", customer_id=acme.id,
        )
        viewer = User(
            email="viewer@acme.test", password_hash=password_hash, role="VIEWER", customer_id=acme.id,
        )
        session.add_all([site, other_site, period, other_period, admin, editor, viewer])
        session.flush()

        world = SimpleNamespace(
            customer_id=acme.id,
            other_customer_id=other.id,
            site_id=site.id,
            other_site_id=other_site.id,
            period_id=period.id,
            other_period_id=other_period.id,
            admin_id=admin.id,
            editor_id=editor.id,
            viewer_id=viewer.id,
            admin=_auth(admin),
            editor=_auth(editor),
            viewer=_auth(viewer),
        )
    return world


# ==============================================================================
# File builders
# ==============================================================================

def build_xlsx(sheets: Dict[str, Sequence[Sequence[Any]]]) -> bytes:
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(name)
        for row in rows:
            worksheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_csv(rows: List[Sequence[Any]], delimiter: str = ",") -> bytes:
    lines = [delimiter.join("" if v is None else str(v) for v in row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def make_xlsx():
    """Build an .xlsx workbook in memory from {sheet name: rows}."""
    return build_xlsx


@pytest.fixture
def make_csv():
    """Build CSV bytes from rows."""
    return build_csv


@pytest.fixture
def activity_csv(make_csv):
    """Two valid activity rows with flexible headers."""
    return make_csv([
        ["Type", "Site", "Quantity", "Unit", "Start Date", "End Date"],
        ["Natural Gas", "London HQ", "1000", "kWh", "2025-01-01", "2025-03-31"],
        ["Diesel", "Leeds Depot", "250", "litres", "2025-01-01", "2025-03-31"],
    ])
