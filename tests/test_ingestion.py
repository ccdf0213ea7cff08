"""Tests for the ingestion pipeline: normalisation, lenient validation,
the ingest service facade and saving rows as activities.

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from datetime import date, datetime

import pytest

from carbonledger.db.models import Activity, EmissionFactor, Site
from carbonledger.ingestion.header_mapper import HeaderMapping
from carbonledger.ingestion.mapping import EMISSION_CATEGORIES, TARGET_FIELDS
from carbonledger.ingestion.normalizer import normalize_row, normalize_rows
from carbonledger.ingestion.service import (
    MISSING_COLUMNS_MESSAGE,
    NO_ROWS_MESSAGE,
    IngestService,
    get_available_categories,
    save_ingested_data,
)
from carbonledger.ingestion.validator import coerce_date, validate_rows


def _mapping(**fields):
    return [HeaderMapping(target_field=k, source_column=v, confidence=1.0) for k, v in fields.items()]


# ==============================================================================
# Normalizer
# ==============================================================================

class TestNormalizer:
    """Tests for normalize_row / normalize_rows."""

    def test_every_target_field_is_present(self):
        """Unmapped fields come back as None."""
        normalized = normalize_row({"Qty": 5}, {"quantity": "Qty"})
        assert set(normalized) == set(TARGET_FIELDS)
        assert normalized["quantity"] == 5
        assert normalized["site_name"] is None

    def test_category_is_normalised(self):
        """Category labels are mapped to identifiers."""
        rows = normalize_rows([{"Fuel": "propane"}], _mapping(emission_category="Fuel"))
        assert rows[0]["emission_category"] == "STATIONARY_COMBUSTION_LPG"

    def test_unknown_category_keeps_label(self):
        """Labels that cannot be normalised are kept as written."""
        rows = normalize_rows([{"Fuel": "Office Stationery"}], _mapping(emission_category="Fuel"))
        assert rows[0]["emission_category"] == "Office Stationery"

    def test_start_date_copies_to_end(self):
        """A lone start date fills the end date."""
        row = normalize_row(
            {"From": "2025-02-01", "To": None},
            {"activity_date_start": "From", "activity_date_end": "To"},
        )
        assert row["activity_date_end"] == "2025-02-01"

    def test_end_date_copies_to_start(self):
        """A lone end date fills the start date."""
        row = normalize_row(
            {"From": "", "To": "2025-02-28"},
            {"activity_date_start": "From", "activity_date_end": "To"},
        )
        assert row["activity_date_start"] == "2025-02-28"

    def test_rows_keep_order(self):
        """Output rows line up with input rows."""
        rows = normalize_rows([{"Q": 1}, {"Q": 2}, {"Q": 3}], _mapping(quantity="Q"))
        assert [r["quantity"] for r in rows] == [1, 2, 3]


# ==============================================================================
# Validator
# ==============================================================================

class TestCoerceDate:
    """Tests for coerce_date."""

    @pytest.mark.parametrize("value,expected", [
        ("2025-03-01", date(2025, 3, 1)),
        ("01/03/2025", date(2025, 3, 1)),
        ("01.03.2025", date(2025, 3, 1)),
        ("2025-03-01T10:15:00Z", date(2025, 3, 1)),
        ("Mar 2025", date(2025, 3, 1)),
        ("2024", date(2024, 1, 1)),
        (2024, date(2024, 1, 1)),
        (2024.0, date(2024, 1, 1)),
        (datetime(2025, 3, 1, 9, 30), date(2025, 3, 1)),
        (date(2025, 3, 1), date(2025, 3, 1)),
    ])
    def test_recognised_values(self, value, expected):
        """Common date shapes are parsed."""
        assert coerce_date(value) == expected

    def test_unparseable_text_is_returned(self):
        """Text that is not a date is kept as text."""
        assert coerce_date("next quarter") == "next quarter"
        assert coerce_date(45000) == "45000"

    def test_empty_values(self):
        """None and blank text are None."""
        assert coerce_date(None) is None
        assert coerce_date("   ") is None


class TestValidateRows:
    """Tests for lenient row validation."""

    def test_defaults_fill_missing_values(self):
        """Only the category is required; other fields get defaults."""
        valid, issues = validate_rows([{"emission_category": "MOBILE_COMBUSTION_DIESEL"}])
        assert issues == []
        row = valid[0]
        assert row["site_name"] == "Unknown Site"
        assert row["unit"] == "units"
        assert row["quantity"] == 0.0
        assert row["notes"] == ""
        assert row["activity_date_start"] is None

    def test_quantity_coercion(self):
        """Thousands separators and blanks are handled."""
        valid, _ = validate_rows([
            {"emission_category": "X", "quantity": "1,200.5"},
            {"emission_category": "X", "quantity": ""},
            {"emission_category": "X", "quantity": 7},
        ])
        assert [r["quantity"] for r in valid] == [1200.5, 0.0, 7.0]

    def test_numeric_text_fields_become_strings(self):
        """Numeric cells in text columns are rendered as text."""
        valid, _ = validate_rows([{"emission_category": "X", "site_name": 101.0, "unit": 3}])
        assert valid[0]["site_name"] == "101"
        assert valid[0]["unit"] == "3"

    def test_missing_category_is_an_issue(self):
        """Rows without a category are reported with a 1-based index."""
        valid, issues = validate_rows([
            {"emission_category": "X", "quantity": 1},
            {"emission_category": "  ", "quantity": 1},
        ])
        assert len(valid) == 1
        assert issues[0].row_index == 2
        assert issues[0].errors[0]["field"] == "emission_category"
        assert "Emission category/Activity type is required" in issues[0].errors[0]["message"]
        assert issues[0].raw["emission_category"] == "  "

    def test_invalid_quantity_is_an_issue(self):
        """Unparseable quantities are reported."""
        _, issues = validate_rows([{"emission_category": "X", "quantity": "abc"}])
        assert "Invalid quantity: abc" in issues[0].errors[0]["message"]


# ==============================================================================
# Ingest service
# ==============================================================================

class TestIngestService:
    """Tests for IngestService.ingest_file."""

    def test_successful_ingest(self, config, activity_csv):
        """A well-formed file is mapped, normalised and validated."""
        service = IngestService(config)
        result = service.ingest_file(activity_csv, "activities.csv")

        assert result.status == "success"
        assert result.rows_imported == 2
        assert result.rows_failed == 0
        assert result.issues == []
        assert len(result.provenance_hash) == 64
        assert result.processing_time_ms >= 0

        first, second = result.data
        assert first["emission_category"] == "STATIONARY_COMBUSTION_NATURAL_GAS"
        assert first["site_name"] == "London HQ"
        assert first["quantity"] == 1000.0
        assert first["activity_date_start"] == date(2025, 1, 1)
        assert first["activity_date_end"] == date(2025, 3, 31)
        assert second["emission_category"] == "MOBILE_COMBUSTION_DIESEL"
        assert second["unit"] == "litres"

        fields = {m.target_field for m in result.header_mappings}
        assert {"emission_category", "quantity", "unit", "site_name"} <= fields

    def test_without_session_all_categories_are_available(self, config, activity_csv):
        """No database means every category is offered."""
        result = IngestService(config).ingest_file(activity_csv, "a.csv")
        assert result.available_categories == list(EMISSION_CATEGORIES)

    def test_missing_required_columns(self, config, make_csv):
        """Files without category and quantity columns are rejected with details."""
        content = make_csv([["Site", "Unit", "Start Date"], ["Depot", "kWh", "2025-01-01"]])
        result = IngestService(config).ingest_file(content, "a.csv")

        assert result.status == "error"
        assert result.message == MISSING_COLUMNS_MESSAGE
        assert result.missing_targets == ["emission_category", "quantity"]
        assert result.detected_columns == ["Site", "Unit", "Start Date"]

    def test_empty_file(self, config):
        """A file with no rows is an error result, not an exception."""
        result = IngestService(config).ingest_file(b"", "empty.csv")
        assert result.status == "error"
        assert result.message == NO_ROWS_MESSAGE

    def test_unreadable_file(self, config):
        """Binary junk comes back as an error result."""
        result = IngestService(config).ingest_file(b"\x00\x01\x02\x03junk", "x.csv")
        assert result.status == "error"
        assert result.message.startswith("Unable to read file")
        assert result.provenance_hash is not None

    def test_issues_do_not_block_valid_rows(self, config, make_csv):
        """Invalid rows are reported while valid rows are imported."""
        content = make_csv([
            ["Type", "Quantity", "Unit", "Date"],
            ["Diesel", "10", "litres", "2025-01-01"],
            ["LPG", "lots", "kWh", "2025-01-01"],
        ])
        result = IngestService(config).ingest_file(content, "a.csv")
        assert result.status == "success"
        assert result.rows_imported == 1
        assert len(result.issues) == 1
        assert result.issues[0].row_index == 2

    def test_no_valid_rows_passes_normalised_rows_through(self, config, make_csv):
        """When nothing validates the normalised rows are returned flagged."""
        content = make_csv([
            ["Type", "Quantity", "Unit"],
            ["", "5", "kWh"],
        ])
        result = IngestService(config).ingest_file(content, "a.csv")
        assert result.status == "success"
        assert result.rows_imported == 1
        assert result.data[0]["_validation_skipped"] is True
        assert result.data[0]["_original_index"] == 0
        assert len(result.issues) == 1

    def test_statistics(self, config, activity_csv):
        """Successful and failed files are counted."""
        service = IngestService(config)
        service.ingest_file(activity_csv, "a.csv")
        service.ingest_file(b"", "b.csv")

        stats = service.get_statistics()
        assert stats["files_processed"] == 1
        assert stats["files_failed"] == 1
        assert stats["rows_imported"] == 2
        assert stats["last_ingest_at"] is not None
        assert "header_mapper" in stats

    def test_startup_is_idempotent(self, config):
        """Lifecycle calls can be repeated."""
        service = IngestService(config)
        service.startup()
        service.startup()
        assert service.get_statistics()["started"] is True
        service.shutdown()
        assert service.get_statistics()["started"] is False


class TestAvailableCategories:
    """Tests for get_available_categories."""

    def test_empty_factor_table_falls_back_to_all(self, db):
        """No overlapping factors means every category."""
        assert get_available_categories(db) == list(EMISSION_CATEGORIES)

    def test_matches_factor_categories(self, db):
        """Categories overlapping factor categories are returned."""
        db.add(EmissionFactor(
            category="LPG", geography="UK", year=2025, input_unit="kWh",
            value=0.2, source_name="DESNZ", source_version="2025",
            valid_from=date(2025, 1, 1),
        ))
        db.flush()
        assert get_available_categories(db) == ["STATIONARY_COMBUSTION_LPG"]

    def test_no_session(self):
        """Without a session every category is returned."""
        assert get_available_categories(None) == list(EMISSION_CATEGORIES)


# ==============================================================================
# Saving
# ==============================================================================

class TestSaveIngestedData:
    """Tests for save_ingested_data."""

    def test_creates_activities_and_sites(self, config, db, tenant, activity_csv):
        """Each row becomes an activity; unknown sites are created."""
        rows = IngestService(config).ingest_file(activity_csv, "a.csv").data
        result = save_ingested_data(db, rows, tenant.customer.id, tenant.period.id)

        assert result.created == 2
        assert result.errors == []
        activities = db.query(Activity).order_by(Activity.quantity).all()
        assert [a.type for a in activities] == [
            "MOBILE_COMBUSTION_DIESEL", "STATIONARY_COMBUSTION_NATURAL_GAS",
        ]
        assert all(a.source == "FILE_UPLOAD" for a in activities)
        assert all(a.period_id == tenant.period.id for a in activities)

        names = {s.name for s in db.query(Site).filter(Site.customer_id == tenant.customer.id)}
        assert names == {"Head Office", "London HQ", "Leeds Depot"}

    def test_existing_site_matched_case_insensitively(self, db, tenant):
        """Site names are matched without regard to case."""
        rows = [{
            "emission_category": "STATIONARY_COMBUSTION_LPG",
            "site_name": "head office",
            "quantity": 12.5,
            "unit": "kWh",
            "activity_date_start": date(2025, 1, 1),
            "activity_date_end": date(2025, 1, 31),
        }]
        result = save_ingested_data(db, rows, tenant.customer.id, tenant.period.id)
        assert result.created == 1
        activity = db.query(Activity).one()
        assert activity.site_id == tenant.site.id
        assert db.query(Site).count() == 1

    def test_bad_rows_are_reported_and_skipped(self, db, tenant):
        """Rows with unusable dates fail alone."""
        rows = [
            {
                "emission_category": "MOBILE_COMBUSTION_DIESEL", "site_name": "Depot",
                "quantity": 5, "unit": "litres",
                "activity_date_start": "soon", "activity_date_end": "later",
            },
            {
                "emission_category": "MOBILE_COMBUSTION_DIESEL", "site_name": "Head Office",
                "quantity": "1,000", "unit": "litres",
                "activity_date_start": "2025-04-01", "activity_date_end": None,
            },
        ]
        result = save_ingested_data(db, rows, tenant.customer.id, tenant.period.id)

        assert result.created == 0
        assert len(result.errors) == 2
        assert result.errors[0].startswith("Failed to create activity for site Depot:")
        assert "activity start date" in result.errors[0]
        assert "activity end date" in result.errors[1]
        assert db.query(Activity).count() == 0
