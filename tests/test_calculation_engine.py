"""Tests for unit conversion, scope classification, the emission factor
library and the calculation engine.

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from carbonledger.calculation.engine import (
    NO_ACTIVITIES_MESSAGE,
    ActivityCalculation,
    aggregate_results,
    calculate_activity,
    get_calculation_results,
    run_calculation,
    validate_activity_data,
)
from carbonledger.calculation.factors import (
    DEFAULT_FACTORS,
    EmissionFactorData,
    create_factor,
    find_factor,
    get_factor,
    get_factors,
    seed_default_factors,
    update_factor,
)
from carbonledger.calculation.scope import determine_scope, map_activity_to_category
from carbonledger.calculation.unit_converter import (
    UnitConversion,
    UnitConverter,
    convert,
    is_convertible,
    list_conversions,
)
from carbonledger.db.base import get_session_factory
from carbonledger.db.models import Activity, CalcRun, Customer, EmissionFactor, EmissionResult, Site
from carbonledger.exceptions import CalcRunNotFoundError, FactorNotFoundError, UnitConversionError

Q1_START = date(2025, 1, 1)
Q1_END = date(2025, 3, 31)


def _activity(db, site, period, type_, quantity, unit, start=Q1_START, end=Q1_END):
    activity = Activity(
        site_id=site.id,
        period_id=period.id,
        type=type_,
        quantity=quantity,
        unit=unit,
        activity_date_start=start,
        activity_date_end=end,
        source="MANUAL",
    )
    db.add(activity)
    db.flush()
    return activity


# ==============================================================================
# Unit conversion
# ==============================================================================

class TestUnitConverter:
    """Tests for the table-driven unit converter."""

    @pytest.mark.parametrize("value,from_unit,to_unit,expected", [
        (2, "MWh", "kWh", 2000),
        (1, "GJ", "kWh", 277.778),
        (10, "therms", "kWh", 293.071),
        (1.5, "m3", "litres", 1500),
        (3, "tonnes", "kg", 3000),
        (100, "miles", "km", 160.9344),
        (100, "USD", "GBP", 79),
    ])
    def test_forward_conversions(self, value, from_unit, to_unit, expected):
        """Forward table entries multiply."""
        assert convert(value, from_unit, to_unit) == pytest.approx(expected)

    def test_reverse_conversion_divides(self):
        """The reverse direction divides by the table factor."""
        assert convert(5000, "kWh", "MWh") == pytest.approx(5)
        assert convert(453.592, "kg", "lbs") == pytest.approx(1000)

    def test_units_are_case_insensitive(self):
        """Unit names match regardless of case."""
        assert convert(1, "mwh", "KWH") == pytest.approx(1000)

    def test_identical_units_pass_through(self):
        """Same unit returns the value unchanged, even if unknown."""
        assert convert(42, "widgets", "widgets") == 42

    def test_unknown_pair_fails_loudly(self):
        """Unlinked units raise UnitConversionError with context."""
        with pytest.raises(UnitConversionError) as exc_info:
            convert(1, "kWh", "kg")
        assert exc_info.value.message == "No conversion available from kWh to kg"
        assert exc_info.value.context == {"from_unit": "kWh", "to_unit": "kg"}

    def test_is_convertible(self):
        """Convertibility follows the table in both directions."""
        assert is_convertible("GWh", "kWh")
        assert is_convertible("kWh", "GWh")
        assert is_convertible("kWh", "kWh")
        assert not is_convertible("kWh", "litres")

    def test_custom_table(self):
        """A converter can be built from its own table."""
        converter = UnitConverter([UnitConversion("dozen", "each", 12)])
        assert converter.convert(2, "dozen", "each") == 24
        assert not converter.is_convertible("MWh", "kWh")

    def test_list_conversions(self):
        """The default table lists every forward entry."""
        entries = list_conversions()
        assert {"from": "mwh", "to": "kwh", "factor": 1000} in entries
        assert len(entries) == 15


# ==============================================================================
# Scope classification
# ==============================================================================

class TestScope:
    """Tests for determine_scope and map_activity_to_category."""

    @pytest.mark.parametrize("activity_type,scope", [
        ("STATIONARY_COMBUSTION_NATURAL_GAS", "SCOPE_1"),
        ("MOBILE_COMBUSTION_DIESEL", "SCOPE_1"),
        ("FUGITIVE_EMISSIONS_REFRIGERANTS", "SCOPE_1"),
        ("PROCESS_EMISSIONS", "SCOPE_1"),
        ("coal", "SCOPE_1"),
        ("ELECTRICITY", "SCOPE_2"),
        ("DISTRICT_COOLING", "SCOPE_2"),
        ("HEAT_STEAM", "SCOPE_2"),
        ("WASTE", "SCOPE_3"),
        ("TRANSPORT", "SCOPE_3"),
        ("GAS", "SCOPE_3"),
        ("", "SCOPE_3"),
    ])
    def test_determine_scope(self, activity_type, scope):
        """Scope follows substring markers, scope 1 first."""
        assert determine_scope(activity_type) == scope

    @pytest.mark.parametrize("activity_type,category", [
        ("ELECTRICITY", "ELECTRICITY_GRID"),
        ("GAS", "NATURAL_GAS"),
        ("FUEL", "DIESEL"),
        ("WASTE", "WASTE_LANDFILL"),
        ("WATER", "WATER_SUPPLY"),
        ("STATIONARY_COMBUSTION_NATURAL_GAS", "NATURAL_GAS"),
        ("MOBILE_COMBUSTION_DIESEL", "DIESEL"),
        ("STATIONARY_COMBUSTION_LPG", "LPG"),
        ("FUGITIVE_EMISSIONS_REFRIGERANTS", "REFRIGERANTS_R134A"),
        ("KEROSENE", "KEROSENE"),
    ])
    def test_map_activity_to_category(self, activity_type, category):
        """Known types map to factor categories; others pass through."""
        assert map_activity_to_category(activity_type) == category


# ==============================================================================
# Emission factor library
# ==============================================================================

class TestFactorLibrary:
    """Tests for seeding, lookup and versioning of emission factors."""

    def test_seed_is_idempotent(self, db):
        """Seeding twice inserts the default set once."""
        assert seed_default_factors(db) == len(DEFAULT_FACTORS) == 14
        assert seed_default_factors(db) == 0
        assert db.query(EmissionFactor).count() == 14

    def test_seeded_factor_validity(self, seeded_db):
        """Seeded factors are valid for their calendar year."""
        gas = get_factors(seeded_db, category="NATURAL_GAS")[0]
        assert gas.value == pytest.approx(0.0002027)
        assert gas.valid_from == date(2025, 1, 1)
        assert gas.valid_to == date(2025, 12, 31)
        assert gas.output_unit == "kgCO2e"
        assert gas.gwp_version == "AR6"

    def test_exact_match(self, seeded_db):
        """Category, geography, year and unit match directly."""
        factor = find_factor(seeded_db, "NATURAL_GAS", "UK", 2025, "kWh", as_of=date(2025, 6, 1))
        assert factor is not None
        assert factor.value == pytest.approx(0.0002027)

    def test_global_fallback(self, seeded_db):
        """Missing geographies fall back to GLOBAL factors."""
        factor = find_factor(seeded_db, "REFRIGERANTS_R134A", "FR", 2025, "kg", as_of=date(2025, 6, 1))
        assert factor.geography == "GLOBAL"
        assert factor.value == 1430

    def test_any_year_fallback(self, seeded_db):
        """A missing year falls back to any valid year."""
        factor = find_factor(seeded_db, "LPG", "UK", 2024, "kWh", as_of=date(2025, 6, 1))
        assert factor.year == 2025

    def test_validity_window(self, seeded_db):
        """Factors outside their validity window are never returned."""
        assert find_factor(seeded_db, "NATURAL_GAS", "UK", 2025, "kWh", as_of=date(2026, 1, 1)) is None
        assert find_factor(seeded_db, "NATURAL_GAS", "UK", 2024, "kWh", as_of=date(2024, 6, 1)) is None

    def test_unit_must_match(self, seeded_db):
        """Lookup never converts units."""
        assert find_factor(seeded_db, "NATURAL_GAS", "UK", 2025, "MWh", as_of=date(2025, 6, 1)) is None

    def test_latest_year_wins(self, seeded_db):
        """Within a tier the most recent year is preferred."""
        create_factor(seeded_db, EmissionFactorData(
            category="LPG", geography="UK", year=2024, input_unit="kWh",
            value=0.5, source_name="DESNZ", source_version="2024",
        ))
        seeded_db.query(EmissionFactor).filter(
            EmissionFactor.category == "LPG", EmissionFactor.year == 2024,
        ).update({"valid_to": None})
        factor = find_factor(seeded_db, "LPG", "UK", 2023, "kWh", as_of=date(2025, 6, 1))
        assert factor.year == 2025

    def test_get_factors_filters(self, seeded_db):
        """Listing can filter by geography and source."""
        assert [f.category for f in get_factors(seeded_db, geography="GLOBAL")] == ["REFRIGERANTS_R134A"]
        assert len(get_factors(seeded_db, source_name="DESNZ")) == 12
        assert get_factors(seeded_db, year=2020) == []

    def test_get_factor_unknown(self, db):
        """Unknown ids raise FactorNotFoundError."""
        with pytest.raises(FactorNotFoundError) as exc_info:
            get_factor(db, "missing")
        assert exc_info.value.message == "Emission factor not found"
        assert exc_info.value.context["factor_id"] == "missing"

    def test_create_factor(self, db):
        """Created factors are valid for their calendar year."""
        factor = create_factor(db, EmissionFactorData(
            category="COAL", geography="PL", year=2024, input_unit="tonne",
            value=2400, source_name="IPCC", source_version="2006",
        ))
        assert factor.id
        assert factor.valid_from == date(2024, 1, 1)
        assert factor.valid_to == date(2024, 12, 31)

    def test_factor_data_validation(self):
        """Negative values and unknown fields are rejected."""
        with pytest.raises(ValidationError):
            EmissionFactorData(
                category="COAL", geography="PL", year=2024, input_unit="t",
                value=-1, source_name="IPCC", source_version="2006",
            )
        with pytest.raises(ValidationError):
            EmissionFactorData(
                category="COAL", geography="PL", year=2024, input_unit="t",
                value=1, source_name="IPCC", source_version="2006", colour="red",
            )

    def test_update_creates_new_version(self, seeded_db):
        """Updating leaves the old row and adds a version valid from today."""
        original = get_factors(seeded_db, category="ELECTRICITY_GRID")[0]
        new = update_factor(seeded_db, original.id, {"value": 0.0002, "source_version": "2025.2"})

        assert new.id != original.id
        assert new.value == pytest.approx(0.0002)
        assert new.source_version == "2025.2"
        assert new.category == "ELECTRICITY_GRID"
        assert new.valid_from == date.today()
        assert new.valid_to is None

        seeded_db.refresh(original)
        assert original.value == pytest.approx(0.000177)
        assert len(get_factors(seeded_db, category="ELECTRICITY_GRID")) == 2

    def test_update_ignores_unknown_fields(self, seeded_db):
        """Only factor fields are applied."""
        original = get_factors(seeded_db, category="DIESEL")[0]
        new = update_factor(seeded_db, original.id, {"id": "forced", "value": 0.3})
        assert new.id != "forced"
        assert new.value == 0.3

    def test_update_unknown_factor(self, db):
        """Versioning an unknown factor raises."""
        with pytest.raises(FactorNotFoundError):
            update_factor(db, "missing", {"value": 1})


# ==============================================================================
# Calculation engine
# ==============================================================================

class TestCalculateActivity:
    """Tests for single-activity calculation."""

    def test_scope_2_electricity(self, seeded_db, tenant):
        """1000 kWh of grid electricity at 0.000177 kgCO2e/kWh."""
        activity = _activity(seeded_db, tenant.site, tenant.period, "ELECTRICITY", 1000, "kWh")
        calculation = calculate_activity(seeded_db, activity)

        assert calculation.scope == "SCOPE_2"
        assert calculation.method == "DETERMINISTIC"
        assert calculation.result_kg_co2e == pytest.approx(0.177)
        assert calculation.quantity_base == 1000
        assert calculation.unit_base == "kWh"
        assert calculation.uncertainty == 0.1
        assert len(calculation.provenance_hash) == 64

    def test_scope_1_ingested_category(self, seeded_db, tenant):
        """Ingestion categories resolve to their factor category."""
        activity = _activity(
            seeded_db, tenant.site, tenant.period, "STATIONARY_COMBUSTION_NATURAL_GAS", 1000, "kWh",
        )
        calculation = calculate_activity(seeded_db, activity)
        assert calculation.scope == "SCOPE_1"
        assert calculation.result_kg_co2e == pytest.approx(0.2027)

    def test_scope_3_activity_based(self, seeded_db, tenant):
        """Scope 3 activity data gets the wider uncertainty."""
        activity = _activity(seeded_db, tenant.site, tenant.period, "WASTE", 5, "tonne")
        calculation = calculate_activity(seeded_db, activity)
        assert calculation.scope == "SCOPE_3"
        assert calculation.method == "ACTIVITY_BASED"
        assert calculation.result_kg_co2e == pytest.approx(1000)
        assert calculation.uncertainty == 0.3

    def test_scope_3_spend_based(self, seeded_db, tenant):
        """Factors from a spend source mark the result spend based."""
        create_factor(seeded_db, EmissionFactorData(
            category="OTHER", geography="UK", year=2025, input_unit="GBP",
            value=0.25, source_name="EEIO spend model", source_version="2025",
        ))
        activity = _activity(seeded_db, tenant.site, tenant.period, "OTHER", 400, "GBP")
        calculation = calculate_activity(seeded_db, activity)
        assert calculation.method == "SPEND_BASED"
        assert calculation.result_kg_co2e == pytest.approx(100)

    def test_site_country_uses_global_fallback(self, seeded_db, tenant):
        """Refrigerant factors are found through GLOBAL for any country."""
        activity = _activity(
            seeded_db, tenant.site, tenant.period, "FUGITIVE_EMISSIONS_REFRIGERANTS", 2, "kg",
        )
        calculation = calculate_activity(seeded_db, activity, site_country="FR")
        assert calculation.scope == "SCOPE_1"
        assert calculation.result_kg_co2e == pytest.approx(2860)

    def test_missing_factor_unit(self, seeded_db, tenant):
        """A unit with no factor fails loudly."""
        activity = _activity(seeded_db, tenant.site, tenant.period, "ELECTRICITY", 2, "MWh")
        with pytest.raises(FactorNotFoundError) as exc_info:
            calculate_activity(seeded_db, activity)
        assert exc_info.value.message == "No emission factor found for ELECTRICITY_GRID, UK, MWh"
        assert exc_info.value.context == {"category": "ELECTRICITY_GRID", "geography": "UK", "unit": "MWh"}

    def test_missing_factor_date(self, seeded_db, tenant):
        """Activities outside every factor's validity fail."""
        activity = _activity(
            seeded_db, tenant.site, tenant.period, "ELECTRICITY", 10, "kWh",
            start=date(2019, 1, 1), end=date(2019, 3, 31),
        )
        with pytest.raises(FactorNotFoundError):
            calculate_activity(seeded_db, activity)

    def test_deterministic(self, seeded_db, tenant):
        """The same activity and factors give the same hash."""
        activity = _activity(seeded_db, tenant.site, tenant.period, "LPG", 321, "kWh")
        first = calculate_activity(seeded_db, activity)
        second = calculate_activity(seeded_db, activity)
        assert first == second
        assert first.provenance_hash == second.provenance_hash


class TestActivityCalculation:
    """Tests for the ActivityCalculation record."""

    def _make(self, **overrides):
        fields = dict(
            activity_id="a1", scope="SCOPE_1", method="DETERMINISTIC", quantity_base=10.0,
            unit_base="kWh", factor_id="f1", result_kg_co2e=2.0, uncertainty=0.1,
        )
        fields.update(overrides)
        return ActivityCalculation(**fields)

    def test_hash_changes_with_inputs(self):
        """Any input change changes the provenance hash."""
        assert self._make().provenance_hash != self._make(quantity_base=11.0).provenance_hash

    def test_explicit_hash_is_kept(self):
        """A supplied hash is not recomputed."""
        assert self._make(provenance_hash="abc").provenance_hash == "abc"

    def test_to_result(self):
        """Conversion to an EmissionResult keeps every field."""
        result = self._make().to_result("run-1")
        assert isinstance(result, EmissionResult)
        assert result.calc_run_id == "run-1"
        assert result.result_kg_co2e == 2.0
        assert result.provenance_hash == self._make().provenance_hash


class TestRunCalculation:
    """Tests for calculation runs over a reporting period."""

    def test_partial_success_completes(self, seeded_db, tenant):
        """Failed activities are recorded while the run completes."""
        _activity(seeded_db, tenant.site, tenant.period, "STATIONARY_COMBUSTION_NATURAL_GAS", 1000, "kWh")
        diesel = _activity(seeded_db, tenant.site, tenant.period, "MOBILE_COMBUSTION_DIESEL", 250, "litres")

        run_id = run_calculation(seeded_db, tenant.customer.id, tenant.period.id, requested_by="user-1")
        calc_run = seeded_db.get(CalcRun, run_id)

        assert calc_run.status == "COMPLETED"
        assert calc_run.requested_by == "user-1"
        assert calc_run.factor_library_version == "DEFRA-2025.1"
        assert calc_run.completed_at is not None
        assert calc_run.error_message == (
            f"Activity {diesel.id}: No emission factor found for DIESEL, UK, litres"
        )

        results = seeded_db.query(EmissionResult).filter(EmissionResult.calc_run_id == run_id).all()
        assert len(results) == 1
        assert results[0].result_kg_co2e == pytest.approx(0.2027)

    def test_all_failures_fail_the_run(self, seeded_db, tenant):
        """A run where nothing could be calculated is FAILED."""
        first = _activity(seeded_db, tenant.site, tenant.period, "ELECTRICITY", 1, "MWh")
        second = _activity(seeded_db, tenant.site, tenant.period, "WATER", 5, "m3")

        run_id = run_calculation(seeded_db, tenant.customer.id, tenant.period.id)
        calc_run = seeded_db.get(CalcRun, run_id)

        assert calc_run.status == "FAILED"
        assert f"Activity {first.id}:" in calc_run.error_message
        assert f"Activity {second.id}:" in calc_run.error_message
        assert "; " in calc_run.error_message

    def test_no_activities(self, seeded_db, tenant):
        """An empty period completes with an explanatory message."""
        run_id = run_calculation(seeded_db, tenant.customer.id, tenant.period.id)
        calc_run = seeded_db.get(CalcRun, run_id)
        assert calc_run.status == "COMPLETED"
        assert calc_run.error_message == NO_ACTIVITIES_MESSAGE

    def test_unexpected_error_commits_failed_run(self, seeded_db, tenant, monkeypatch):
        """A crash rolls back the session but the FAILED run is kept."""
        _activity(seeded_db, tenant.site, tenant.period, "ELECTRICITY", 1000, "kWh")
        seeded_db.commit()

        def broken(self, calc_run_id):
            raise RuntimeError("results table unavailable")

        monkeypatch.setattr(ActivityCalculation, "to_result", broken)
        with pytest.raises(RuntimeError, match="results table unavailable"):
            run_calculation(seeded_db, tenant.customer.id, tenant.period.id, requested_by="user-1")

        other_session = get_session_factory()()
        try:
            runs = other_session.query(CalcRun).all()
            assert len(runs) == 1
            assert runs[0].status == "FAILED"
            assert runs[0].error_message == "results table unavailable"
            assert runs[0].requested_by == "user-1"
            assert runs[0].completed_at is not None
            assert other_session.query(EmissionResult).count() == 0
        finally:
            other_session.close()

    def test_other_customers_activities_are_excluded(self, seeded_db, tenant):
        """Only the requesting customer's sites are calculated."""
        other = Customer(name="Globex", code="GLOBEX")
        seeded_db.add(other)
        seeded_db.flush()
        other_site = Site(customer_id=other.id, name="Plant", country="UK")
        seeded_db.add(other_site)
        seeded_db.flush()
        _activity(seeded_db, other_site, tenant.period, "ELECTRICITY", 1000, "kWh")

        run_id = run_calculation(seeded_db, tenant.customer.id, tenant.period.id)
        assert seeded_db.get(CalcRun, run_id).error_message == NO_ACTIVITIES_MESSAGE

    def test_get_results_aggregates_by_scope(self, seeded_db, tenant):
        """Results load with a per-scope aggregation."""
        _activity(seeded_db, tenant.site, tenant.period, "NATURAL_GAS", 1000, "kWh")
        _activity(seeded_db, tenant.site, tenant.period, "ELECTRICITY", 1000, "kWh")
        _activity(seeded_db, tenant.site, tenant.period, "WASTE", 2, "tonne")

        run_id = run_calculation(seeded_db, tenant.customer.id, tenant.period.id)
        loaded = get_calculation_results(seeded_db, run_id)

        assert loaded["calc_run"].id == run_id
        assert len(loaded["results"]) == 3
        aggregation = loaded["aggregation"]
        assert aggregation["scope1_total"] == pytest.approx(0.2027)
        assert aggregation["scope2_total"] == pytest.approx(0.177)
        assert aggregation["scope3_total"] == pytest.approx(400)
        assert aggregation["total_emissions"] == pytest.approx(400.3797)
        assert aggregation["result_count"] == 3
        assert all(r.activity.site.name == "Head Office" for r in loaded["results"])

    def test_get_results_unknown_run(self, db):
        """Unknown runs raise CalcRunNotFoundError."""
        with pytest.raises(CalcRunNotFoundError) as exc_info:
            get_calculation_results(db, "missing")
        assert exc_info.value.calc_run_id == "missing"


class TestAggregateAndValidate:
    """Tests for aggregate_results and validate_activity_data."""

    def test_aggregate_empty(self):
        """No results sum to zero."""
        assert aggregate_results([]) == {
            "scope1_total": 0.0,
            "scope2_total": 0.0,
            "scope3_total": 0.0,
            "total_emissions": 0.0,
            "result_count": 0,
        }

    def test_aggregate_unknown_scope_counts_in_total(self):
        """Results with an unexpected scope still add to the total."""
        results = [
            EmissionResult(scope="SCOPE_1", result_kg_co2e=1.5),
            EmissionResult(scope="OTHER", result_kg_co2e=2.0),
        ]
        aggregation = aggregate_results(results)
        assert aggregation["scope1_total"] == 1.5
        assert aggregation["total_emissions"] == 3.5

    def test_valid_activity(self):
        """Complete activity data has no errors."""
        assert validate_activity_data({
            "quantity": 10, "unit": "kWh", "type": "ELECTRICITY",
            "activity_date_start": Q1_START, "activity_date_end": Q1_END,
        }) == []

    def test_every_rule(self):
        """Each missing or inconsistent field is reported."""
        assert validate_activity_data({"quantity": 0, "unit": " "}) == [
            "Quantity must be positive",
            "Unit is required",
            "Activity type is required",
            "Activity start date is required",
            "Activity end date is required",
        ]

    def test_inverted_dates(self):
        """Start after end is rejected."""
        errors = validate_activity_data({
            "quantity": 1, "unit": "kWh", "type": "GAS",
            "activity_date_start": Q1_END, "activity_date_end": Q1_END - timedelta(days=1),
        })
        assert errors == ["Start date must be before end date"]
