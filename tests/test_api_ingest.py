"""
Tests for file ingestion, upload history and emissions inventory
endpoints.

Author: CarbonLedger Platform Team
Date: October 2026
Status: Production Ready
"""

import pytest

from carbonledger.ingestion.mapping import EMISSION_CATEGORIES
from carbonledger.ingestion.service import MISSING_COLUMNS_MESSAGE

CSV = "text/csv"

INVENTORY_ROWS = [
    ["GPC ref. No", "Scope", "Fuel Type or Activity", "Activity Data Amount", "Activity Data Unit",
     "Inventory Year", "Description"],
    ["I.1.1", "Scope 1", "Natural Gas", "12500", "kWh", "2023", "Heating"],
    ["I.1.2", "Scope 2", "Electricity", "8000", "kWh", "2023", ""],
    ["I.3.1", "Scope 3", "Waste", "abc", "tonnes", "2023", ""],
]

FREE_FORM_ROWS = [
    ["Description", "Amount", "Unit", "Year", "Scope"],
    ["Office electricity", "12500", "kWh", "2024", "Scope 2"],
    ["Fleet diesel", "300", "", "", ""],
]


def _save_params(world):
    return {"customerId": world.customer_id, "periodId": world.period_id, "save": "true"}


# ==============================================================================
# Ingest
# ==============================================================================

class TestIngestPreview:
    """Tests for POST /api/ingest without saving."""

    def test_preview(self, client, world, activity_csv):
        """Rows are mapped and returned without touching the database."""
        response = client.post(
            "/api/ingest", headers=world.editor, files={"file": ("activities.csv", activity_csv, CSV)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["rows_imported"] == 2
        assert body["rows_failed"] == 0
        assert body["message"] == "Successfully processed 2 rows (preview mode)"
        assert body["data"][0]["emission_category"] == "STATIONARY_COMBUSTION_NATURAL_GAS"
        assert body["data"][0]["activity_date_start"] == "2025-01-01"
        assert {m["target_field"] for m in body["header_mappings"]} >= {"emission_category", "quantity"}

        listed = client.get(
            "/api/activities", headers=world.viewer, params={"customerId": world.customer_id},
        ).json()
        assert listed["pagination"]["total"] == 0

    def test_missing_columns(self, client, world, make_csv):
        """Mapping failures come back as a 400 ingest result."""
        content = make_csv([["Site", "Unit", "Start Date"], ["Depot", "kWh", "2025-01-01"]])
        response = client.post("/api/ingest", headers=world.editor, files={"file": ("a.csv", content, CSV)})
        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "error"
        assert body["message"] == MISSING_COLUMNS_MESSAGE
        assert body["missing_targets"] == ["emission_category", "quantity"]

    def test_no_file(self, client, world):
        response = client.post("/api/ingest", headers=world.editor)
        assert response.status_code == 400
        assert response.json()["code"] == "NO_FILE"

    def test_invalid_file_type(self, client, world):
        response = client.post(
            "/api/ingest", headers=world.editor, files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_FILE_TYPE"

    def test_file_too_large(self, client, world):
        """Uploads over the configured limit are refused."""
        content = b"a" * (1024 * 1024 + 1)
        response = client.post("/api/ingest", headers=world.editor, files={"file": ("big.csv", content, CSV)})
        assert response.status_code == 413
        assert response.json()["code"] == "FILE_TOO_LARGE"

    def test_viewers_cannot_ingest(self, client, world, activity_csv):
        response = client.post(
            "/api/ingest", headers=world.viewer, files={"file": ("a.csv", activity_csv, CSV)},
        )
        assert response.status_code == 403

    def test_customer_required_for_admins(self, client, world, activity_csv):
        """Admins have no customer of their own to default to."""
        response = client.post(
            "/api/ingest", headers=world.admin, files={"file": ("a.csv", activity_csv, CSV)},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "CUSTOMER_ID_REQUIRED"

    def test_categories(self, client, world):
        body = client.get("/api/ingest/categories", headers=world.viewer).json()
        assert body["status"] == "success"
        assert body["count"] == len(body["categories"])
        assert set(body["categories"]) <= set(EMISSION_CATEGORIES)

    def test_template_and_help(self, client, world):
        template = client.get("/api/ingest/template", headers=world.viewer).json()
        assert "Emission Category" in template["columns"]
        assert template["supported_categories"] == list(EMISSION_CATEGORIES)

        help_body = client.get("/api/ingest/help", headers=world.viewer).json()
        assert help_body["endpoint"] == "POST /api/ingest"


class TestIngestSave:
    """Tests for POST /api/ingest?save=true."""

    def test_save_creates_upload_sites_and_activities(self, client, world, activity_csv):
        response = client.post(
            "/api/ingest",
            headers=world.editor,
            params=_save_params(world),
            files={"file": ("activities.csv", activity_csv, CSV)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Successfully processed and saved 2 rows"
        assert body["activities_created"] == 2
        assert body["save_errors"] == []
        assert "data" not in body

        upload = client.get(f"/api/uploads/{body['upload_id']}", headers=world.viewer).json()
        assert upload["status"] == "completed"
        assert upload["originalName"] == "activities.csv"
        assert upload["rowCount"] == 2
        assert upload["fileHash"] == body["provenance_hash"]
        assert upload["_count"] == {"activities": 2}

        sites = client.get("/api/sites", headers=world.viewer, params={"customerId": world.customer_id}).json()
        assert [s["name"] for s in sites] == ["Head Office", "Leeds Depot", "London HQ"]

    def test_saved_activities_can_be_calculated(self, client, world, activity_csv):
        """Ingested natural gas is Scope 1; diesel in litres has no factor."""
        client.post(
            "/api/ingest",
            headers=world.editor,
            params=_save_params(world),
            files={"file": ("activities.csv", activity_csv, CSV)},
        )
        run = client.post(
            "/api/calc/runs",
            headers=world.editor,
            json={"customerId": world.customer_id, "periodId": world.period_id},
        ).json()
        assert run["status"] == "COMPLETED"

        body = client.get(f"/api/calc/runs/{run['calcRunId']}/results", headers=world.viewer).json()
        assert body["aggregation"]["scope1Total"] == pytest.approx(0.2027)
        assert body["aggregation"]["resultCount"] == 1
        assert "DIESEL" in body["calcRun"]["errorMessage"]

    def test_period_required(self, client, world, activity_csv):
        response = client.post(
            "/api/ingest",
            headers=world.editor,
            params={"save": "true"},
            files={"file": ("a.csv", activity_csv, CSV)},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "PERIOD_ID_REQUIRED"

    def test_period_must_match_customer(self, client, world, activity_csv):
        response = client.post(
            "/api/ingest",
            headers=world.admin,
            params={"customerId": world.customer_id, "periodId": world.other_period_id, "save": "true"},
            files={"file": ("a.csv", activity_csv, CSV)},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "PERIOD_CUSTOMER_MISMATCH"

    def test_unknown_period(self, client, world, activity_csv):
        response = client.post(
            "/api/ingest",
            headers=world.editor,
            params={"periodId": "missing", "save": "true"},
            files={"file": ("a.csv", activity_csv, CSV)},
        )
        assert response.status_code == 404
        assert response.json()["code"] == "PERIOD_NOT_FOUND"


# ==============================================================================
# Uploads
# ==============================================================================

class TestUploads:
    """Tests for /api/uploads."""

    def _ingest(self, client, world, activity_csv):
        return client.post(
            "/api/ingest",
            headers=world.editor,
            params=_save_params(world),
            files={"file": ("activities.csv", activity_csv, CSV)},
        ).json()["upload_id"]

    def test_list(self, client, world, activity_csv):
        upload_id = self._ingest(client, world, activity_csv)
        uploads = client.get("/api/uploads", headers=world.viewer, params={"customerId": world.customer_id}).json()
        assert [u["id"] for u in uploads] == [upload_id]
        assert uploads[0]["uploader"] == {"email": "editor@acme.test"}
        assert uploads[0]["_count"] == {"activities": 2}

    def test_unknown_upload(self, client, world):
        response = client.get("/api/uploads/missing", headers=world.viewer)
        assert response.status_code == 404
        assert response.json()["code"] == "UPLOAD_NOT_FOUND"

    def test_delete_keeps_activities(self, client, world, activity_csv):
        """Deleting an upload unlinks but keeps its activities."""
        upload_id = self._ingest(client, world, activity_csv)

        assert client.delete(f"/api/uploads/{upload_id}", headers=world.editor).status_code == 403
        assert client.delete(f"/api/uploads/{upload_id}", headers=world.admin).status_code == 204

        listed = client.get(
            "/api/activities", headers=world.viewer, params={"customerId": world.customer_id},
        ).json()
        assert listed["pagination"]["total"] == 2
        assert all(a["uploadId"] is None for a in listed["activities"])


# ==============================================================================
# Emissions inventory
# ==============================================================================

class TestInventoryEndpoints:
    """Tests for /api/emissions-inventory."""

    def test_parse(self, client, world, make_csv):
        """Parsing previews a summary, sample rows and errors."""
        response = client.post(
            "/api/emissions-inventory/parse",
            headers=world.viewer,
            files={"file": ("inventory.csv", make_csv(INVENTORY_ROWS), CSV)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["totalRows"] == 3
        assert body["summary"]["validRows"] == 2
        assert body["summary"]["errorRows"] == 1
        assert body["sample"][0]["rowIndex"] == 2
        assert body["sample"][0]["mapped"]["activityType"] == "NATURAL_GAS"
        assert [e["rowIndex"] for e in body["errorDetails"]] == [4]
        assert body["detectedColumns"] == {
            "gpc_ref_no": "GPC ref. No",
            "scope": "Scope",
            "fuel_type_or_activity": "Fuel Type or Activity",
            "activity_data_amount": "Activity Data Amount",
            "activity_data_unit": "Activity Data Unit",
            "inventory_year": "Inventory Year",
            "description": "Description",
        }
        assert body["message"] == "Successfully parsed 2 valid rows out of 3 total rows."

    def test_parse_detects_columns_from_header_row(self, client, world, make_csv):
        """Columns are detected from the header row, even where the first row is blank."""
        content = make_csv([
            INVENTORY_ROWS[0],
            ["I.1.9", "Scope 1", "Natural Gas", "NO", "", "", ""],
        ])
        response = client.post(
            "/api/emissions-inventory/parse",
            headers=world.viewer,
            files={"file": ("inventory.csv", content, CSV)},
        )
        assert response.status_code == 200
        detected = response.json()["detectedColumns"]
        assert detected["activity_data_unit"] == "Activity Data Unit"
        assert detected["inventory_year"] == "Inventory Year"
        assert detected["description"] == "Description"

    def test_import(self, client, world, make_csv):
        """Valid rows become activities linked to an imported upload."""
        response = client.post(
            "/api/emissions-inventory/import",
            headers=world.editor,
            params={"siteId": world.site_id, "periodId": world.period_id},
            files={"file": ("inventory.csv", make_csv(INVENTORY_ROWS), CSV)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["totalParsed"] == 3
        assert body["totalImported"] == 2
        assert len(body["nextSteps"]) == 3

        upload = client.get(f"/api/uploads/{body['uploadId']}", headers=world.viewer).json()
        assert upload["status"] == "imported"
        assert upload["errorCount"] == 1
        assert upload["_count"] == {"activities": 2}

        activities = client.get(
            "/api/activities", headers=world.viewer, params={"customerId": world.customer_id},
        ).json()["activities"]
        assert {a["type"] for a in activities} == {"NATURAL_GAS", "ELECTRICITY"}
        assert all(a["source"] == "EMISSIONS_INVENTORY_UPLOAD" for a in activities)

    def test_import_without_valid_rows(self, client, world, make_csv):
        content = make_csv([INVENTORY_ROWS[0], INVENTORY_ROWS[3]])
        response = client.post(
            "/api/emissions-inventory/import",
            headers=world.editor,
            params={"siteId": world.site_id, "periodId": world.period_id},
            files={"file": ("inventory.csv", content, CSV)},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "NO_VALID_ACTIVITIES"

    def test_import_into_other_customers_site(self, client, world, make_csv):
        response = client.post(
            "/api/emissions-inventory/import",
            headers=world.editor,
            params={"siteId": world.other_site_id, "periodId": world.other_period_id},
            files={"file": ("inventory.csv", make_csv(INVENTORY_ROWS), CSV)},
        )
        assert response.status_code == 403

    def test_import_requires_site(self, client, world, make_csv):
        response = client.post(
            "/api/emissions-inventory/import",
            headers=world.editor,
            params={"periodId": world.period_id},
            files={"file": ("inventory.csv", make_csv(INVENTORY_ROWS), CSV)},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "query.siteId: Field required"

    def test_intelligent_parse(self, client, world, make_csv):
        response = client.post(
            "/api/emissions-inventory/intelligent-parse",
            headers=world.viewer,
            files={"file": ("data.csv", make_csv(FREE_FORM_ROWS), CSV)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["method"] == "intelligent"
        assert body["summary"]["totalFound"] == 2
        assert body["summary"]["highConfidence"] == 1
        assert body["results"][0]["activityType"] == "ELECTRICITY"
        assert body["results"][0]["confidence"] == 1.0
        assert body["message"] == "Found 2 activities with 1 high-confidence matches"

    def test_intelligent_import(self, client, world, make_csv):
        """Only results at or above the minimum confidence are imported."""
        response = client.post(
            "/api/emissions-inventory/intelligent-import",
            headers=world.editor,
            params={"siteId": world.site_id, "periodId": world.period_id, "minConfidence": 0.7},
            files={"file": ("data.csv", make_csv(FREE_FORM_ROWS), CSV)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["totalParsed"] == 2
        assert body["totalImported"] == 1
        assert body["minConfidence"] == 0.7

    def test_intelligent_import_nothing_confident(self, client, world, make_csv):
        response = client.post(
            "/api/emissions-inventory/intelligent-import",
            headers=world.editor,
            params={"siteId": world.site_id, "periodId": world.period_id, "minConfidence": 1.0},
            files={"file": ("data.csv", make_csv([FREE_FORM_ROWS[0], FREE_FORM_ROWS[2]]), CSV)},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "No activities found with confidence >= 1.0"
