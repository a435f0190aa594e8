"""
Tests for export routes.

Time is frozen so trailing estimates stop at a known day.
"""

import csv
import io
import json

import pytest
from freezegun import freeze_time

FROZEN_NOW = "2024-03-10 12:00:00"


@pytest.fixture
def topups(client, sample_topup_payload):
    """
    Baseline on 1 March, then 30 L on the 4th and 40 L on the 8th.

    Estimates: 20 L on the 2nd and 3rd, 14 L on the 5th to 7th and on the 9th.
    """
    with freeze_time(FROZEN_NOW):
        created = []
        for day, litres in (("2024-03-01", 50.0), ("2024-03-04", 30.0), ("2024-03-08", 40.0)):
            payload = dict(sample_topup_payload, date=day, litres=litres, cost_per_litre=1.5, notes="pump 3")
            created.append(json.loads(client.post("/api/fuel-topups", json=payload).data))
        client.post(f"/api/fuel-topups/{created[0]['id']}/first")
    return created


def get(client, url):
    with freeze_time(FROZEN_NOW):
        return client.get(url)


class TestExportConsumption:
    """Tests for GET /api/export/consumption."""

    def test_json_export_follows_consumption_series(self, client, topups):
        """Test estimated days are exported and the baseline is not."""
        response = get(client, "/api/export/consumption?vehicle_id=car-1")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["success"] is True
        assert data["metadata"]["total_records"] == 8
        assert data["metadata"]["format"] == "json"
        assert [r["date"] for r in data["data"]][:3] == ["2024-03-02", "2024-03-03", "2024-03-04"]
        assert data["data"][0] == {
            "date": "2024-03-02", "litres": 20.0, "cost": 30.0, "type": "ESTIMATED", "topup_id": None,
        }
        assert data["data"][2] == {
            "date": "2024-03-04", "litres": 30.0, "cost": 45.0, "type": "MANUAL", "topup_id": topups[1]["id"],
        }

    def test_manual_only(self, client, topups):
        data = json.loads(get(client, "/api/export/consumption?vehicle_id=car-1&include_estimates=false").data)

        assert [(r["date"], r["litres"], r["cost"]) for r in data["data"]] == [
            ("2024-03-04", 30.0, 45.0),
            ("2024-03-08", 40.0, 60.0),
        ]

    def test_csv_export(self, client, topups):
        response = get(client, "/api/export/consumption?vehicle_id=car-1&format=csv")

        assert response.mimetype == "text/csv"
        assert "consumption-data.csv" in response.headers["Content-Disposition"]
        rows = list(csv.reader(io.StringIO(response.data.decode())))
        assert rows[0] == ["Date", "Litres", "Cost", "Type", "Topup ID"]
        assert rows[1] == ["2024-03-02", "20.0", "30.0", "ESTIMATED", ""]
        assert rows[3] == ["2024-03-04", "30.0", "45.0", "MANUAL", topups[1]["id"]]
        assert len(rows) == 9

    def test_date_filter(self, client, topups):
        data = json.loads(get(client, "/api/export/consumption?vehicle_id=car-1&start_date=2024-03-05").data)
        assert [r["date"] for r in data["data"]] == [
            "2024-03-05", "2024-03-06", "2024-03-07", "2024-03-08", "2024-03-09",
        ]

    def test_matches_analytics_consumption(self, client, topups):
        exported = json.loads(get(client, "/api/export/consumption?vehicle_id=car-1").data)["data"]
        series = json.loads(get(client, "/api/analytics/consumption?vehicle_id=car-1").data)["data"]

        assert [(r["date"], r["litres"], r["cost"]) for r in exported] == [
            (p["date"], p["quantity"], p["cost"]) for p in series
        ]

    @freeze_time("2024-03-06 12:00:00")
    def test_electric_costs_use_tariff(self, client, sample_topup_payload):
        """Test exported costs are priced from the tariff, like the analytics series."""
        electric = dict(sample_topup_payload, fuel_type="ELECTRIC", cost_per_litre=0.3)
        electric.pop("fuel_grade")
        client.post("/api/fuel-topups", json=dict(electric, date="2024-03-01", litres=10.0))
        client.post("/api/fuel-topups", json=dict(electric, date="2024-03-05", litres=20.0))
        client.post("/api/tariffs", json={"start_date": "2024-01-01", "unit_rate": 24.5})

        exported = json.loads(client.get("/api/export/consumption?vehicle_id=car-1").data)["data"]
        series = json.loads(client.get("/api/analytics/consumption?vehicle_id=car-1").data)["data"]

        assert exported[-1]["date"] == "2024-03-05"
        assert exported[-1]["cost"] == 4.9
        assert [r["cost"] for r in exported] == [p["cost"] for p in series]

    def test_bad_date(self, client):
        assert client.get("/api/export/consumption?end_date=garbage").status_code == 400


class TestExportTopups:
    """Tests for GET /api/export/topups."""

    def test_csv_default(self, client, topups):
        response = client.get("/api/export/topups")

        assert response.mimetype == "text/csv"
        assert "fuel-topups-" in response.headers["Content-Disposition"]
        rows = list(csv.reader(io.StringIO(response.data.decode())))
        assert rows[0][:6] == ["Date", "Time", "Litres", "Cost Per Litre", "Total Cost", "Mileage"]
        assert rows[1][0] == "01/03/2024"
        assert rows[1][2] == "50.0"
        assert rows[1][7] == "MANUAL"
        assert rows[1][8] == "pump 3"
        assert len(rows) == 4

    def test_json(self, client, topups):
        data = json.loads(client.get("/api/export/topups?format=json").data)
        assert [t["litres"] for t in data] == [50.0, 30.0, 40.0]
