"""
Tests for fuel price routes.

The retailer fan-out is patched; the service itself is covered in
test_price_service.py.
"""

import json
from unittest.mock import patch

import pytest

from services.price_service import DEFAULT_PRICES, RETAILER_ENDPOINTS

AVERAGES = {
    "unleaded": 140.0,
    "diesel": 150.0,
    "super_unleaded": 155.0,
    "premium_diesel": 165.0,
    "last_updated": "2024-03-01T08:00:00",
    "source": "RETAILER_AVERAGE",
    "retailers": [{"retailer": "Asda", "unleaded": 140.0}],
}


@pytest.fixture
def mock_averages():
    with patch("services.price_service.fetch_averages", return_value=dict(AVERAGES)) as mock:
        yield mock


class TestAverages:
    """Tests for GET /api/fuel-prices/averages."""

    def test_averages(self, client, mock_averages):
        response = client.get("/api/fuel-prices/averages")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["success"] is True
        assert data["data"]["unleaded"] == 140.0
        assert data["data"]["source"] == "RETAILER_AVERAGE"

    def test_defaults_when_no_retailer_responds(self, client):
        with patch("services.price_service.fetch_averages", return_value=dict(DEFAULT_PRICES)):
            data = json.loads(client.get("/api/fuel-prices/averages").data)
        assert data["data"]["source"] == "MANUAL"
        assert data["data"]["unleaded"] == 136.8

    def test_retailer_averages_are_cached(self, client, mock_averages):
        with patch("routes.fuel_prices.cache") as mock_cache:
            mock_cache.get.return_value = None
            client.get("/api/fuel-prices/averages")
        mock_cache.set.assert_called_once()

    def test_defaults_are_not_cached(self, client):
        with patch("services.price_service.fetch_averages", return_value=dict(DEFAULT_PRICES)), \
                patch("routes.fuel_prices.cache") as mock_cache:
            mock_cache.get.return_value = None
            client.get("/api/fuel-prices/averages")
        mock_cache.set.assert_not_called()

    def test_retailers(self, client):
        data = json.loads(client.get("/api/fuel-prices/retailers").data)
        assert data["data"] == list(RETAILER_ENDPOINTS)


class TestCompare:
    """Tests for GET /api/fuel-prices/compare."""

    def test_compare_below_average(self, client, mock_averages):
        response = client.get("/api/fuel-prices/compare?price=133")

        assert response.status_code == 200
        data = json.loads(response.data)["data"]
        assert data["grade"] == "UNLEADED"
        assert data["average_price"] == 140.0
        assert data["difference"] == 7.0
        assert data["percentage_difference"] == 5.0
        assert data["is_below_average"] is True

    def test_compare_diesel(self, client, mock_averages):
        data = json.loads(client.get("/api/fuel-prices/compare?price=160&grade=standard_diesel").data)["data"]
        assert data["average_price"] == 150.0
        assert data["is_below_average"] is False

    @pytest.mark.parametrize("price", ["", "abc", "0", "-5", "nan", "inf"])
    def test_compare_bad_price(self, client, mock_averages, price):
        response = client.get(f"/api/fuel-prices/compare?price={price}")
        assert response.status_code == 400

    def test_compare_unknown_grade(self, client, mock_averages):
        response = client.get("/api/fuel-prices/compare?price=140&grade=RED_DIESEL")
        assert response.status_code == 400
