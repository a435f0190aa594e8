"""
Tests for the custom exception hierarchy.
"""

import pytest

from exceptions import (
    ConfigurationError,
    DatabaseError,
    DuplicateEntryError,
    EntryNotFoundError,
    EntryValidationError,
    FuelTrackerError,
    TariffValidationError,
)


class TestFuelTrackerError:

    def test_message_only(self):
        error = FuelTrackerError("Something broke")
        assert str(error) == "Something broke"
        assert error.details == {}
        assert error.status_code == 500

    def test_with_details(self):
        error = FuelTrackerError("Something broke", {"entry": "a"})
        assert str(error) == "Something broke - {'entry': 'a'}"


class TestSubclasses:
    """Each subclass carries its HTTP status and structured details."""

    @pytest.mark.parametrize("error_cls", [
        ConfigurationError,
        DatabaseError,
        DuplicateEntryError,
        EntryNotFoundError,
        EntryValidationError,
        TariffValidationError,
    ])
    def test_hierarchy(self, error_cls):
        assert issubclass(error_cls, FuelTrackerError)

    def test_database_error_retryable(self):
        assert DatabaseError("locked").retryable is False
        assert DatabaseError("gone away", retryable=True).retryable is True
        assert DatabaseError("x").status_code == 500

    def test_validation_error(self):
        errors = [{"code": "E006", "field": "entry_type"}]
        error = EntryValidationError("Invalid entry", errors)
        assert error.status_code == 400
        assert error.details == {"errors": errors}
        assert EntryValidationError("Invalid").errors == []

    def test_duplicate_entry(self):
        error = DuplicateEntryError("Duplicate", subject_id="car-1", entry_date="2024-03-01", existing_id="abc")
        assert error.status_code == 409
        assert error.details == {"subject_id": "car-1", "date": "2024-03-01", "existing_id": "abc"}

    def test_not_found(self):
        error = EntryNotFoundError("Fuel topup not found", "abc")
        assert error.status_code == 404
        assert error.entry_id == "abc"
        assert error.details == {"entry_id": "abc"}

    def test_tariff_validation(self):
        error = TariffValidationError("Tariff period overlaps an existing period")
        assert error.status_code == 400
        assert error.details == {}

    def test_configuration_error(self):
        error = ConfigurationError("Unknown timezone", config_key="REFERENCE_TIMEZONE")
        assert error.details == {"config_key": "REFERENCE_TIMEZONE"}

    def test_can_catch_as_base(self):
        with pytest.raises(FuelTrackerError):
            raise EntryNotFoundError("gone")
