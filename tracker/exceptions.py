"""
Custom exceptions for the fuel tracker.

This module provides a hierarchy of exceptions for better error handling
and more informative error messages throughout the application.
"""


class FuelTrackerError(Exception):
    """Base exception for all fuel tracker errors."""

    status_code = 500

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class DatabaseError(FuelTrackerError):
    """Database operation failed.

    ``retryable`` is True when the failure was connectivity (the write may
    succeed later) rather than a constraint violation.
    """

    def __init__(self, message: str, details: dict = None, retryable: bool = False):
        super().__init__(message, details)
        self.retryable = retryable


class EntryValidationError(FuelTrackerError):
    """Submitted entry data failed validation."""

    status_code = 400

    def __init__(self, message: str, errors: list = None):
        details = {}
        if errors:
            details['errors'] = errors
        super().__init__(message, details)
        self.errors = errors or []


class DuplicateEntryError(FuelTrackerError):
    """An entry with the same subject, date and quantity already exists."""

    status_code = 409

    def __init__(self, message: str, subject_id: str = None, entry_date: str = None,
                 existing_id: str = None):
        details = {}
        if subject_id:
            details['subject_id'] = subject_id
        if entry_date:
            details['date'] = entry_date
        if existing_id:
            details['existing_id'] = existing_id
        super().__init__(message, details)
        self.subject_id = subject_id
        self.entry_date = entry_date
        self.existing_id = existing_id


class EntryNotFoundError(FuelTrackerError):
    """Operation referenced an entry id that does not exist."""

    status_code = 404

    def __init__(self, message: str, entry_id: str = None):
        details = {}
        if entry_id:
            details['entry_id'] = entry_id
        super().__init__(message, details)
        self.entry_id = entry_id


class TariffValidationError(FuelTrackerError):
    """Tariff period dates are invalid or overlap an existing period."""

    status_code = 400

    def __init__(self, message: str, tariff_id: str = None):
        details = {}
        if tariff_id:
            details['tariff_id'] = tariff_id
        super().__init__(message, details)
        self.tariff_id = tariff_id


class ConfigurationError(FuelTrackerError):
    """Invalid or missing configuration."""

    def __init__(self, message: str, config_key: str = None):
        details = {}
        if config_key:
            details['config_key'] = config_key
        super().__init__(message, details)
        self.config_key = config_key
