"""
Error Code Taxonomy for the fuel tracker

Structured error codes attached to wide events and API error responses.

Error Code Format:
- E001-E099: Validation errors (bad input data)
- E100-E199: External API errors (retailer price feeds)
- E200-E299: Database errors (connection, constraint failures)
- E300-E399: Parsing errors (price feed payloads)
- E500-E599: System errors (unhandled failures)
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """High-level error categories for grouping and alerting."""

    VALIDATION = "validation"
    EXTERNAL_API = "external_api"
    DATABASE = "database"
    PARSING = "parsing"
    SYSTEM = "system"


class ErrorCode(str, Enum):
    """Structured error codes with consistent format."""

    # Validation Errors (E001-E099)
    E006_INVALID_ENTRY_KIND = "E006"  # ESTIMATED submitted by a client

    # External API Errors (E100-E199)
    E110_PRICE_FEED_TIMEOUT = "E110"
    E111_PRICE_FEED_CONNECTION = "E111"
    E112_PRICE_FEED_HTTP_ERROR = "E112"
    E113_PRICE_FEED_NO_DATA = "E113"  # Every retailer failed; defaults served

    # Database Errors (E200-E299)
    E200_DB_CONNECTION_FAILED = "E200"
    E202_DB_CONSTRAINT_VIOLATION = "E202"

    # Parsing Errors (E300-E399)
    E303_JSON_DECODE_ERROR = "E303"

    # System Errors (E500-E599)
    E500_INTERNAL_SERVER_ERROR = "E500"


def _meta(category: ErrorCategory, description: str, severity: str = "warning", alert: bool = False) -> dict:
    return {"category": category, "description": description, "severity": severity, "alert": alert}


# Error metadata: maps error codes to categories and descriptions
ERROR_METADATA = {
    ErrorCode.E006_INVALID_ENTRY_KIND: _meta(ErrorCategory.VALIDATION, "Estimated entries cannot be submitted"),
    ErrorCode.E110_PRICE_FEED_TIMEOUT: _meta(ErrorCategory.EXTERNAL_API, "Retailer price feed timed out"),
    ErrorCode.E111_PRICE_FEED_CONNECTION: _meta(ErrorCategory.EXTERNAL_API, "Retailer price feed unreachable"),
    ErrorCode.E112_PRICE_FEED_HTTP_ERROR: _meta(ErrorCategory.EXTERNAL_API, "Retailer price feed returned an error"),
    ErrorCode.E113_PRICE_FEED_NO_DATA: _meta(
        ErrorCategory.EXTERNAL_API, "No retailer returned usable prices", alert=True
    ),
    ErrorCode.E200_DB_CONNECTION_FAILED: _meta(
        ErrorCategory.DATABASE, "Database connection failed", severity="critical", alert=True
    ),
    ErrorCode.E202_DB_CONSTRAINT_VIOLATION: _meta(
        ErrorCategory.DATABASE, "Database constraint violated", severity="error"
    ),
    ErrorCode.E303_JSON_DECODE_ERROR: _meta(ErrorCategory.PARSING, "JSON decoding failed"),
    ErrorCode.E500_INTERNAL_SERVER_ERROR: _meta(
        ErrorCategory.SYSTEM, "Unhandled internal error", severity="critical", alert=True
    ),
}


def get_error_metadata(error_code: ErrorCode) -> dict:
    """Get metadata for an error code."""
    return ERROR_METADATA.get(
        error_code,
        {
            "category": ErrorCategory.SYSTEM,
            "description": "Unknown error",
            "severity": "error",
            "alert": True,
        },
    )


class StructuredError:
    """Structured error with code, category, and metadata."""

    def __init__(self, code: ErrorCode, message: str, exception: Optional[Exception] = None, **context):
        """
        Create a structured error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            exception: Original exception (if applicable)
            **context: Additional context fields (subject_id, entry_id, retailer, etc.)
        """
        self.code = code
        self.message = message
        self.exception = exception
        self.context = context
        self.metadata = get_error_metadata(code)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and API responses."""
        error_dict = {
            "code": self.code.value,
            "category": self.metadata["category"].value,
            "message": self.message,
            "severity": self.metadata["severity"],
            "alert": self.metadata["alert"],
        }

        if self.exception:
            error_dict["exception_type"] = type(self.exception).__name__
            error_dict["exception_message"] = str(self.exception)

        if self.context:
            error_dict["context"] = self.context

        return error_dict

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"
