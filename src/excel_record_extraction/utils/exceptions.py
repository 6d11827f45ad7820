"""Centralized exception classes for Excel record extraction.

This module provides a hierarchy of custom exceptions with error codes and
structured error details for consistent error handling throughout the
extraction pipeline.

Exception Hierarchy:
    ExtractorError (base)
    ├── ConfigError
    │   └── SheetNotFoundError
    ├── WorkbookDecodeError
    └── CellProcessingError
        ├── ConversionError
        ├── FormulaEvaluationError
        └── CellValueError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the library.

    Error codes are grouped by category:
    - E1xxx: Workbook/input errors
    - E2xxx: Configuration errors
    - E4xxx: Cell processing errors
    - E9xxx: Internal/unexpected errors
    """

    # Workbook errors (E1xxx)
    WORKBOOK_DECODE_FAILED = "E1001"
    WORKBOOK_READ_ERROR = "E1002"

    # Configuration errors (E2xxx)
    INVALID_CONFIG = "E2001"
    SHEET_NOT_FOUND = "E2002"
    UNSUPPORTED_RECORD_TYPE = "E2003"
    INVALID_CELL_REFERENCE = "E2004"

    # Cell processing errors (E4xxx)
    CONVERSION_FAILED = "E4001"
    FORMULA_EVALUATION_FAILED = "E4002"
    CELL_ERROR_VALUE = "E4003"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"


class ExtractorError(Exception):
    """Base exception for all Excel record extraction errors.

    All custom exceptions in the library should inherit from this class.
    It provides:
    - Unique error codes for programmatic handling
    - Structured error details for logging and debugging

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for structured reporting.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# Configuration Errors (E2xxx)
# =============================================================================


class ConfigError(ExtractorError):
    """Raised when the extraction configuration cannot be used."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_CONFIG,
        option: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the offending option name.

        Args:
            message: Error message.
            error_code: Error code.
            option: Name of the configuration option at fault.
            details: Additional details.
        """
        details = details or {}
        if option:
            details["option"] = option
        super().__init__(message, error_code, details)
        self.option = option


class SheetNotFoundError(ConfigError):
    """Raised when a resolved sheet name is absent from the workbook."""

    def __init__(
        self,
        sheet_name: str,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the missing sheet name.

        Args:
            sheet_name: Sheet that could not be found.
            source: Display name of the workbook input.
            details: Additional details.
        """
        details = details or {}
        details["sheet_name"] = sheet_name
        if source:
            details["source"] = source
        super().__init__(
            message=f"not found sheet={sheet_name}",
            error_code=ErrorCode.SHEET_NOT_FOUND,
            option="sheets",
            details=details,
        )
        self.sheet_name = sheet_name
        self.source = source


# =============================================================================
# Workbook Errors (E1xxx)
# =============================================================================


class WorkbookDecodeError(ExtractorError):
    """Raised when an input cannot be parsed as a workbook.

    Decoding is deterministic, so this error is never retried.
    """

    def __init__(
        self,
        message: str,
        source: str | None = None,
        error_code: ErrorCode = ErrorCode.WORKBOOK_DECODE_FAILED,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the input display name.

        Args:
            message: Error message.
            source: Display name of the input that failed.
            error_code: Error code.
            details: Additional details.
        """
        details = details or {}
        if source:
            details["source"] = source
        super().__init__(message, error_code, details)
        self.source = source


# =============================================================================
# Cell Processing Errors (E4xxx)
# =============================================================================


class CellProcessingError(ExtractorError):
    """Base class for errors raised while producing a single column value."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONVERSION_FAILED,
        column: str | None = None,
        coordinate: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the column and cell being processed.

        Args:
            message: Error message.
            error_code: Error code.
            column: Schema column name.
            coordinate: Cell coordinate such as ``Sheet1!B3``.
            details: Additional details.
        """
        details = details or {}
        if column:
            details["column"] = column
        if coordinate:
            details["coordinate"] = coordinate
        super().__init__(message, error_code, details)
        self.column = column
        self.coordinate = coordinate


class ConversionError(CellProcessingError):
    """Raised when a cell value cannot be converted to the column type."""

    def __init__(
        self,
        message: str,
        column: str | None = None,
        coordinate: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.CONVERSION_FAILED,
            column=column,
            coordinate=coordinate,
            details=details,
        )


class FormulaEvaluationError(CellProcessingError):
    """Raised when a formula cannot be evaluated."""

    def __init__(
        self,
        message: str,
        formula: str | None = None,
        column: str | None = None,
        coordinate: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if formula:
            details["formula"] = formula
        super().__init__(
            message=message,
            error_code=ErrorCode.FORMULA_EVALUATION_FAILED,
            column=column,
            coordinate=coordinate,
            details=details,
        )
        self.formula = formula


class CellValueError(CellProcessingError):
    """Raised when a cell holds an error value such as ``#DIV/0!``."""

    def __init__(
        self,
        error_value: str,
        column: str | None = None,
        coordinate: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["error_value"] = error_value
        super().__init__(
            message=f"cell error value {error_value}",
            error_code=ErrorCode.CELL_ERROR_VALUE,
            column=column,
            coordinate=coordinate,
            details=details,
        )
        self.error_value = error_value
