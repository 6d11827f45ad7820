"""Utilities package for Excel record extraction.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from excel_record_extraction.utils.exceptions import (
    CellProcessingError,
    CellValueError,
    ConfigError,
    ConversionError,
    ErrorCode,
    ExtractorError,
    FormulaEvaluationError,
    SheetNotFoundError,
    WorkbookDecodeError,
)
from excel_record_extraction.utils.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Exceptions
    "CellProcessingError",
    "CellValueError",
    "ConfigError",
    "ConversionError",
    "ErrorCode",
    "ExtractorError",
    "FormulaEvaluationError",
    "SheetNotFoundError",
    "WorkbookDecodeError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
