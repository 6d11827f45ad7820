"""Excel Record Extraction - typed records from spreadsheet workbooks."""

from excel_record_extraction.models import ColumnConfig, ParserConfig, Schema
from excel_record_extraction.services.excel_extractor import (
    ExcelExtractor,
    ExtractionStats,
    extract,
    plan_schema,
)

__all__ = [
    "ColumnConfig",
    "ExcelExtractor",
    "ExtractionStats",
    "ParserConfig",
    "Schema",
    "extract",
    "plan_schema",
]
__version__ = "0.1.0"
