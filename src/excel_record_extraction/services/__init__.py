"""Services for Excel record extraction."""

from excel_record_extraction.services.excel_extractor import (
    ExcelExtractor,
    ExtractionStats,
    extract,
    load_excel_workbook,
    plan_schema,
)
from excel_record_extraction.services.sheet_resolver import resolve_sheet_names

__all__ = [
    "ExcelExtractor",
    "ExtractionStats",
    "extract",
    "load_excel_workbook",
    "plan_schema",
    "resolve_sheet_names",
]
