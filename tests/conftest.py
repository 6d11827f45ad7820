from __future__ import annotations

import io
from collections.abc import Callable
from typing import Any

import pytest
from openpyxl import Workbook

from excel_record_extraction.excel_document import ExcelWorkbook
from excel_record_extraction.models import ParserConfig
from excel_record_extraction.services.excel_extractor import load_excel_workbook
from excel_record_extraction.utils.logging import clear_context


def workbook_to_bytes(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def _reset_log_context() -> Any:
    clear_context()
    yield
    clear_context()


@pytest.fixture
def to_bytes() -> Callable[[Workbook], bytes]:
    """Serialize an openpyxl workbook to .xlsx bytes."""
    return workbook_to_bytes


@pytest.fixture
def load() -> Callable[[Workbook], ExcelWorkbook]:
    """Round-trip a workbook through .xlsx bytes and load it for extraction."""

    def _load(wb: Workbook) -> ExcelWorkbook:
        return load_excel_workbook(workbook_to_bytes(wb), source="test.xlsx")

    return _load


@pytest.fixture
def make_config() -> Callable[..., ParserConfig]:
    """Build a ParserConfig from keyword options."""

    def _make(**options: Any) -> ParserConfig:
        return ParserConfig.model_validate(options)

    return _make


@pytest.fixture
def monthly_workbook() -> Workbook:
    """Sheets named by month plus a summary, each with a header and 3 rows."""
    wb = Workbook()
    wb.remove(wb.active)
    for title in ("2023-Jan", "2023-Feb", "2024-Jan", "Summary"):
        ws = wb.create_sheet(title)
        ws.append(["id", "item", "amount"])
        for i in range(1, 4):
            ws.append([i, f"{title}-item{i}", i * 1.5])
    return wb


@pytest.fixture
def simple_workbook() -> Workbook:
    """One sheet with a header row and 5 data rows."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    ws.append(["id", "name"])
    for i in range(1, 6):
        ws.append([i, f"name{i}"])
    return wb
