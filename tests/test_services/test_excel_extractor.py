"""Tests for the ExcelExtractor driver."""

from __future__ import annotations

import io
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pandas as pd
import pytest
from openpyxl import Workbook

from excel_record_extraction.models import ColumnType
from excel_record_extraction.output.page_builder import PageBuilder
from excel_record_extraction.output.page_output import DataFrameOutput
from excel_record_extraction.services.excel_extractor import (
    ExcelExtractor,
    extract,
    load_excel_workbook,
    plan_schema,
)
from excel_record_extraction.utils.exceptions import (
    ConfigError,
    ErrorCode,
    SheetNotFoundError,
    WorkbookDecodeError,
)


def _two_sheet_workbook() -> Workbook:
    wb = Workbook()
    ws1 = wb.active
    ws1.title = "Sheet1"
    ws2 = wb.create_sheet("Sheet2")
    for ws in (ws1, ws2):
        for i in range(1, 4):
            ws.append([f"{ws.title}-{i}", i])
    return wb


class TestPlanSchema:
    """Tests for plan_schema."""

    def test_columns_in_order(self, make_config) -> None:
        config = make_config(
            sheets=["S"],
            columns=[
                {"name": "id", "type": "long"},
                {"name": "price", "type": "decimal"},
                {"name": "at", "type": "timestamp"},
            ],
        )
        schema = plan_schema(config)
        assert schema.column_names == ["id", "price", "at"]
        assert [c.index for c in schema] == [0, 1, 2]
        assert [c.type for c in schema] == [
            ColumnType.LONG,
            ColumnType.DOUBLE,
            ColumnType.TIMESTAMP,
        ]


class TestLoadExcelWorkbook:
    """Tests for load_excel_workbook."""

    def test_bytes(self, simple_workbook, to_bytes) -> None:
        workbook = load_excel_workbook(to_bytes(simple_workbook))
        assert workbook.sheet_names == ["Sheet1"]
        assert workbook.source == "<stream>"

    def test_stream(self, simple_workbook, to_bytes) -> None:
        workbook = load_excel_workbook(io.BytesIO(to_bytes(simple_workbook)), source="upload")
        assert workbook.source == "upload"

    def test_path(self, simple_workbook) -> None:
        path = Path(tempfile.mkstemp(suffix=".xlsx")[1])
        simple_workbook.save(path)
        try:
            workbook = load_excel_workbook(path)
            assert workbook.source == str(path)
            assert workbook.get_sheet("Sheet1").max_row == 6
        finally:
            path.unlink()

    def test_garbage_bytes(self) -> None:
        with pytest.raises(WorkbookDecodeError) as exc_info:
            load_excel_workbook(b"this is not a workbook", source="junk.xlsx")
        assert exc_info.value.error_code == ErrorCode.WORKBOOK_DECODE_FAILED
        assert exc_info.value.details["source"] == "junk.xlsx"

    def test_missing_path(self, tmp_path) -> None:
        with pytest.raises(WorkbookDecodeError) as exc_info:
            load_excel_workbook(tmp_path / "missing.xlsx")
        assert exc_info.value.error_code == ErrorCode.WORKBOOK_READ_ERROR


class TestExtract:
    """End-to-end extraction tests."""

    def test_two_sheets_single_finish(self, make_config, to_bytes) -> None:
        """2 sheets x 3 rows with flush_count=10 give 6 records and one finish."""
        config = make_config(
            sheets=["Sheet1", "Sheet2"],
            flush_count=10,
            columns=[
                {"name": "label", "type": "string"},
                {"name": "n", "type": "long"},
                {"name": "sheet", "type": "string", "value": "sheet_name"},
            ],
        )
        output = DataFrameOutput()
        stats = extract(config, plan_schema(config), [to_bytes(_two_sheet_workbook())], output)

        records = output.records()
        assert len(records) == 6
        assert [r["label"] for r in records] == [
            "Sheet1-1",
            "Sheet1-2",
            "Sheet1-3",
            "Sheet2-1",
            "Sheet2-2",
            "Sheet2-3",
        ]
        assert records[3]["sheet"] == "Sheet2"
        assert output.finish_count == 1
        assert stats.files == 1
        assert stats.sheets == 2
        assert stats.records == 6

    def test_flush_count_splits_pages(self, simple_workbook, make_config, to_bytes) -> None:
        """5 records with flush_count=2 give pages of 2, 2 and 1."""
        config = make_config(
            sheets=["Sheet1"],
            skip_header_lines=1,
            flush_count=2,
            columns=[{"name": "id", "type": "long"}, {"name": "name", "type": "string"}],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(simple_workbook)], output)

        assert [len(page) for page in output.pages] == [2, 2, 1]
        assert output.to_frame()["id"].tolist() == [1, 2, 3, 4, 5]

    def test_flush_calls_empty_the_buffer(
        self, simple_workbook, make_config, to_bytes
    ) -> None:
        """5 records with flush_count=2 flush three times, the last at sheet end."""
        config = make_config(
            sheets=["Sheet1"],
            skip_header_lines=1,
            flush_count=2,
            columns=[{"name": "id", "type": "long"}],
        )
        calls: list[tuple[int, int]] = []
        original_flush = PageBuilder.flush

        def recording_flush(self: PageBuilder) -> int:
            flushed = original_flush(self)
            calls.append((flushed, self.buffered_records))
            return flushed

        with patch.object(PageBuilder, "flush", recording_flush):
            stats = extract(
                config, plan_schema(config), [to_bytes(simple_workbook)], DataFrameOutput()
            )

        assert calls == [(2, 0), (2, 0), (1, 0)]
        assert stats.flushes == 3

    def test_long_out_of_range_uses_convert_policy(self, make_config, to_bytes) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        ws.append([1e20])
        ws.append([7])
        config = make_config(
            sheets=["Sheet1"],
            columns=[{"name": "n", "type": "long", "on_convert_error": "null"}],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)

        assert output.records() == [{"n": None}, {"n": 7}]

    def test_address_into_later_sheet_adds_no_rows(self, make_config, to_bytes) -> None:
        """Reading a far cell of another sheet leaves that sheet's size alone."""
        wb = Workbook()
        ws_a = wb.active
        ws_a.title = "A"
        ws_a.append(["a1"])
        ws_b = wb.create_sheet("B")
        ws_b.append(["b1"])
        ws_b.append(["b2"])
        config = make_config(
            sheets=["A", "B"],
            columns=[
                {"name": "label", "type": "string"},
                {"name": "far", "type": "string", "cell_address": "B!C50"},
            ],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)

        records = output.records()
        assert len(records) == 3
        assert [r["label"] for r in records] == ["a1", "b1", "b2"]
        assert all(r["far"] is None for r in records)

    def test_page_dtypes(self, make_config, to_bytes) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        ws.append([1, 2.5, True, datetime(2024, 1, 15, 9, 30), "x"])
        config = make_config(
            sheets=["Sheet1"],
            columns=[
                {"name": "l", "type": "long"},
                {"name": "d", "type": "double"},
                {"name": "b", "type": "boolean"},
                {"name": "t", "type": "timestamp"},
                {"name": "s", "type": "string"},
            ],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)

        page = output.pages[0]
        assert str(page["l"].dtype) == "Int64"
        assert str(page["d"].dtype) == "Float64"
        assert str(page["b"].dtype) == "boolean"
        assert str(page["t"].dtype) == "datetime64[ns, UTC]"
        assert page["t"].iloc[0] == pd.Timestamp("2024-01-15 09:30", tz="UTC")

    def test_multiple_files_finish_once(self, simple_workbook, make_config, to_bytes) -> None:
        config = make_config(
            sheets=["Sheet1"],
            skip_header_lines=1,
            columns=[{"name": "id", "type": "long"}],
        )
        data = to_bytes(simple_workbook)
        output = DataFrameOutput()
        stats = extract(config, plan_schema(config), [data, data], output)

        assert len(output.records()) == 10
        assert output.finish_count == 1
        assert stats.files == 2

    def test_glob_selectors(self, monthly_workbook, make_config, to_bytes) -> None:
        config = make_config(
            sheets=["2023-*"],
            skip_header_lines=1,
            columns=[
                {"name": "sheet", "type": "string", "value": "sheet_name"},
                {"name": "id", "type": "long"},
            ],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(monthly_workbook)], output)

        sheets = [r["sheet"] for r in output.records()]
        assert sheets == ["2023-Jan"] * 3 + ["2023-Feb"] * 3

    def test_missing_sheet_raises(self, simple_workbook, make_config, to_bytes) -> None:
        config = make_config(sheets=["Nope"], columns=[{"name": "id", "type": "long"}])
        output = DataFrameOutput()
        with pytest.raises(SheetNotFoundError) as exc_info:
            extract(config, plan_schema(config), [to_bytes(simple_workbook)], output)
        assert exc_info.value.sheet_name == "Nope"
        assert output.finish_count == 0

    def test_missing_sheet_ignored(self, simple_workbook, make_config, to_bytes) -> None:
        config = make_config(
            sheets=["Nope", "Sheet1"],
            ignore_sheet_not_found=True,
            skip_header_lines=1,
            columns=[{"name": "id", "type": "long"}],
        )
        output = DataFrameOutput()
        stats = extract(config, plan_schema(config), [to_bytes(simple_workbook)], output)
        assert len(output.records()) == 5
        assert stats.sheets == 1

    def test_no_selectors(self, simple_workbook, make_config, to_bytes) -> None:
        config = make_config(columns=[{"name": "id", "type": "long"}])
        output = DataFrameOutput()
        with pytest.raises(ConfigError, match="Attribute sheets is required"):
            extract(config, plan_schema(config), [to_bytes(simple_workbook)], output)
        assert output.pages == []

    def test_decode_error(self, make_config) -> None:
        config = make_config(sheets=["Sheet1"], columns=[{"name": "id", "type": "long"}])
        with pytest.raises(WorkbookDecodeError):
            extract(config, plan_schema(config), [b"\x00\x01garbage"], DataFrameOutput())

    def test_skipped_records_counted(self, make_config, to_bytes) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        for value in (1, "#N/A", 3, "#REF!"):
            ws.append([value])
        config = make_config(
            sheets=["Sheet1"],
            columns=[{"name": "v", "type": "long", "on_cell_error": "skip_record"}],
        )
        output = DataFrameOutput()
        stats = extract(config, plan_schema(config), [to_bytes(wb)], output)
        assert [r["v"] for r in output.records()] == [1, 3]
        assert stats.records == 2
        assert stats.skipped_records == 2


class TestLayouts:
    """Extraction with each record layout."""

    def test_merged_cells(self, make_config, to_bytes) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        ws["A1"] = "X"
        ws.merge_cells("A1:A3")
        for row in (1, 2, 3):
            ws.cell(row=row, column=2, value=row)
        data = to_bytes(wb)

        def group_values(search: bool) -> list:
            config = make_config(
                sheets=["Sheet1"],
                search_merged_cell=search,
                columns=[{"name": "group", "type": "string"}, {"name": "n", "type": "long"}],
            )
            output = DataFrameOutput()
            extract(config, plan_schema(config), [data], output)
            return [r["group"] for r in output.records()]

        assert group_values(True) == ["X", "X", "X"]
        assert group_values(False) == ["X", None, None]

    def test_column_layout(self, make_config, to_bytes) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        ws.append(["name", "alice", "bob"])
        ws.append(["age", 31, 42])
        config = make_config(
            sheets=["Sheet1"],
            record_type="column",
            skip_header_lines=1,
            columns=[
                {"name": "name", "type": "string"},
                {"name": "age", "type": "long"},
                {"name": "col", "type": "long", "value": "column_number"},
            ],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)
        assert output.records() == [
            {"name": "alice", "age": 31, "col": 2},
            {"name": "bob", "age": 42, "col": 3},
        ]

    def test_sheet_layout(self, make_config, to_bytes) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Invoice"
        ws["B2"] = "INV-001"
        ws["D5"] = 1250.5
        config = make_config(
            sheets=["Invoice"],
            record_type="sheet",
            columns=[
                {"name": "number", "type": "string", "cell_address": "B2"},
                {"name": "total", "type": "double", "cell_column": "D", "cell_row": 5},
                {"name": "unset", "type": "string", "cell_column": "E"},
            ],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)
        assert output.records() == [{"number": "INV-001", "total": 1250.5, "unset": None}]

    def test_sheet_override(self, make_config, to_bytes) -> None:
        """A per-sheet column override moves the column on that sheet only."""
        wb = _two_sheet_workbook()
        wb["Sheet2"].insert_cols(1)
        config = make_config(
            sheets=["Sheet*"],
            columns=[{"name": "label", "type": "string", "cell_column": "A"}],
            sheet_options={"Sheet2": {"columns": {"label": {"cell_column": "B"}}}},
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)
        labels = [r["label"] for r in output.records()]
        assert labels == ["Sheet1-1", "Sheet1-2", "Sheet1-3", "Sheet2-1", "Sheet2-2", "Sheet2-3"]

    def test_formula_replace_with_row(self, make_config, to_bytes) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        lookup = wb.create_sheet("Lookup")
        for row in (1, 2, 3):
            ws.cell(row=row, column=1, value="=Lookup!A1")
            lookup.cell(row=row, column=1, value=f"value-{row}")
        config = make_config(
            sheets=["Sheet1"],
            formula_replace=[{"regex": "A1", "to": "A${row}"}],
            columns=[{"name": "v", "type": "string"}],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)
        assert [r["v"] for r in output.records()] == ["value-1", "value-2", "value-3"]

    def test_formula_replace_running_total(self, make_config, to_bytes) -> None:
        """Every row rewrites =SUM(A1:A1) to sum up to its own row."""
        wb = Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        for row, amount in enumerate((5, 10, 20), start=1):
            ws.cell(row=row, column=1, value=amount)
            ws.cell(row=row, column=2, value="=SUM(A1:A1)")
        config = make_config(
            sheets=["Sheet1"],
            formula_replace=[{"regex": "A1\\)", "to": "A${row})"}],
            columns=[
                {"name": "amount", "type": "long"},
                {"name": "total", "type": "long"},
            ],
        )
        output = DataFrameOutput()
        extract(config, plan_schema(config), [to_bytes(wb)], output)
        assert [r["total"] for r in output.records()] == [5, 15, 35]


class TestExcelExtractor:
    """Tests for the ExcelExtractor class."""

    def test_schema_defaults_to_plan(self, make_config) -> None:
        config = make_config(sheets=["S"], columns=[{"name": "id", "type": "long"}])
        assert ExcelExtractor(config).schema == plan_schema(config)

    def test_reusable_across_runs(self, simple_workbook, make_config, to_bytes) -> None:
        config = make_config(
            sheets=["Sheet1"], skip_header_lines=1, columns=[{"name": "id", "type": "long"}]
        )
        extractor = ExcelExtractor(config)
        first, second = DataFrameOutput(), DataFrameOutput()
        extractor.extract([to_bytes(simple_workbook)], first)
        extractor.extract([to_bytes(simple_workbook)], second)
        assert first.records() == second.records()
