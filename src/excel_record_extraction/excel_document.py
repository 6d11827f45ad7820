"""Dataclasses wrapping a loaded Excel workbook.

A workbook is loaded twice by openpyxl: once keeping formulas and once with
the values cached by the last application that saved it. ``ExcelSheet``
pairs the two views so a cell can be read with its formula text and its
cached result at the same time.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from openpyxl.cell.cell import ERROR_CODES, Cell
from openpyxl.utils import get_column_letter
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet


class CellType(str, Enum):
    """Type of a cell value as seen by the extractor."""

    NUMERIC = "numeric"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    FORMULA = "formula"
    ERROR = "error"
    BLANK = "blank"


def map_cell_type(value: Any, data_type: str | None = None) -> CellType:
    """Map an openpyxl value (and its data type code) to a CellType."""
    if data_type == "f":
        return CellType.FORMULA
    if data_type == "e" or (data_type is None and value in ERROR_CODES):
        return CellType.ERROR
    if value is None:
        return CellType.BLANK
    if isinstance(value, bool):
        return CellType.BOOLEAN
    if isinstance(value, (dt.datetime, dt.date, dt.time, dt.timedelta)):
        return CellType.DATE
    if isinstance(value, (int, float)):
        return CellType.NUMERIC
    if isinstance(value, str) and value == "":
        return CellType.BLANK
    return CellType.STRING


@dataclass
class ExcelCell:
    """A single cell with type metadata.

    ``value`` is the formula view (formula text for formula cells) and
    ``cached_value`` the value stored by the application that saved the
    file. ``source`` is the openpyxl cell, used for style metadata.
    """

    sheet_name: str
    row: int
    column: int
    value: Any
    cell_type: CellType
    cached_value: Any = None
    cached_cell_type: CellType | None = None
    source: Any = field(default=None, repr=False)

    @property
    def coordinate(self) -> str:
        return f"{get_column_letter(self.column)}{self.row}"

    @property
    def qualified_coordinate(self) -> str:
        return f"{self.sheet_name}!{self.coordinate}"

    @property
    def formula(self) -> str | None:
        if self.cell_type is not CellType.FORMULA:
            return None
        text = getattr(self.value, "text", self.value)
        return str(text) if text is not None else None

    @property
    def cached_type(self) -> CellType:
        """Type of the cached result; the cell's own type for non-formulas."""
        if self.cell_type is not CellType.FORMULA:
            return self.cell_type
        if self.cached_cell_type is not None:
            return self.cached_cell_type
        return map_cell_type(self.cached_value)


class ExcelSheet:
    """A worksheet seen through its formula and cached-value views."""

    def __init__(self, worksheet: Worksheet, cached_worksheet: Worksheet) -> None:
        self._worksheet = worksheet
        self._cached = cached_worksheet
        self._merged_anchors: dict[tuple[int, int], tuple[int, int]] | None = None

    @property
    def name(self) -> str:
        return self._worksheet.title

    @property
    def max_row(self) -> int:
        return 0 if self._is_empty() else self._worksheet.max_row

    @property
    def max_column(self) -> int:
        return 0 if self._is_empty() else self._worksheet.max_column

    def _is_empty(self) -> bool:
        # openpyxl reports 1x1 dimensions for a sheet without cells
        ws = self._worksheet
        if ws.max_row != 1 or ws.max_column != 1:
            return False
        first = _existing_cell(ws, 1, 1)
        return first is None or first.value is None

    @property
    def worksheet(self) -> Worksheet:
        return self._worksheet

    def cell(self, row: int, column: int) -> ExcelCell:
        """Return the cell at 1-origin ``row``/``column``."""
        source = _existing_cell(self._worksheet, row, column)
        if source is None:
            source = Cell(self._worksheet, row=row, column=column)
        value = source.value
        cell_type = map_cell_type(value, source.data_type)
        cached_value = value
        cached_cell_type = None
        if cell_type is CellType.FORMULA:
            cached = _existing_cell(self._cached, row, column)
            if cached is None:
                cached_value = None
                cached_cell_type = CellType.BLANK
            else:
                cached_value = cached.value
                cached_cell_type = map_cell_type(cached.value, cached.data_type)
        return ExcelCell(
            sheet_name=self.name,
            row=row,
            column=column,
            value=value,
            cell_type=cell_type,
            cached_value=cached_value,
            cached_cell_type=cached_cell_type,
            source=source,
        )

    def merged_anchor(self, row: int, column: int) -> tuple[int, int] | None:
        """Return the top-left cell of the merged range containing a cell."""
        if self._merged_anchors is None:
            anchors: dict[tuple[int, int], tuple[int, int]] = {}
            for rng in self._worksheet.merged_cells.ranges:
                anchor = (rng.min_row, rng.min_col)
                for r in range(rng.min_row, rng.max_row + 1):
                    for c in range(rng.min_col, rng.max_col + 1):
                        anchors[(r, c)] = anchor
            self._merged_anchors = anchors
        return self._merged_anchors.get((row, column))


def _existing_cell(ws: Worksheet, row: int, column: int) -> Any:
    """Look up a cell without creating it.

    ``Worksheet.cell`` adds missing cells to the sheet, which grows its
    dimensions.
    """
    return ws._cells.get((row, column))


@dataclass
class ExcelWorkbook:
    """A loaded workbook with its formula and cached-value views."""

    workbook: Workbook
    cached_workbook: Workbook
    source: str = "<stream>"
    _sheets: dict[str, ExcelSheet] = field(default_factory=dict, repr=False)

    @property
    def sheet_names(self) -> list[str]:
        return list(self.workbook.sheetnames)

    def get_sheet(self, name: str) -> ExcelSheet | None:
        """Look up a sheet by exact (case-sensitive) name."""
        if name not in self.workbook.sheetnames:
            return None
        sheet = self._sheets.get(name)
        if sheet is None:
            sheet = ExcelSheet(self.workbook[name], self.cached_workbook[name])
            self._sheets[name] = sheet
        return sheet
