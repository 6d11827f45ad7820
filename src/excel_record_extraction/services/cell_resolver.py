"""Resolve the source cell of a column for the current record.

Addressing, first match wins:

1. ``cell_address`` such as ``B3``, ``$B$3`` or ``'My Sheet'!B3``.
2. Coordinates from the record layout, which combines the column's fixed
   ``cell_column``/``cell_row`` with the current record position.

A blank cell inside a merged range is replaced by the range's top-left
cell when ``search_merged_cell`` is enabled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from openpyxl.utils.cell import column_index_from_string, coordinate_from_string
from openpyxl.utils.exceptions import CellCoordinatesException

from excel_record_extraction.excel_document import CellType, ExcelCell, ExcelWorkbook
from excel_record_extraction.utils.exceptions import (
    ConfigError,
    ConversionError,
    ErrorCode,
)
from excel_record_extraction.utils.logging import get_logger

if TYPE_CHECKING:
    from excel_record_extraction.excel_document import ExcelSheet
    from excel_record_extraction.services.bindings import ColumnBinding
    from excel_record_extraction.services.records import ExcelRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class AxisRef:
    """A row or column reference, absolute (1-origin) or relative."""

    index: int
    relative: bool = False

    def apply(self, base: int | None) -> int | None:
        """Resolve against ``base``; relative refs need a base."""
        if not self.relative:
            return self.index
        if base is None:
            return None
        return base + self.index


@dataclass(frozen=True)
class CellAddress:
    """A parsed cell address, optionally qualified with a sheet name."""

    row: int
    column: int
    sheet_name: str | None = None


def parse_axis_reference(text: str, *, allow_letters: bool, option: str) -> AxisRef:
    """Parse a column or row reference.

    Accepts a 1-origin number, column letters when ``allow_letters``, or a
    relative form: ``=`` (same), ``+``/``+N`` (next/N after), ``-``/``-N``.

    Raises:
        ConfigError: If the reference cannot be parsed.
    """
    s = text.strip()
    if s == "=":
        return AxisRef(0, relative=True)
    if s[:1] in ("+", "-"):
        amount = s[1:] or "1"
        if not amount.isdigit():
            raise _bad_reference(text, option)
        sign = 1 if s[0] == "+" else -1
        return AxisRef(sign * int(amount), relative=True)
    if s.isdigit():
        index = int(s)
        if index < 1:
            raise _bad_reference(text, option)
        return AxisRef(index)
    if allow_letters and s.isalpha() and s.isascii():
        try:
            return AxisRef(column_index_from_string(s.upper()))
        except ValueError as e:
            raise _bad_reference(text, option) from e
    raise _bad_reference(text, option)


def parse_cell_address(text: str) -> CellAddress:
    """Parse ``A1``, ``$A$1``, ``Sheet1!A1`` or ``'My Sheet'!A1``.

    Raises:
        ConfigError: If the address cannot be parsed.
    """
    s = text.strip()
    sheet_name: str | None = None
    if "!" in s:
        sheet_part, s = s.rsplit("!", 1)
        if len(sheet_part) >= 2 and sheet_part[0] == sheet_part[-1] == "'":
            sheet_part = sheet_part[1:-1].replace("''", "'")
        if not sheet_part:
            raise _bad_reference(text, "cell_address")
        sheet_name = sheet_part
    try:
        letters, row = coordinate_from_string(s)
        column = column_index_from_string(letters)
    except (CellCoordinatesException, ValueError) as e:
        raise _bad_reference(text, "cell_address") from e
    if row < 1:
        raise _bad_reference(text, "cell_address")
    return CellAddress(row=row, column=column, sheet_name=sheet_name)


def _bad_reference(text: str, option: str) -> ConfigError:
    return ConfigError(
        f"illegal {option}: {text!r}",
        error_code=ErrorCode.INVALID_CELL_REFERENCE,
        option=option,
    )


class CellResolver:
    """Find the cell a column reads for the current record."""

    def __init__(self, workbook: ExcelWorkbook) -> None:
        self._workbook = workbook

    def locate(
        self, record: ExcelRecord, binding: ColumnBinding
    ) -> tuple[ExcelSheet, int | None, int | None]:
        """Return the sheet and (possibly partial) coordinates for a column.

        Raises:
            ConversionError: If the address names a sheet that does not exist.
        """
        address = binding.cell_address
        if address is None:
            row, column = record.coordinates(binding)
            return record.sheet, row, column

        sheet = record.sheet
        if address.sheet_name is not None and address.sheet_name != sheet.name:
            other = self._workbook.get_sheet(address.sheet_name)
            if other is None:
                raise ConversionError(
                    f"not found sheet={address.sheet_name}",
                    column=binding.name,
                    coordinate=f"{address.sheet_name}!?",
                )
            sheet = other
        return sheet, address.row, address.column

    def resolve(self, record: ExcelRecord, binding: ColumnBinding) -> ExcelCell | None:
        """Return the source cell, or None when no address can be determined."""
        sheet, row, column = self.locate(record, binding)
        if row is None or column is None or row < 1 or column < 1:
            return None

        cell = sheet.cell(row, column)
        if cell.cell_type is CellType.BLANK and binding.search_merged_cell:
            anchor = sheet.merged_anchor(row, column)
            if anchor is not None and anchor != (row, column):
                logger.debug(
                    "merged cell fallback",
                    cell=cell.qualified_coordinate,
                    anchor_row=anchor[0],
                    anchor_column=anchor[1],
                )
                return sheet.cell(*anchor)
        return cell
