"""Record layouts: how a sheet is cut into output records.

Each layout is a small state machine (ready -> at-record -> exhausted)
driven by the extractor::

    record.initialize(sheet, skip_header_lines)
    while record.exists():
        ...
        record.move_next()

and maps a column binding to the sheet coordinates it reads for the
current record.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from excel_record_extraction.models import RecordType
from excel_record_extraction.utils.exceptions import ConfigError, ErrorCode
from excel_record_extraction.utils.logging import get_logger

if TYPE_CHECKING:
    from excel_record_extraction.excel_document import ExcelSheet
    from excel_record_extraction.services.bindings import ColumnBinding

logger = get_logger(__name__)


class ExcelRecord(ABC):
    """Base class of record layouts."""

    def __init__(self) -> None:
        self._sheet: ExcelSheet | None = None

    @property
    def sheet(self) -> ExcelSheet:
        if self._sheet is None:
            raise RuntimeError("record is not initialized")
        return self._sheet

    def initialize(self, sheet: ExcelSheet, skip_header_lines: int = 0) -> None:
        """Position on the first record after ``skip_header_lines``."""
        self._sheet = sheet
        self._initialize(sheet, skip_header_lines)

    @abstractmethod
    def _initialize(self, sheet: ExcelSheet, skip_header_lines: int) -> None: ...

    @abstractmethod
    def exists(self) -> bool:
        """Whether the layout is positioned on a record."""

    @abstractmethod
    def move_next(self) -> None:
        """Advance to the next record."""

    @property
    def row_number(self) -> int | None:
        """1-origin row of the current record, if the record is a row."""
        return None

    @property
    def column_number(self) -> int | None:
        """1-origin column of the current record, if the record is a column."""
        return None

    @abstractmethod
    def coordinates(self, binding: ColumnBinding) -> tuple[int | None, int | None]:
        """Row and column a binding reads for the current record."""

    def log_start(self) -> None:
        logger.debug(
            "record start",
            sheet=self.sheet.name,
            row=self.row_number,
            column=self.column_number,
        )

    def log_end(self) -> None:
        logger.debug(
            "record end",
            sheet=self.sheet.name,
            row=self.row_number,
            column=self.column_number,
        )


class RowRecord(ExcelRecord):
    """One record per physical row; columns pick cells across the row."""

    def __init__(self) -> None:
        super().__init__()
        self._row = 0
        self._last_row = 0

    def _initialize(self, sheet: ExcelSheet, skip_header_lines: int) -> None:
        self._row = skip_header_lines + 1
        self._last_row = sheet.max_row

    def exists(self) -> bool:
        return self._row <= self._last_row

    def move_next(self) -> None:
        self._row += 1

    @property
    def row_number(self) -> int | None:
        return self._row if self.exists() else None

    def coordinates(self, binding: ColumnBinding) -> tuple[int | None, int | None]:
        row = binding.row_ref.apply(self._row) if binding.row_ref else self._row
        column = binding.column_ref.apply(None) if binding.column_ref else None
        return row, column


class ColumnRecord(ExcelRecord):
    """One record per physical column; columns pick cells down the column."""

    def __init__(self) -> None:
        super().__init__()
        self._column = 0
        self._last_column = 0

    def _initialize(self, sheet: ExcelSheet, skip_header_lines: int) -> None:
        self._column = skip_header_lines + 1
        self._last_column = sheet.max_column

    def exists(self) -> bool:
        return self._column <= self._last_column

    def move_next(self) -> None:
        self._column += 1

    @property
    def column_number(self) -> int | None:
        return self._column if self.exists() else None

    def coordinates(self, binding: ColumnBinding) -> tuple[int | None, int | None]:
        row = binding.row_ref.apply(None) if binding.row_ref else None
        column = (
            binding.column_ref.apply(self._column)
            if binding.column_ref
            else self._column
        )
        return row, column


class SheetRecord(ExcelRecord):
    """Exactly one record per sheet; every column needs a fixed address."""

    def __init__(self) -> None:
        super().__init__()
        self._done = True

    def _initialize(self, sheet: ExcelSheet, skip_header_lines: int) -> None:
        self._done = False

    def exists(self) -> bool:
        return not self._done

    def move_next(self) -> None:
        self._done = True

    def coordinates(self, binding: ColumnBinding) -> tuple[int | None, int | None]:
        row = binding.row_ref.apply(None) if binding.row_ref else None
        column = binding.column_ref.apply(None) if binding.column_ref else None
        return row, column


RECORD_LAYOUTS: dict[RecordType, type[ExcelRecord]] = {
    RecordType.ROW: RowRecord,
    RecordType.COLUMN: ColumnRecord,
    RecordType.SHEET: SheetRecord,
}


def new_record(record_type: RecordType | str) -> ExcelRecord:
    """Create a fresh record layout for ``record_type``.

    Raises:
        ConfigError: If the record type is unknown.
    """
    try:
        layout = RECORD_LAYOUTS[RecordType(record_type)]
    except (KeyError, ValueError) as e:
        raise ConfigError(
            f"illegal record_type: {record_type}",
            error_code=ErrorCode.UNSUPPORTED_RECORD_TYPE,
            option="record_type",
        ) from e
    return layout()
