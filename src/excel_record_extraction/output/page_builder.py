"""Column-major buffer of output records.

Values of the record being built are written with ``set``; the record is
then committed with ``add_record`` or dropped with ``discard_record``.
``flush`` turns the committed records into one DataFrame page for the
output. A flush never splits a record.
"""

from __future__ import annotations

from typing import Any

import pandas as pd

from excel_record_extraction.models import ColumnType, Schema
from excel_record_extraction.output.page_output import PageOutput
from excel_record_extraction.utils.exceptions import ErrorCode, ExtractorError

PANDAS_DTYPES: dict[ColumnType, str] = {
    ColumnType.STRING: "object",
    ColumnType.BOOLEAN: "boolean",
    ColumnType.LONG: "Int64",
    ColumnType.DOUBLE: "Float64",
    ColumnType.TIMESTAMP: "datetime64[ns, UTC]",
    ColumnType.JSON: "object",
}

_UNSET = object()


class PageBuilder:
    """Buffer records for one schema and hand them to a PageOutput."""

    def __init__(self, schema: Schema, output: PageOutput) -> None:
        self._schema = schema
        self._output = output
        self._buffer: list[list[Any]] = [[] for _ in schema.columns]
        self._row: list[Any] = [_UNSET] * len(schema)
        self._record_count = 0
        self._closed = False

    def __enter__(self) -> PageBuilder:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def buffered_records(self) -> int:
        return self._record_count

    def set(self, index: int, value: Any) -> None:
        """Write one column of the open record."""
        self._row[index] = value

    def add_record(self) -> None:
        """Commit the open record; every column must have been written.

        Raises:
            ExtractorError: If a column of the open record was not written.
        """
        missing = [
            self._schema.columns[i].name for i, v in enumerate(self._row) if v is _UNSET
        ]
        if missing:
            raise ExtractorError(
                f"record committed with unwritten columns: {missing}",
                error_code=ErrorCode.INTERNAL_ERROR,
            )
        for column_values, value in zip(self._buffer, self._row, strict=True):
            column_values.append(value)
        self._record_count += 1
        self._reset_row()

    def discard_record(self) -> None:
        """Drop the open record."""
        self._reset_row()

    def flush(self) -> int:
        """Send the committed records to the output as one page.

        Returns:
            Number of records flushed.
        """
        return self._send_page()

    def finish(self) -> None:
        """Send any remaining records and finish the output."""
        self._send_page()
        self._output.finish()

    def _send_page(self) -> int:
        count = self._record_count
        if count == 0:
            return 0
        page = pd.DataFrame(
            {
                column.name: pd.Series(values, dtype=PANDAS_DTYPES[column.type])
                for column, values in zip(self._schema.columns, self._buffer, strict=True)
            }
        )
        self._output.add(page)
        for column_values in self._buffer:
            column_values.clear()
        self._record_count = 0
        return count

    def close(self) -> None:
        """Release buffered records and close the output; idempotent."""
        if self._closed:
            return
        self._closed = True
        for column_values in self._buffer:
            column_values.clear()
        self._record_count = 0
        self._reset_row()
        self._output.close()

    def _reset_row(self) -> None:
        self._row = [_UNSET] * len(self._schema)
