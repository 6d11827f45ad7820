"""Produce every column value of the current record.

For each column the visitor resolves the source cell, reads the requested
value (handling formulas and error cells), coerces it to the column type
and writes it into the open row of the page builder. Failures are handled
per column with the column's own policy:

- ``on_cell_error``: the cell (or a formula result) is an error value
- ``on_evaluate_error``: a formula cannot be evaluated
- ``on_convert_error``: the value cannot be converted to the column type
"""

from __future__ import annotations

from typing import Any

from excel_record_extraction.excel_document import CellType, ExcelCell, ExcelWorkbook
from excel_record_extraction.models import ErrorPolicy, FormulaHandling, ValueType
from excel_record_extraction.output.page_builder import PageBuilder
from excel_record_extraction.services.bindings import ColumnBinding, SheetBinding
from excel_record_extraction.services.cell_attributes import read_attributes
from excel_record_extraction.services.cell_resolver import CellResolver
from excel_record_extraction.services.formula import FormulaEvaluator
from excel_record_extraction.services.records import ExcelRecord
from excel_record_extraction.services.value_coercer import ValueCoercer
from excel_record_extraction.utils.exceptions import (
    CellProcessingError,
    CellValueError,
    ConversionError,
    FormulaEvaluationError,
)
from excel_record_extraction.utils.logging import get_logger

logger = get_logger(__name__)


class ColumnVisitor:
    """Visit all columns of a sheet's records in schema order."""

    def __init__(
        self,
        workbook: ExcelWorkbook,
        sheet_binding: SheetBinding,
        page_builder: PageBuilder,
        *,
        resolver: CellResolver | None = None,
        evaluator: FormulaEvaluator | None = None,
        coercer: ValueCoercer | None = None,
    ) -> None:
        self._bindings = sheet_binding.columns
        self._page_builder = page_builder
        self._resolver = resolver or CellResolver(workbook)
        self._evaluator = evaluator or FormulaEvaluator(workbook)
        self._coercer = coercer or ValueCoercer()
        self._record: ExcelRecord | None = None
        self._skip_record = False

    @property
    def skip_record(self) -> bool:
        """Whether a column asked to drop the current record."""
        return self._skip_record

    def set_record(self, record: ExcelRecord) -> None:
        self._record = record

    def visit_columns(self) -> None:
        """Write every column of the current record into the open row."""
        self._skip_record = False
        for binding in self._bindings:
            self._page_builder.set(binding.index, self.visit(binding))

    def visit(self, binding: ColumnBinding) -> Any:
        """Produce one column value with the column's error policies applied."""
        try:
            return self._column_value(binding)
        except CellValueError as e:
            return self._on_error(binding, binding.on_cell_error, e, e.error_value)
        except FormulaEvaluationError as e:
            return self._on_error(binding, binding.on_evaluate_error, e, e.message)
        except ConversionError as e:
            return self._on_convert_error(binding, e)

    # ------------------------------------------------------------------ #
    # Value production
    # ------------------------------------------------------------------ #

    def _column_value(self, binding: ColumnBinding) -> Any:
        record = self._current_record()
        value_type = binding.value_type

        if value_type is ValueType.CONSTANT:
            return self._coercer.coerce(binding.constant, binding)
        if value_type is ValueType.SHEET_NAME:
            return self._coercer.coerce(record.sheet.name, binding)
        if value_type in (ValueType.ROW_NUMBER, ValueType.COLUMN_NUMBER):
            _, row, column = self._resolver.locate(record, binding)
            number = row if value_type is ValueType.ROW_NUMBER else column
            return self._coercer.coerce(number, binding)

        cell = self._resolver.resolve(record, binding)
        if cell is None:
            return None

        raw: Any
        if value_type is ValueType.CELL_VALUE:
            raw = self._cell_value(cell, binding)
        elif value_type is ValueType.CELL_FORMULA:
            raw = cell.formula if cell.cell_type is CellType.FORMULA else cell.value
        elif value_type is ValueType.CELL_TYPE:
            raw = cell.cell_type.value
        elif value_type is ValueType.CELL_CACHED_TYPE:
            raw = cell.cached_type.value
        elif value_type.is_attribute:
            raw = read_attributes(value_type, cell.source, binding.attribute_names, binding.name)
        else:
            raise ValueError(f"unhandled value type {value_type}")
        return self._coercer.coerce(raw, binding)

    def _cell_value(self, cell: ExcelCell, binding: ColumnBinding) -> Any:
        if cell.cell_type is CellType.ERROR:
            raise CellValueError(
                str(cell.value), column=binding.name, coordinate=cell.qualified_coordinate
            )
        if cell.cell_type is not CellType.FORMULA:
            return cell.value

        handling = binding.formula_handling
        if handling is FormulaHandling.FORMULA_TEXT:
            return cell.formula
        if handling is FormulaHandling.CACHED_VALUE:
            if cell.cached_type is CellType.ERROR:
                raise CellValueError(
                    str(cell.cached_value),
                    column=binding.name,
                    coordinate=cell.qualified_coordinate,
                )
            return cell.cached_value

        record = self._current_record()
        row_number = record.row_number if record.row_number is not None else cell.row
        try:
            return self._evaluator.evaluate(cell, binding.formula_replace, row_number)
        except CellProcessingError as e:
            e.column = e.column or binding.name
            raise

    def _current_record(self) -> ExcelRecord:
        if self._record is None:
            raise RuntimeError("set_record() must be called before visiting columns")
        return self._record

    # ------------------------------------------------------------------ #
    # Error policies
    # ------------------------------------------------------------------ #

    def _on_error(
        self,
        binding: ColumnBinding,
        policy: ErrorPolicy,
        error: CellProcessingError,
        error_text: str,
    ) -> Any:
        if policy is ErrorPolicy.ERROR_CODE:
            try:
                return self._coercer.coerce(error_text, binding)
            except ConversionError as e:
                return self._on_convert_error(binding, e)
        return self._apply_policy(binding, policy, error)

    def _on_convert_error(self, binding: ColumnBinding, error: ConversionError) -> Any:
        return self._apply_policy(binding, binding.on_convert_error, error)

    def _apply_policy(
        self, binding: ColumnBinding, policy: ErrorPolicy, error: CellProcessingError
    ) -> Any:
        if policy is ErrorPolicy.EXCEPTION:
            raise error
        logger.debug(
            "column error handled",
            column=binding.name,
            policy=policy.value,
            error=error.message,
        )
        if policy is ErrorPolicy.NULL:
            return None
        if policy is ErrorPolicy.SKIP_RECORD:
            self._skip_record = True
            return None
        if policy is ErrorPolicy.DEFAULT_VALUE:
            return self._coercer.coerce(binding.default_value, binding)
        raise error
