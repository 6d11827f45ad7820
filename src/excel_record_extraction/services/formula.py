"""Formula evaluation for formula cells.

openpyxl keeps formulas as text and has no calculation engine. Evaluation
proceeds in this order:

- literals (numbers, quoted strings, TRUE/FALSE) evaluate to themselves,
- a reference to another cell (``=B3``, ``=Sheet2!$A$1``) reads that cell,
  evaluating it in turn when it is itself a formula,
- any other formula is compiled with the ``formulas`` engine and computed
  from the live values of the cells and ranges it references,
- a formula the engine cannot compute yields the cached value stored in
  the file, provided ``formula_replace`` did not change the formula text.

Anything else raises ``FormulaEvaluationError``.
"""

from __future__ import annotations

import datetime as dt
import re
from collections.abc import Sequence
from functools import lru_cache
from typing import Any

import formulas
import numpy as np
import schedula as sh
from formulas.errors import FormulaError
from openpyxl.cell.cell import ERROR_CODES
from openpyxl.utils.cell import range_boundaries
from openpyxl.utils.datetime import to_excel

from excel_record_extraction.excel_document import (
    CellType,
    ExcelCell,
    ExcelSheet,
    ExcelWorkbook,
)
from excel_record_extraction.services.bindings import FormulaReplaceRule
from excel_record_extraction.services.cell_resolver import parse_cell_address
from excel_record_extraction.utils.exceptions import (
    CellValueError,
    ConfigError,
    FormulaEvaluationError,
)
from excel_record_extraction.utils.logging import get_logger

logger = get_logger(__name__)

MAX_REFERENCE_DEPTH = 32

_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_STRING_RE = re.compile(r'"((?:[^"]|"")*)"')

# Engine input names: optional sheet (quoted, maybe with a [book] prefix),
# then a cell or a rectangular range.
_INPUT_RE = re.compile(
    r"^(?:(?P<sheet>.+)!)?"
    r"(?P<range>\$?[A-Za-z]{1,3}\$?\d+(?::\$?[A-Za-z]{1,3}\$?\d+)?)$"
)
_BOOK_PREFIX_RE = re.compile(r"^\[[^\]]*\]")

# Result of a function the engine does not implement.
_UNSUPPORTED_RESULT = "#NAME?"


def apply_formula_replace(
    formula: str, rules: Sequence[FormulaReplaceRule], row_number: int | None
) -> str:
    """Apply rewrite rules in order; ``${row}`` becomes ``row_number``."""
    for rule in rules:
        formula = rule.apply(formula, row_number)
    return formula


def _strip_formula(formula: str) -> str:
    text = formula.strip()
    return text[1:].strip() if text.startswith("=") else text


@lru_cache(maxsize=256)
def compile_formula(expression: str) -> Any:
    """Compile ``=expression`` with the ``formulas`` engine.

    Raises:
        FormulaError: If the engine cannot parse or compile the formula.
    """
    return formulas.Parser().ast(f"={expression}")[1].compile()


class FormulaEvaluator:
    """Evaluate formula cells of one workbook."""

    def __init__(self, workbook: ExcelWorkbook) -> None:
        self._workbook = workbook

    def evaluate(
        self,
        cell: ExcelCell,
        rules: Sequence[FormulaReplaceRule] = (),
        row_number: int | None = None,
    ) -> Any:
        """Evaluate a formula cell.

        Args:
            cell: The formula cell.
            rules: ``formula_replace`` rules applied before evaluation.
            row_number: Value substituted for ``${row}``.

        Returns:
            The evaluated value.

        Raises:
            FormulaEvaluationError: If the formula cannot be evaluated.
            CellValueError: If the formula evaluates to an error value.
        """
        formula = cell.formula or ""
        rewritten = apply_formula_replace(formula, rules, row_number)
        if rewritten != formula:
            logger.debug(
                "formula replaced",
                cell=cell.qualified_coordinate,
                formula=formula,
                replaced=rewritten,
            )
        return self._evaluate(cell, rewritten, rewritten == formula, depth=0)

    def _evaluate(self, cell: ExcelCell, formula: str, unchanged: bool, depth: int) -> Any:
        if depth > MAX_REFERENCE_DEPTH:
            raise FormulaEvaluationError(
                "reference chain too deep (circular reference?)",
                formula=formula,
                coordinate=cell.qualified_coordinate,
            )

        expression = _strip_formula(formula)
        found, value = self._literal(expression)
        if found:
            return value

        target = self._reference(cell, expression)
        if target is not None:
            return self._cell_value(target, depth)

        try:
            return self._compute(cell, expression, depth)
        except FormulaEvaluationError as e:
            if unchanged and cell.cached_value is not None:
                logger.debug(
                    "using cached formula value",
                    cell=cell.qualified_coordinate,
                    reason=e.message,
                )
                if cell.cached_type is CellType.ERROR:
                    raise CellValueError(
                        str(cell.cached_value), coordinate=cell.qualified_coordinate
                    ) from e
                return cell.cached_value
            raise

    def _cell_value(self, target: ExcelCell, depth: int) -> Any:
        if target.cell_type is CellType.ERROR:
            raise CellValueError(str(target.value), coordinate=target.qualified_coordinate)
        if target.cell_type is CellType.FORMULA:
            return self._evaluate(target, target.formula or "", True, depth + 1)
        return target.value

    @staticmethod
    def _literal(expression: str) -> tuple[bool, Any]:
        if _NUMBER_RE.fullmatch(expression):
            number = float(expression)
            return True, int(number) if number.is_integer() and "." not in expression else number
        match = _STRING_RE.fullmatch(expression)
        if match:
            return True, match.group(1).replace('""', '"')
        upper = expression.upper()
        if upper in ("TRUE", "FALSE"):
            return True, upper == "TRUE"
        return False, None

    def _reference(self, cell: ExcelCell, expression: str) -> ExcelCell | None:
        try:
            address = parse_cell_address(expression)
        except ConfigError:
            return None

        sheet = self._sheet(address.sheet_name or cell.sheet_name, cell, expression)
        return sheet.cell(address.row, address.column)

    # ------------------------------------------------------------------ #
    # Engine
    # ------------------------------------------------------------------ #

    def _compute(self, cell: ExcelCell, expression: str, depth: int) -> Any:
        try:
            function = compile_formula(expression)
        except FormulaError as e:
            raise FormulaEvaluationError(
                f"formula not supported: {e}",
                formula=f"={expression}",
                coordinate=cell.qualified_coordinate,
            ) from e

        args = [self._input_value(cell, name, expression, depth) for name in function.inputs]
        try:
            result = function(*args)
        except (FormulaError, ArithmeticError, TypeError, ValueError) as e:
            raise FormulaEvaluationError(
                f"formula evaluation failed: {e}",
                formula=f"={expression}",
                coordinate=cell.qualified_coordinate,
            ) from e
        return self._result_value(cell, expression, result)

    def _input_value(self, cell: ExcelCell, name: str, expression: str, depth: int) -> Any:
        match = _INPUT_RE.match(name)
        if match is None:
            raise FormulaEvaluationError(
                f"unsupported reference {name}",
                formula=f"={expression}",
                coordinate=cell.qualified_coordinate,
            )
        sheet_text = match.group("sheet")
        sheet_name = (
            _BOOK_PREFIX_RE.sub("", sheet_text.strip("'")) if sheet_text else cell.sheet_name
        )
        sheet = self._sheet(sheet_name, cell, expression)

        min_col, min_row, max_col, max_row = range_boundaries(match.group("range").upper())
        if (min_row, min_col) == (max_row, max_col):
            return self._engine_value(sheet.cell(min_row, min_col), depth)
        return np.array(
            [
                [self._engine_value(sheet.cell(r, c), depth) for c in range(min_col, max_col + 1)]
                for r in range(min_row, max_row + 1)
            ],
            dtype=object,
        )

    def _engine_value(self, target: ExcelCell, depth: int) -> Any:
        if target.cell_type is CellType.BLANK:
            return sh.EMPTY
        value = self._cell_value(target, depth)
        if value is None:
            return sh.EMPTY
        if isinstance(value, (dt.datetime, dt.date, dt.time, dt.timedelta)):
            return to_excel(value)
        return value

    @staticmethod
    def _result_value(cell: ExcelCell, expression: str, result: Any) -> Any:
        value = getattr(result, "value", result)
        values = np.asarray(value, dtype=object).ravel()
        if values.size == 0:
            return None
        value = values[0]
        if value is sh.EMPTY:
            return None
        if isinstance(value, np.generic):
            value = value.item()
        if isinstance(value, str) and value in ERROR_CODES:
            if value == _UNSUPPORTED_RESULT:
                raise FormulaEvaluationError(
                    "formula uses a function the engine does not implement",
                    formula=f"={expression}",
                    coordinate=cell.qualified_coordinate,
                )
            raise CellValueError(str(value), coordinate=cell.qualified_coordinate)
        return value

    def _sheet(self, sheet_name: str, cell: ExcelCell, expression: str) -> ExcelSheet:
        sheet = self._workbook.get_sheet(sheet_name)
        if sheet is None:
            # engine input names are upper-cased
            for name in self._workbook.sheet_names:
                if name.upper() == sheet_name.upper():
                    sheet = self._workbook.get_sheet(name)
                    break
        if sheet is None:
            raise FormulaEvaluationError(
                f"reference to missing sheet {sheet_name}",
                formula=expression,
                coordinate=cell.qualified_coordinate,
            )
        return sheet
