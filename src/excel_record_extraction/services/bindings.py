"""Flatten task options into one immutable binding per column per sheet.

Precedence for a column option on a given sheet, highest first:

1. ``sheet_options.<sheet>.columns.<column>``
2. the schema column entry in ``columns``
3. ``sheet_options.<sheet>``
4. the top level of the task
5. the built-in default
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from excel_record_extraction.models import (
    ColumnConfig,
    ColumnOptions,
    ColumnType,
    ErrorPolicy,
    FormulaHandling,
    ParserConfig,
    RecordType,
    SheetOptions,
    ValueType,
    parse_value_option,
)
from excel_record_extraction.services.cell_resolver import (
    AxisRef,
    CellAddress,
    parse_axis_reference,
    parse_cell_address,
)
from excel_record_extraction.utils.exceptions import ConfigError, ErrorCode

DEFAULT_SEARCH_MERGED_CELL = True


@dataclass(frozen=True)
class FormulaReplaceRule:
    """Compiled formula rewrite; ``${row}`` in ``to`` is substituted first."""

    pattern: re.Pattern[str]
    to: str

    def apply(self, formula: str, row_number: int | None) -> str:
        replacement = self.to.replace("${row}", "" if row_number is None else str(row_number))
        return self.pattern.sub(replacement, formula)


@dataclass(frozen=True)
class TimestampOptions:
    """Timestamp parsing options after defaults are applied."""

    format: str
    timezone: str
    date: str


@dataclass(frozen=True)
class ColumnBinding:
    """Everything needed to produce one column value, resolved for a sheet."""

    index: int
    name: str
    column_type: ColumnType
    value_type: ValueType = ValueType.CELL_VALUE
    constant: str | None = None
    attribute_names: tuple[str, ...] | None = None
    cell_address: CellAddress | None = None
    column_ref: AxisRef | None = None
    row_ref: AxisRef | None = None
    numeric_format: str | None = None
    search_merged_cell: bool = DEFAULT_SEARCH_MERGED_CELL
    formula_handling: FormulaHandling = FormulaHandling.EVALUATE
    formula_replace: tuple[FormulaReplaceRule, ...] = ()
    timestamp: TimestampOptions = TimestampOptions(
        format="%Y-%m-%d %H:%M:%S.%f %z", timezone="UTC", date="1970-01-01"
    )
    on_evaluate_error: ErrorPolicy = ErrorPolicy.EXCEPTION
    on_cell_error: ErrorPolicy = ErrorPolicy.EXCEPTION
    on_convert_error: ErrorPolicy = ErrorPolicy.EXCEPTION
    default_value: Any = None


@dataclass(frozen=True)
class SheetBinding:
    """Sheet-level options and the column bindings of one sheet."""

    sheet_name: str
    record_type: RecordType
    skip_header_lines: int
    columns: tuple[ColumnBinding, ...]


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


class BindingBuilder:
    """Build ``SheetBinding``s from a task.

    Bindings are built once when a sheet is entered and never re-resolved
    per record.
    """

    def __init__(self, config: ParserConfig) -> None:
        self._config = config

    def build(self, sheet_name: str) -> SheetBinding:
        """Resolve all options for ``sheet_name``.

        Raises:
            ConfigError: If an option value is invalid for the sheet's layout.
        """
        config = self._config
        sheet = config.sheet_options.get(sheet_name)
        record_type = RecordType(
            _first(getattr(sheet, "record_type", None), config.record_type, RecordType.ROW)
        )
        skip = _first(
            getattr(sheet, "skip_header_lines", None), config.skip_header_lines, 0
        )

        columns: list[ColumnBinding] = []
        previous = 0
        for index, column in enumerate(config.columns):
            override = self._column_override(sheet, column.name)
            binding, previous = self._build_column(
                index, column, override, sheet, record_type, previous
            )
            columns.append(binding)

        return SheetBinding(
            sheet_name=sheet_name,
            record_type=record_type,
            skip_header_lines=skip,
            columns=tuple(columns),
        )

    @staticmethod
    def _column_override(sheet: SheetOptions | None, name: str) -> ColumnOptions | None:
        if sheet is None or not sheet.columns:
            return None
        return sheet.columns.get(name)

    def _build_column(
        self,
        index: int,
        column: ColumnConfig,
        override: ColumnOptions | None,
        sheet: SheetOptions | None,
        record_type: RecordType,
        previous: int,
    ) -> tuple[ColumnBinding, int]:
        config = self._config

        def column_option(key: str) -> Any:
            return _first(getattr(override, key, None), getattr(column, key))

        def common_option(key: str) -> Any:
            return _first(
                getattr(override, key, None),
                getattr(column, key),
                getattr(sheet, key, None),
                getattr(config, key),
            )

        value_type, constant = parse_value_option(column_option("value"))

        address_text = column_option("cell_address")
        address = parse_cell_address(address_text) if address_text else None

        column_text = _first(column_option("cell_column"), column_option("column_number"))
        row_text = column_option("cell_row")
        column_ref, row_ref, previous = self._axis_refs(
            column.name,
            value_type,
            record_type,
            column_text,
            row_text,
            address is not None,
            previous,
        )

        attribute_names = column_option("attribute_name")
        replace_rules = common_option("formula_replace") or []

        binding = ColumnBinding(
            index=index,
            name=column.name,
            column_type=column.type,
            value_type=value_type,
            constant=constant,
            attribute_names=tuple(attribute_names) if attribute_names else None,
            cell_address=address,
            column_ref=column_ref,
            row_ref=row_ref,
            numeric_format=common_option("numeric_format"),
            search_merged_cell=_first(
                common_option("search_merged_cell"), DEFAULT_SEARCH_MERGED_CELL
            ),
            formula_handling=_first(
                common_option("formula_handling"), FormulaHandling.EVALUATE
            ),
            formula_replace=tuple(
                FormulaReplaceRule(re.compile(rule.regex), rule.to)
                for rule in replace_rules
            ),
            timestamp=TimestampOptions(
                format=_first(column_option("format"), config.default_timestamp_format),
                timezone=_first(column_option("timezone"), config.default_timezone),
                date=_first(column_option("date"), config.default_date),
            ),
            on_evaluate_error=_first(
                common_option("on_evaluate_error"), ErrorPolicy.EXCEPTION
            ),
            on_cell_error=_first(common_option("on_cell_error"), ErrorPolicy.EXCEPTION),
            on_convert_error=_first(
                common_option("on_convert_error"), ErrorPolicy.EXCEPTION
            ),
            default_value=column_option("default_value"),
        )
        return binding, previous

    @staticmethod
    def _axis_refs(
        name: str,
        value_type: ValueType,
        record_type: RecordType,
        column_text: str | None,
        row_text: str | None,
        has_address: bool,
        previous: int,
    ) -> tuple[AxisRef | None, AxisRef | None, int]:
        """Resolve the column and row references of one column.

        The axis that crosses the record (columns for row and sheet
        layouts, rows for the column layout) is positional: a relative
        reference is taken from the previous cell column's position, and
        a missing one means ``+``. Only cell-backed value types without
        an explicit address take a position.
        """
        column_ref = (
            parse_axis_reference(column_text, allow_letters=True, option="cell_column")
            if column_text is not None
            else None
        )
        row_ref = (
            parse_axis_reference(row_text, allow_letters=False, option="cell_row")
            if row_text is not None
            else None
        )
        if has_address:
            return column_ref, row_ref, previous

        positional = column_ref if record_type is not RecordType.COLUMN else row_ref
        takes_position = value_type.uses_cell
        if positional is None:
            positional = AxisRef(1, relative=True) if takes_position else None
        if positional is not None and positional.relative:
            if not takes_position:
                positional = None
            else:
                index = previous + positional.index
                if index < 1:
                    raise ConfigError(
                        f"column {name}: relative reference moves before the first cell",
                        error_code=ErrorCode.INVALID_CELL_REFERENCE,
                        option="cell_column",
                    )
                positional = AxisRef(index)
        if positional is not None and takes_position:
            previous = positional.index

        if record_type is RecordType.COLUMN:
            return column_ref, positional, previous
        return positional, row_ref, previous
