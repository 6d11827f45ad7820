"""Pydantic models for extraction tasks and the output schema.

The option classes mirror the layering of the task configuration: options
shared by every column can be given at the top level or per sheet, column
options can be given on the schema column or per sheet under
``sheet_options.<sheet>.columns.<column>``.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from excel_record_extraction.utils.exceptions import ConfigError


class ColumnType(str, Enum):
    """Target type of an output column."""

    STRING = "string"
    BOOLEAN = "boolean"
    LONG = "long"
    DOUBLE = "double"
    TIMESTAMP = "timestamp"
    JSON = "json"


# Accepted spellings for the schema ``type`` option.
COLUMN_TYPE_ALIASES: dict[str, ColumnType] = {
    "decimal": ColumnType.DOUBLE,
}


class RecordType(str, Enum):
    """How a sheet is cut into records."""

    ROW = "row"
    COLUMN = "column"
    SHEET = "sheet"


class FormulaHandling(str, Enum):
    """What to output for a formula cell."""

    EVALUATE = "evaluate"
    CACHED_VALUE = "cached_value"
    FORMULA_TEXT = "formula_text"


class ErrorPolicy(str, Enum):
    """What to do when producing a column value fails."""

    EXCEPTION = "exception"
    NULL = "null"
    DEFAULT_VALUE = "default_value"
    SKIP_RECORD = "skip_record"
    ERROR_CODE = "error_code"


ERROR_POLICY_ALIASES: dict[str, ErrorPolicy] = {
    "raise": ErrorPolicy.EXCEPTION,
    "constant": ErrorPolicy.DEFAULT_VALUE,
    "skip": ErrorPolicy.SKIP_RECORD,
}


class ValueType(str, Enum):
    """Which value of the resolved cell (or record) a column outputs."""

    CELL_VALUE = "cell_value"
    CELL_FORMULA = "cell_formula"
    CELL_STYLE = "cell_style"
    CELL_FONT = "cell_font"
    CELL_COMMENT = "cell_comment"
    CELL_TYPE = "cell_type"
    CELL_CACHED_TYPE = "cell_cached_type"
    SHEET_NAME = "sheet_name"
    ROW_NUMBER = "row_number"
    COLUMN_NUMBER = "column_number"
    CONSTANT = "constant"

    @property
    def uses_cell(self) -> bool:
        """Whether the value is read from a cell (and takes a column slot)."""
        return self.value.startswith("cell_")

    @property
    def is_attribute(self) -> bool:
        """Whether the value is a metadata attribute map."""
        return self in (ValueType.CELL_STYLE, ValueType.CELL_FONT, ValueType.CELL_COMMENT)


def parse_value_option(text: str | None) -> tuple[ValueType, str | None]:
    """Split a ``value`` option into its type and constant text.

    ``"constant.abc"`` yields ``(CONSTANT, "abc")``; ``"constant"`` yields a
    null constant.

    Raises:
        ConfigError: If the value type is unknown.
    """
    if text is None:
        return ValueType.CELL_VALUE, None
    if text == "constant" or text.startswith("constant."):
        constant = text[len("constant.") :] if "." in text else None
        return ValueType.CONSTANT, constant
    try:
        return ValueType(text), None
    except ValueError as e:
        raise ConfigError(
            f"illegal value type: {text}",
            option="value",
            details={"allowed": [v.value for v in ValueType]},
        ) from e


def _coerce_policy(v: Any) -> Any:
    if isinstance(v, str):
        lowered = v.strip().lower()
        return ERROR_POLICY_ALIASES.get(lowered, lowered)
    return v


def _coerce_optional_str(v: Any) -> Any:
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    return v


class FormulaReplace(BaseModel):
    """One formula rewrite rule; ``${row}`` in ``to`` is the current row."""

    regex: str = Field(..., description="Pattern searched in the formula text")
    to: str = Field(..., description="Replacement; may reference ${row}")

    @field_validator("regex")
    @classmethod
    def validate_regex(cls, v: str) -> str:
        """Validate the pattern compiles."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid formula_replace regex {v!r}: {e}") from e
        return v


class ColumnCommonOptions(BaseModel):
    """Options that can be set globally, per sheet, or per column."""

    numeric_format: str | None = Field(
        default=None, description="printf pattern or format spec for numbers"
    )
    search_merged_cell: bool | None = Field(
        default=None, description="Read the merged anchor cell for blank cells"
    )
    formula_handling: FormulaHandling | None = None
    formula_replace: list[FormulaReplace] | None = None
    on_evaluate_error: ErrorPolicy | None = None
    on_cell_error: ErrorPolicy | None = None
    on_convert_error: ErrorPolicy | None = None

    @field_validator("search_merged_cell", mode="before")
    @classmethod
    def coerce_search_merged_cell(cls, v: Any) -> Any:
        """Accept the legacy search strategy names."""
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered in ("none", "false", "off"):
                return False
            if lowered in ("true", "on", "linear_search", "tree_search", "hash_search"):
                return True
        return v

    @field_validator(
        "on_evaluate_error", "on_cell_error", "on_convert_error", mode="before"
    )
    @classmethod
    def coerce_policy_alias(cls, v: Any) -> Any:
        """Map policy aliases such as ``raise`` to their canonical value."""
        return _coerce_policy(v)

    @field_validator("on_convert_error")
    @classmethod
    def validate_convert_policy(cls, v: ErrorPolicy | None) -> ErrorPolicy | None:
        """A conversion failure has no error code to emit."""
        if v is ErrorPolicy.ERROR_CODE:
            raise ValueError("on_convert_error does not support error_code")
        return v


class SheetCommonOptions(ColumnCommonOptions):
    """Options that can be set globally or per sheet."""

    record_type: RecordType | None = None
    skip_header_lines: int | None = Field(default=None, ge=0)


class ColumnOptions(ColumnCommonOptions):
    """Per-column options, on the schema column or in sheet_options."""

    value: str | None = Field(default=None, description="cell_value, constant.X, ...")
    column_number: str | None = Field(default=None, description="Alias of cell_column")
    cell_column: str | None = Field(
        default=None, description="A, B, ..., 1-origin number, or =, +N, -N"
    )
    cell_row: str | None = Field(default=None, description="1-origin row, or =, +N, -N")
    cell_address: str | None = Field(default=None, description="A1 or Sheet1!A1")
    attribute_name: list[str] | None = None
    timezone: str | None = None
    format: str | None = None
    date: str | None = None
    default_value: Any = None

    @field_validator("column_number", "cell_column", "cell_row", mode="before")
    @classmethod
    def coerce_reference(cls, v: Any) -> Any:
        """Accept integers for column and row references."""
        return _coerce_optional_str(v)

    @field_validator("attribute_name", mode="before")
    @classmethod
    def coerce_attribute_name(cls, v: Any) -> Any:
        """Accept a single attribute name."""
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: str | None) -> str | None:
        """Validate the value type is known."""
        if v is not None:
            try:
                parse_value_option(v)
            except ConfigError as e:
                raise ValueError(e.message) from e
        return v


class ColumnConfig(ColumnOptions):
    """A schema column with its options."""

    name: str = Field(..., min_length=1)
    type: ColumnType

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type_alias(cls, v: Any) -> Any:
        """Map type aliases such as ``decimal``."""
        if isinstance(v, str):
            lowered = v.strip().lower()
            return COLUMN_TYPE_ALIASES.get(lowered, lowered)
        return v


class SheetOptions(SheetCommonOptions):
    """Overrides for one sheet."""

    columns: dict[str, ColumnOptions] | None = None


class ParserConfig(SheetCommonOptions):
    """A complete extraction task.

    Example:
        ParserConfig(
            sheets=["2023-*"],
            skip_header_lines=1,
            columns=[{"name": "id", "type": "long"}],
        )
    """

    sheet: str | None = Field(default=None, description="Single sheet selector")
    sheets: list[str] = Field(default_factory=list, description="Sheet selectors")
    ignore_sheet_not_found: bool = False
    sheet_options: dict[str, SheetOptions] = Field(default_factory=dict)
    columns: list[ColumnConfig] = Field(..., min_length=1)
    flush_count: int | None = Field(default=None, ge=1)
    default_timezone: str = "UTC"
    default_timestamp_format: str = "%Y-%m-%d %H:%M:%S.%f %z"
    default_date: str = "1970-01-01"

    def sheet_selectors(self) -> list[str]:
        """Return ``sheet`` followed by ``sheets``.

        Raises:
            ConfigError: If no selector is configured.
        """
        selectors: list[str] = []
        if self.sheet is not None:
            selectors.append(self.sheet)
        selectors.extend(self.sheets)
        if not selectors:
            raise ConfigError(
                "Attribute sheets is required but not set", option="sheets"
            )
        return selectors


@dataclass(frozen=True)
class SchemaColumn:
    """One output column."""

    index: int
    name: str
    type: ColumnType


@dataclass(frozen=True)
class Schema:
    """Ordered output columns."""

    columns: tuple[SchemaColumn, ...]

    def __iter__(self) -> Iterator[SchemaColumn]:
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]
