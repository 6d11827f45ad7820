"""Tests for task configuration models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from excel_record_extraction.models import (
    ColumnConfig,
    ColumnType,
    ErrorPolicy,
    ParserConfig,
    ValueType,
    parse_value_option,
)
from excel_record_extraction.utils.exceptions import ConfigError


class TestParseValueOption:
    """Tests for parse_value_option."""

    def test_default_is_cell_value(self) -> None:
        assert parse_value_option(None) == (ValueType.CELL_VALUE, None)

    def test_constant_with_text(self) -> None:
        assert parse_value_option("constant.a.b") == (ValueType.CONSTANT, "a.b")

    def test_bare_constant_is_null(self) -> None:
        assert parse_value_option("constant") == (ValueType.CONSTANT, None)

    def test_unknown_value(self) -> None:
        with pytest.raises(ConfigError, match="illegal value type"):
            parse_value_option("cell_colour")

    def test_uses_cell(self) -> None:
        assert ValueType.CELL_STYLE.uses_cell
        assert not ValueType.ROW_NUMBER.uses_cell
        assert ValueType.CELL_COMMENT.is_attribute
        assert not ValueType.CELL_TYPE.is_attribute


class TestColumnConfig:
    """Tests for ColumnConfig validation."""

    def test_decimal_is_double(self) -> None:
        assert ColumnConfig(name="p", type="decimal").type is ColumnType.DOUBLE

    def test_type_is_case_insensitive(self) -> None:
        assert ColumnConfig(name="p", type="Long").type is ColumnType.LONG

    def test_unknown_type(self) -> None:
        with pytest.raises(ValidationError):
            ColumnConfig(name="p", type="money")

    def test_empty_name(self) -> None:
        with pytest.raises(ValidationError):
            ColumnConfig(name="", type="string")

    def test_integer_references(self) -> None:
        column = ColumnConfig(name="p", type="string", cell_column=3, cell_row=2)
        assert column.cell_column == "3"
        assert column.cell_row == "2"

    def test_policy_aliases(self) -> None:
        column = ColumnConfig(
            name="p",
            type="string",
            on_cell_error="raise",
            on_evaluate_error="constant",
            on_convert_error="skip",
        )
        assert column.on_cell_error is ErrorPolicy.EXCEPTION
        assert column.on_evaluate_error is ErrorPolicy.DEFAULT_VALUE
        assert column.on_convert_error is ErrorPolicy.SKIP_RECORD

    def test_error_code_not_allowed_for_conversion(self) -> None:
        with pytest.raises(ValidationError, match="error_code"):
            ColumnConfig(name="p", type="string", on_convert_error="error_code")

    def test_invalid_value(self) -> None:
        with pytest.raises(ValidationError, match="illegal value type"):
            ColumnConfig(name="p", type="string", value="formula")

    @pytest.mark.parametrize(
        ("name", "expected"), [("none", False), ("hash_search", True), ("linear_search", True)]
    )
    def test_search_merged_cell_names(self, name: str, expected: bool) -> None:
        column = ColumnConfig(name="p", type="string", search_merged_cell=name)
        assert column.search_merged_cell is expected

    def test_invalid_formula_replace_regex(self) -> None:
        with pytest.raises(ValidationError, match="invalid formula_replace regex"):
            ColumnConfig(
                name="p", type="string", formula_replace=[{"regex": "(", "to": "x"}]
            )


class TestParserConfig:
    """Tests for ParserConfig."""

    def test_requires_columns(self) -> None:
        with pytest.raises(ValidationError):
            ParserConfig.model_validate({"sheets": ["S"], "columns": []})

    def test_flush_count_positive(self) -> None:
        with pytest.raises(ValidationError):
            ParserConfig.model_validate(
                {
                    "sheets": ["S"],
                    "flush_count": 0,
                    "columns": [{"name": "a", "type": "string"}],
                }
            )

    def test_negative_skip_header_lines(self) -> None:
        with pytest.raises(ValidationError):
            ParserConfig.model_validate(
                {
                    "sheets": ["S"],
                    "skip_header_lines": -1,
                    "columns": [{"name": "a", "type": "string"}],
                }
            )

    def test_sheet_selectors_order(self) -> None:
        config = ParserConfig.model_validate(
            {
                "sheet": "Main",
                "sheets": ["Extra*"],
                "columns": [{"name": "a", "type": "string"}],
            }
        )
        assert config.sheet_selectors() == ["Main", "Extra*"]

    def test_sheet_selectors_required(self) -> None:
        config = ParserConfig.model_validate({"columns": [{"name": "a", "type": "string"}]})
        with pytest.raises(ConfigError) as exc_info:
            config.sheet_selectors()
        assert exc_info.value.option == "sheets"

    def test_sheet_options_columns(self) -> None:
        config = ParserConfig.model_validate(
            {
                "sheets": ["S"],
                "columns": [{"name": "a", "type": "string"}],
                "sheet_options": {
                    "S": {"record_type": "sheet", "columns": {"a": {"cell_address": "B2"}}}
                },
            }
        )
        assert config.sheet_options["S"].columns["a"].cell_address == "B2"
