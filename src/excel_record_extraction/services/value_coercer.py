"""Convert raw cell values into the target column type.

Every target type has one converter; a value that cannot be represented
raises ``ConversionError`` and the column visitor applies the column's
``on_convert_error`` policy.
"""

from __future__ import annotations

import datetime as dt
import json
import math
from collections.abc import Callable
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd
from openpyxl.utils.datetime import from_excel, to_excel

from excel_record_extraction.models import ColumnType
from excel_record_extraction.services.bindings import ColumnBinding, TimestampOptions
from excel_record_extraction.utils.exceptions import ConversionError

TRUE_STRINGS = frozenset({"true", "yes", "y", "on", "1"})
FALSE_STRINGS = frozenset({"false", "no", "n", "off", "0"})

# Range of the 64-bit long column type.
LONG_MIN = -(2**63)
LONG_MAX = 2**63 - 1

# strftime/Ruby directives that pandas' strptime does not know.
_FORMAT_SHORTHANDS = {
    "%F": "%Y-%m-%d",
    "%D": "%m/%d/%y",
    "%T": "%H:%M:%S",
    "%R": "%H:%M",
    "%N": "%f",
    "%L": "%f",
}
_YEAR_DIRECTIVES = ("%Y", "%y", "%G", "%c", "%x")
_MONTH_DIRECTIVES = ("%m", "%b", "%B", "%h", "%j", "%U", "%W", "%V", "%c", "%x")
_DAY_DIRECTIVES = ("%d", "%j", "%c", "%x")


def format_numeric(value: int | float, numeric_format: str | None = None) -> str:
    """Render a number as text.

    ``numeric_format`` is a printf pattern (``%.2f``) when it contains ``%``,
    otherwise a format spec (``,.2f``). Without a format, integral values
    drop the decimal part and other values use the shortest repr.

    Raises:
        ConversionError: If the format does not accept the value.
    """
    if numeric_format:
        try:
            if "%" in numeric_format:
                return numeric_format % value
            return format(value, numeric_format)
        except (TypeError, ValueError) as e:
            raise ConversionError(
                f"numeric_format {numeric_format!r} failed for {value!r}: {e}"
            ) from e
    if isinstance(value, int):
        return str(value)
    if math.isfinite(value) and value.is_integer():
        return str(int(value))
    return repr(value)


@lru_cache(maxsize=64)
def resolve_timezone(name: str) -> dt.tzinfo:
    """Resolve a zone name or a fixed ``+HH:MM`` offset.

    Raises:
        ConversionError: If the zone is unknown.
    """
    text = name.strip()
    if text.upper() in ("UTC", "Z"):
        return dt.UTC
    if text[:1] in ("+", "-"):
        try:
            offset = dt.datetime.strptime(text, "%z").utcoffset()
        except ValueError as e:
            raise ConversionError(f"invalid timezone offset {name!r}") from e
        return dt.timezone(offset) if offset is not None else dt.UTC
    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConversionError(f"unknown timezone {name!r}") from e


def normalize_timestamp_format(fmt: str) -> str:
    """Expand shorthand directives pandas cannot parse."""
    for shorthand, expanded in _FORMAT_SHORTHANDS.items():
        fmt = fmt.replace(shorthand, expanded)
    return fmt


class TimestampParser:
    """Turn strings, Excel serials and datetimes into UTC timestamps."""

    def __init__(self, options: TimestampOptions) -> None:
        self._options = options
        self._format = normalize_timestamp_format(options.format)

    @property
    def zone(self) -> dt.tzinfo:
        return resolve_timezone(self._options.timezone)

    @property
    def default_date(self) -> dt.date:
        try:
            return dt.date.fromisoformat(self._options.date)
        except ValueError as e:
            raise ConversionError(f"invalid date {self._options.date!r}") from e

    def parse(self, text: str) -> pd.Timestamp:
        """Parse ``text`` with the column format."""
        fmt = self._format
        try:
            ts = pd.to_datetime(text, format=fmt)
        except (ValueError, TypeError, OverflowError) as e:
            raise ConversionError(
                f"cannot parse {text!r} with format {self._options.format!r}"
            ) from e

        replace: dict[str, int] = {}
        default = None
        if not any(d in fmt for d in _YEAR_DIRECTIVES):
            default = self.default_date
            replace["year"] = default.year
        if not any(d in fmt for d in _MONTH_DIRECTIVES):
            default = default or self.default_date
            replace["month"] = default.month
        if not any(d in fmt for d in _DAY_DIRECTIVES):
            default = default or self.default_date
            replace["day"] = default.day
        if replace:
            ts = ts.replace(**replace)
        return self.localize(ts)

    def from_datetime(self, value: dt.datetime | dt.date | dt.time | dt.timedelta) -> pd.Timestamp:
        if isinstance(value, dt.datetime):
            return self.localize(pd.Timestamp(value))
        if isinstance(value, dt.date):
            return self.localize(pd.Timestamp(dt.datetime.combine(value, dt.time())))
        if isinstance(value, dt.time):
            return self.localize(pd.Timestamp(dt.datetime.combine(self.default_date, value)))
        base = dt.datetime.combine(self.default_date, dt.time())
        return self.localize(pd.Timestamp(base + value))

    def from_serial(self, value: float) -> pd.Timestamp:
        """Convert an Excel serial date number."""
        try:
            converted = from_excel(value)
        except (ValueError, OverflowError) as e:
            raise ConversionError(f"{value!r} is not an Excel date") from e
        return self.from_datetime(converted)

    def localize(self, ts: pd.Timestamp) -> pd.Timestamp:
        """Attach the column zone to naive values and convert to UTC."""
        try:
            if ts.tzinfo is None:
                ts = ts.tz_localize(self.zone, ambiguous=False, nonexistent="shift_forward")
            return ts.tz_convert("UTC")
        except (ValueError, OverflowError) as e:
            raise ConversionError(f"cannot localize {ts!r}: {e}") from e


class ValueCoercer:
    """Coerce values for one sheet's column bindings."""

    def __init__(self) -> None:
        self._converters: dict[ColumnType, Callable[[Any, ColumnBinding], Any]] = {
            ColumnType.STRING: self.to_string,
            ColumnType.BOOLEAN: self.to_boolean,
            ColumnType.LONG: self.to_long,
            ColumnType.DOUBLE: self.to_double,
            ColumnType.TIMESTAMP: self.to_timestamp,
            ColumnType.JSON: self.to_json,
        }
        self._timestamp_parsers: dict[TimestampOptions, TimestampParser] = {}

    def coerce(self, value: Any, binding: ColumnBinding) -> Any:
        """Convert ``value`` to the binding's column type; None stays None.

        Raises:
            ConversionError: If the value cannot be converted.
        """
        if value is None:
            return None
        try:
            return self._converters[binding.column_type](value, binding)
        except ConversionError as e:
            if e.column is None:
                e.column = binding.name
                e.details["column"] = binding.name
            raise

    def timestamp_parser(self, binding: ColumnBinding) -> TimestampParser:
        parser = self._timestamp_parsers.get(binding.timestamp)
        if parser is None:
            parser = TimestampParser(binding.timestamp)
            self._timestamp_parsers[binding.timestamp] = parser
        return parser

    # ------------------------------------------------------------------ #
    # Converters
    # ------------------------------------------------------------------ #

    def to_string(self, value: Any, binding: ColumnBinding) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return format_numeric(value, binding.numeric_format)
        if isinstance(value, (dt.datetime, dt.date, dt.time)):
            return value.isoformat()
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False, default=str)
        return str(value)

    def to_boolean(self, value: Any, binding: ColumnBinding) -> bool | None:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            text = value.strip().lower()
            if not text:
                return None
            if text in TRUE_STRINGS:
                return True
            if text in FALSE_STRINGS:
                return False
        raise ConversionError(f"cannot convert {value!r} to boolean")

    def to_long(self, value: Any, binding: ColumnBinding) -> int | None:
        result = self._to_long(value, binding)
        if result is not None and not LONG_MIN <= result <= LONG_MAX:
            raise ConversionError(f"{value!r} is out of range for long")
        return result

    def _to_long(self, value: Any, binding: ColumnBinding) -> int | None:
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ConversionError(f"cannot convert {value!r} to long")
            return int(value)
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                return int(text)
            except ValueError:
                pass
            try:
                return self._to_long(float(text), binding)
            except ValueError as e:
                raise ConversionError(f"cannot convert {value!r} to long") from e
        if isinstance(value, (dt.datetime, dt.date, dt.time, dt.timedelta)):
            return int(self.to_timestamp(value, binding).timestamp())
        raise ConversionError(f"cannot convert {type(value).__name__} to long")

    def to_double(self, value: Any, binding: ColumnBinding) -> float | None:
        if isinstance(value, (bool, int, float)):
            return float(value)
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                return float(text)
            except ValueError as e:
                raise ConversionError(f"cannot convert {value!r} to double") from e
        if isinstance(value, (dt.datetime, dt.date, dt.time, dt.timedelta)):
            try:
                return float(to_excel(value))
            except (TypeError, ValueError) as e:
                raise ConversionError(f"cannot convert {value!r} to double") from e
        raise ConversionError(f"cannot convert {type(value).__name__} to double")

    def to_timestamp(self, value: Any, binding: ColumnBinding) -> pd.Timestamp | None:
        parser = self.timestamp_parser(binding)
        if isinstance(value, bool):
            raise ConversionError(f"cannot convert {value!r} to timestamp")
        if isinstance(value, (dt.datetime, dt.date, dt.time, dt.timedelta)):
            return parser.from_datetime(value)
        if isinstance(value, (int, float)):
            return parser.from_serial(value)
        if isinstance(value, str):
            if not value.strip():
                return None
            return parser.parse(value)
        raise ConversionError(f"cannot convert {type(value).__name__} to timestamp")

    def to_json(self, value: Any, binding: ColumnBinding) -> Any:
        if isinstance(value, float) and not math.isfinite(value):
            return None
        if isinstance(value, (str, bool, int, float, dict, list)):
            return value
        if isinstance(value, (dt.datetime, dt.date, dt.time)):
            return value.isoformat()
        return str(value)
