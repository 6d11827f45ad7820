"""Style, font and comment metadata of openpyxl cells as plain dicts."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from excel_record_extraction.models import ValueType
from excel_record_extraction.utils.exceptions import ConversionError


def _color(color: Any) -> str | None:
    if color is None:
        return None
    kind = getattr(color, "type", None)
    if kind == "rgb":
        return str(color.rgb)
    if kind == "theme":
        return f"theme:{color.theme}"
    if kind == "indexed":
        return f"indexed:{color.indexed}"
    return None


def style_attributes(cell: Any) -> dict[str, Any]:
    """Alignment, border, fill, number format and protection of a cell."""
    alignment = cell.alignment
    border = cell.border
    fill = cell.fill
    protection = cell.protection
    return {
        "alignment": alignment.horizontal,
        "vertical_alignment": alignment.vertical,
        "wrap_text": bool(alignment.wrap_text),
        "indent": alignment.indent,
        "rotation": alignment.text_rotation,
        "border_top": border.top.style if border.top else None,
        "border_bottom": border.bottom.style if border.bottom else None,
        "border_left": border.left.style if border.left else None,
        "border_right": border.right.style if border.right else None,
        "border_top_color": _color(border.top.color) if border.top else None,
        "border_bottom_color": _color(border.bottom.color) if border.bottom else None,
        "border_left_color": _color(border.left.color) if border.left else None,
        "border_right_color": _color(border.right.color) if border.right else None,
        "fill_pattern": getattr(fill, "fill_type", None),
        "fill_foreground_color": _color(getattr(fill, "fgColor", None)),
        "fill_background_color": _color(getattr(fill, "bgColor", None)),
        "data_format": cell.number_format,
        "locked": bool(protection.locked),
        "hidden": bool(protection.hidden),
    }


def font_attributes(cell: Any) -> dict[str, Any]:
    """Font of a cell."""
    font = cell.font
    return {
        "font_name": font.name,
        "font_height_in_points": font.sz,
        "bold": bool(font.b),
        "italic": bool(font.i),
        "underline": font.u,
        "strikeout": bool(font.strike),
        "color": _color(font.color),
        "type_offset": font.vertAlign,
    }


def comment_attributes(cell: Any) -> dict[str, Any] | None:
    """Comment of a cell, or None when the cell has none."""
    comment = getattr(cell, "comment", None)
    if comment is None:
        return None
    return {
        "author": comment.author,
        "string": comment.text,
    }


_ATTRIBUTE_READERS = {
    ValueType.CELL_STYLE: style_attributes,
    ValueType.CELL_FONT: font_attributes,
    ValueType.CELL_COMMENT: comment_attributes,
}


def read_attributes(
    value_type: ValueType,
    cell: Any,
    names: Sequence[str] | None,
    column: str | None = None,
) -> Any:
    """Read the metadata map for ``value_type`` and narrow it to ``names``.

    With one name the attribute value itself is returned, with several a
    dict of just those attributes.

    Raises:
        ConversionError: If a requested attribute does not exist.
    """
    attributes = _ATTRIBUTE_READERS[value_type](cell)
    if attributes is None or not names:
        return attributes

    unknown = [name for name in names if name not in attributes]
    if unknown:
        raise ConversionError(
            f"unknown attribute_name {unknown} for {value_type.value}",
            column=column,
            details={"allowed": sorted(attributes)},
        )
    if len(names) == 1:
        return attributes[names[0]]
    return {name: attributes[name] for name in names}
