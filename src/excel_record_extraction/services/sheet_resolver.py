"""Resolve configured sheet selectors against a workbook's sheet names."""

from __future__ import annotations

import re
from collections.abc import Iterable

GLOB_CHARACTERS = ("*", "?")


def is_glob(selector: str) -> bool:
    """Whether a selector contains ``*`` or ``?``."""
    return any(ch in selector for ch in GLOB_CHARACTERS)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a sheet glob into an anchored regular expression.

    ``*`` matches any run of characters and ``?`` exactly one character;
    everything else, regex metacharacters included, matches literally.
    """
    parts: list[str] = []
    literal: list[str] = []
    for ch in pattern:
        if ch in GLOB_CHARACTERS:
            if literal:
                parts.append(re.escape("".join(literal)))
                literal.clear()
            parts.append(".*" if ch == "*" else ".")
        else:
            literal.append(ch)
    if literal:
        parts.append(re.escape("".join(literal)))
    return re.compile("".join(parts), re.DOTALL)


def resolve_sheet_names(sheet_names: Iterable[str], selectors: Iterable[str]) -> list[str]:
    """Turn selectors into concrete sheet names.

    Literal selectors are passed through without checking the workbook;
    globs add every matching sheet in workbook order. The result keeps
    first-seen order and holds no duplicates. A glob matching nothing is
    not an error.

    Args:
        sheet_names: Sheet names of the workbook, in workbook order.
        selectors: Configured selectors, in configuration order.

    Returns:
        Ordered, duplicate-free list of sheet names.
    """
    names = list(sheet_names)
    resolved: dict[str, None] = {}
    for selector in selectors:
        if not is_glob(selector):
            resolved.setdefault(selector, None)
            continue
        regex = glob_to_regex(selector)
        for name in names:
            if regex.fullmatch(name):
                resolved.setdefault(name, None)
    return list(resolved)
