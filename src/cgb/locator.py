# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Recover diagnostic source positions from translator locator objects.

Translator locators do not expose stable field names, so positions are
classified from the numeric values alone: the largest plausible value is the
line, the smallest is the column. Values of 10000 and above are ignored
because the translator also emits unrelated counters. This heuristic can
misreport positions in documents longer than 10000 lines.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from numbers import Real

logger = logging.getLogger(__name__)

POSITION_LIMIT: int = 10000


@dataclass(frozen=True)
class LocatorInfo:
    """Represent a decoded diagnostic position.

    Attributes:
        line: 1-based line number, or ``None`` when unknown.
        column: 0-based column number, or ``None`` when unknown.
    """

    line: int | float | None = None
    column: int | float | None = None


def extract_locator_info(locator: object) -> LocatorInfo:
    """Decode a line/column pair from an opaque locator object.

    Args:
        locator: Mapping or object whose own attributes hold position numbers.
            ``None`` yields an empty position.

    Returns:
        Decoded position; members are ``None`` when they cannot be derived.
    """
    if locator is None:
        return LocatorInfo()
    candidates = [
        value
        for value in _own_values(locator)
        if isinstance(value, Real) and not isinstance(value, bool) and value >= 0
    ]

    line: int | float | None = None
    column: int | float | None = None
    if len(candidates) >= 2:
        line_candidates = [v for v in candidates if 0 < v <= POSITION_LIMIT]
        if line_candidates:
            line = max(line_candidates)
        column_candidates = [v for v in candidates if 0 <= v < POSITION_LIMIT]
        if column_candidates:
            column = min(column_candidates)
    elif len(candidates) == 1:
        line = candidates[0]

    if line is not None:
        if line == 0:
            line = 1
        elif line < 0:
            line = None
    if column is not None and column < 0:
        column = None
    return LocatorInfo(line=line, column=column)


def locator_info_for(exception: object) -> LocatorInfo:
    """Decode the position of an exception exposing a ``locator`` attribute."""
    return extract_locator_info(getattr(exception, "locator", None))


def format_locator(info: LocatorInfo) -> str:
    """Render a decoded position for display.

    Returns:
        ``"(line L, column C)"`` with ``?`` for an unknown column, or an empty
        string when the line is unknown.
    """
    if info.line is None:
        return ""
    column = info.column if info.column is not None else "?"
    return f"(line {info.line}, column {column})"


def _own_values(locator: object) -> list[object]:
    if isinstance(locator, Mapping):
        return list(locator.values())
    try:
        return list(vars(locator).values())
    except TypeError:
        logger.debug(
            f"Locator exposes no attributes (type={type(locator).__name__})"
        )
        return []
