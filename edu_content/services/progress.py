"""Utilities for reporting deterministic import progress percentages."""

from __future__ import annotations

from typing import Any


# A single-video import is accepted, then fetched, then finalised.
IMPORT_STAGE_PROGRESS = {
    "pending": 0,
    "processing": 50,
    "completed": 100,
}


def clamp_progress(value: Any) -> int:
    """Return *value* as an integer percentage in ``[0, 100]``.

    ``None`` and unparseable values map to ``0``.
    """

    if value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number:  # NaN
        return 0
    return int(round(max(0.0, min(number, 100.0))))


__all__ = ["IMPORT_STAGE_PROGRESS", "clamp_progress"]
