"""Warning window calculator — risk level around declared drinking days.

Every conflict date casts a symmetric ±4-day halo. A target date's level
is decided solely by the nearest conflict date; overlapping halos never
add up.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from enum import Enum

from dosecycle.core.cycle import days_between


class WarningLevel(str, Enum):
    """Ordered closest (DDAY) to furthest (DAY4)."""

    DDAY = "dday"
    DAY1 = "day1"
    DAY2 = "day2"
    DAY3 = "day3"
    DAY4 = "day4"

    @property
    def distance(self) -> int:
        return _LEVELS.index(self)


_LEVELS = [
    WarningLevel.DDAY,
    WarningLevel.DAY1,
    WarningLevel.DAY2,
    WarningLevel.DAY3,
    WarningLevel.DAY4,
]

WINDOW_RADIUS = len(_LEVELS) - 1


def nearest_distance(conflict_dates: Iterable[date], target_date: date) -> int | None:
    """Smallest absolute day distance to any conflict date, None if there are none."""
    distances = [abs(days_between(c, target_date)) for c in conflict_dates]
    if not distances:
        return None
    return min(distances)


def warning_level(conflict_dates: Iterable[date], target_date: date) -> WarningLevel | None:
    """Risk level for target_date, or None outside every window."""
    distance = nearest_distance(conflict_dates, target_date)
    if distance is None or distance > WINDOW_RADIUS:
        return None
    return _LEVELS[distance]
