"""Cycle calculator — pure dose-day arithmetic.

A dose day is any date whose signed day distance from the cycle's
reference date is an exact multiple of the interval, in either direction.
Day distances use calendar ordinals, so DST shifts, month ends and leap
years never matter.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from datetime import date, timedelta

from dosecycle.data.models import Frequency, Schedule


def days_between(start: date, end: date) -> int:
    """Signed whole-day count from start to end (negative if end is earlier)."""
    return end.toordinal() - start.toordinal()


def is_dose_day(reference_date: date, interval_days: int, target_date: date) -> bool:
    """True if target_date falls on the cycle anchored at reference_date.

    Python's % always returns a result with the sign of the divisor, so a
    negative distance still tests as an exact multiple.
    """
    return days_between(reference_date, target_date) % interval_days == 0


def schedule_is_dose_day(schedule: Schedule, target_date: date) -> bool:
    """is_dose_day for a Schedule; always False while the cycle is inactive."""
    if not schedule.is_active:
        return False
    return is_dose_day(schedule.reference_date, schedule.interval_days, target_date)


def upcoming_dose_days(
    reference_date: date,
    interval_days: int,
    start: date,
    days: int = 7,
) -> list[date]:
    """Dose days in [start, start + days), in ascending order."""
    offset = days_between(reference_date, start) % interval_days
    first = start if offset == 0 else start + timedelta(days=interval_days - offset)
    end = start + timedelta(days=days)

    result: list[date] = []
    d = first
    while d < end:
        result.append(d)
        d += timedelta(days=interval_days)
    return result


def schedule_window(schedule: Schedule, start: date, days: int = 7) -> list[date]:
    """Upcoming dose days for a Schedule; empty while the cycle is inactive."""
    if not schedule.is_active:
        return []
    return upcoming_dose_days(schedule.reference_date, schedule.interval_days, start, days)


def resolve_interval(frequency: Frequency | str, custom_days: int | None = None) -> int | None:
    """Map a frequency (enum or name) to its interval in days.

    Returns None for Frequency.NONE. Raises ValueError for an unknown name
    or a CUSTOM frequency without a positive custom_days.
    """
    freq = Frequency(frequency)
    if freq is Frequency.NONE:
        return None
    if freq is Frequency.CUSTOM:
        if custom_days is None or custom_days < 1:
            raise ValueError(f"Custom frequency needs a positive day count, got {custom_days!r}")
        return custom_days
    return freq.days
