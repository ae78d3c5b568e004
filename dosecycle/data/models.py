"""
DoseCycle — Data Models.

Plain dataclasses and enums shared by the core, the storage layer and the
bot. Calendar dates are `datetime.date` objects everywhere in memory and
ISO strings (YYYY-MM-DD) only at the storage and chat boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum


class Frequency(str, Enum):
    """Supported dosing cadences plus the "no active cycle" sentinel."""

    DAILY = "daily"
    EVERY_2_DAYS = "every2days"
    EVERY_3_DAYS = "every3days"
    WEEKLY = "weekly"
    CUSTOM = "custom"
    NONE = "none"

    @property
    def days(self) -> int | None:
        """Interval in days, or None for CUSTOM (stored separately) and NONE."""
        return _FREQUENCY_DAYS.get(self)

    @classmethod
    def from_days(cls, interval_days: int) -> Frequency:
        for freq, days in _FREQUENCY_DAYS.items():
            if days == interval_days:
                return freq
        return cls.CUSTOM


_FREQUENCY_DAYS = {
    Frequency.DAILY: 1,
    Frequency.EVERY_2_DAYS: 2,
    Frequency.EVERY_3_DAYS: 3,
    Frequency.WEEKLY: 7,
}


@dataclass(frozen=True)
class Schedule:
    """The dosing cycle: dose days fall every `interval_days` from `reference_date`.

    `interval_days` is None when the cycle is inactive (Frequency.NONE).
    """

    frequency: Frequency
    interval_days: int | None
    reference_date: date

    @property
    def is_active(self) -> bool:
        return self.interval_days is not None


@dataclass(frozen=True)
class TodayStatus:
    is_dose_day: bool
    has_taken_today: bool


class TroubleLevel(str, Enum):
    CALM = "calm"
    FEW = "few"
    SEVERE = "severe"


class DrynessLevel(str, Enum):
    MOIST = "moist"
    NORMAL = "normal"
    DRY = "dry"


@dataclass(frozen=True)
class SkinRecord:
    """One day's skin condition log. At most one per date; saved wholesale."""

    date: date
    trouble: TroubleLevel
    dryness: DrynessLevel
    memo: str | None = None


@dataclass(frozen=True)
class ReminderTime:
    """Local wall-clock time of day for a reminder."""

    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ValueError(f"Hour/minute out of range: {self.hour}:{self.minute}")

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class NotificationPreferences:
    """User notification settings, held in memory and echoed to storage."""

    enabled: bool = False
    reminder_time: ReminderTime = ReminderTime(22, 0)
    medication_reminder_enabled: bool = True
    skin_reminder_enabled: bool = True
    skin_reminder_time: ReminderTime = ReminderTime(21, 0)
