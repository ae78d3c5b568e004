"""Day status resolver — what a calendar cell or day view should show.

Composes the schedule, adherence, edit floor and drinking dates into one
status per date. "today" is always passed in; nothing here reads a clock.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from dosecycle.core.cycle import schedule_is_dose_day
from dosecycle.core.warning_window import WarningLevel, warning_level

if TYPE_CHECKING:
    from dosecycle.core.adherence import AdherenceStore
    from dosecycle.data.models import Schedule


class DayState(str, Enum):
    TAKEN = "taken"
    MISSED = "missed"
    DISABLED = "disabled"
    TODAY = "today"
    SCHEDULED = "scheduled"
    REST = "rest"


_WARNING_DISPLAY = {
    WarningLevel.DDAY: "drinking_dday",
    WarningLevel.DAY1: "drinking_warning1",
    WarningLevel.DAY2: "drinking_warning2",
    WarningLevel.DAY3: "drinking_warning3",
    WarningLevel.DAY4: "drinking_warning4",
}


@dataclass(frozen=True)
class DayCell:
    """Resolved status of one date plus its decorations."""

    date: date
    state: DayState
    warning: WarningLevel | None = None
    is_dose_day: bool = False
    is_drinking_day: bool = False
    has_memo: bool = False
    in_month: bool = True
    editable: bool = False

    @property
    def display_status(self) -> str:
        """Calendar colouring: an untaken date in a risk window shows the risk level."""
        if self.warning is not None and self.state is not DayState.TAKEN:
            return _WARNING_DISPLAY[self.warning]
        return self.state.value

    @property
    def is_interactive(self) -> bool:
        """Editable cells inside the shown month can be tapped, rest days included."""
        return self.in_month and self.editable


def can_edit(target: date, today: date, first_taken_date: date | None) -> bool:
    if target > today:
        return False
    if first_taken_date is None:
        return True
    return target >= first_taken_date


def resolve_day_state(
    target: date,
    today: date,
    schedule: Schedule,
    taken_dates: Collection[date],
    first_taken_date: date | None,
) -> DayState:
    """Base status of a date, before any risk overlay."""
    dose_day = schedule_is_dose_day(schedule, target)

    if target < today:
        if not can_edit(target, today, first_taken_date):
            return DayState.DISABLED
        if target in taken_dates:
            return DayState.TAKEN
        return DayState.MISSED if dose_day else DayState.REST

    if target == today:
        return DayState.TAKEN if target in taken_dates else DayState.TODAY

    if target in taken_dates:
        return DayState.TAKEN
    return DayState.SCHEDULED if dose_day else DayState.REST


def resolve_day(
    target: date,
    today: date,
    schedule: Schedule,
    taken_dates: Collection[date],
    first_taken_date: date | None,
    conflict_dates: Collection[date] = (),
    memo_dates: Collection[date] = (),
    month: tuple[int, int] | None = None,
) -> DayCell:
    """Full DayCell for one date.

    When `month` is given as (year, month), dates outside it resolve to
    DISABLED regardless of adherence.
    """
    in_month = month is None or (target.year, target.month) == month
    state = (
        resolve_day_state(target, today, schedule, taken_dates, first_taken_date)
        if in_month else DayState.DISABLED
    )
    return DayCell(
        date=target,
        state=state,
        warning=warning_level(conflict_dates, target),
        is_dose_day=schedule_is_dose_day(schedule, target),
        is_drinking_day=target in conflict_dates,
        has_memo=target in memo_dates,
        in_month=in_month,
        editable=in_month and can_edit(target, today, first_taken_date),
    )


def calendar_dates(year: int, month: int, start_day: int = 0) -> list[date]:
    """The 42 dates (six weeks) of a month grid.

    start_day is 0 for weeks starting on Sunday, 1 for Monday.
    """
    if start_day not in (0, 1):
        raise ValueError(f"start_day must be 0 (Sunday) or 1 (Monday), got {start_day}")
    first = date(year, month, 1)
    # date.weekday(): Monday=0 … Sunday=6
    sunday_based = (first.weekday() + 1) % 7
    lead = (sunday_based - start_day) % 7
    grid_start = first - timedelta(days=lead)
    return [grid_start + timedelta(days=i) for i in range(42)]


def resolve_month(
    adherence: AdherenceStore,
    year: int,
    month: int,
    today: date,
    start_day: int = 0,
) -> list[DayCell]:
    """One DayCell per grid date of the given month."""
    taken = adherence.taken_dates
    conflicts = adherence.conflict_dates
    grid = calendar_dates(year, month, start_day)
    memos = {d for d in grid if adherence.has_memo(d)}
    return [
        resolve_day(
            d, today, adherence.schedule, taken, adherence.first_taken_date,
            conflicts, memos, month=(year, month),
        )
        for d in grid
    ]
