"""
DoseCycle — Adherence Store.

Owns the dosing schedule, the set of taken dates, the edit-eligibility
floor, the declared drinking (conflict) dates and the daily skin records.
State lives in memory and is only changed through the explicit operations
below; each mutation is written through to the key-value store right after
it is applied. A failed write is logged and the in-memory change stands.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import TYPE_CHECKING, Any

from dosecycle.core.cycle import resolve_interval, schedule_is_dose_day
from dosecycle.core.day_status import can_edit
from dosecycle.core.warning_window import WarningLevel, warning_level
from dosecycle.data.models import (
    DrynessLevel,
    Frequency,
    Schedule,
    SkinRecord,
    TodayStatus,
    TroubleLevel,
)
from dosecycle.ports.storage_port import StorageError

if TYPE_CHECKING:
    from dosecycle.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)

MEDICATION_KEY = "medication_data"
DRINKING_KEY = "drinking_dates"
SKIN_KEY = "skin_records"

DEFAULT_FREQUENCY = Frequency.EVERY_2_DAYS


def _parse_date(raw: Any) -> date | None:
    if not isinstance(raw, str):
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


def _schedule_from(
    frequency: Frequency | str | int, reference_date: date,
) -> Schedule | None:
    """Build a Schedule from a frequency name/enum or a raw interval.

    Returns None when the input is invalid.
    """
    try:
        if isinstance(frequency, int) and not isinstance(frequency, bool):
            if frequency < 1:
                raise ValueError(f"interval must be >= 1, got {frequency}")
            return Schedule(Frequency.from_days(frequency), frequency, reference_date)
        freq = Frequency(frequency)
        return Schedule(freq, resolve_interval(freq), reference_date)
    except ValueError as exc:
        logger.warning("Rejected schedule input %r: %s", frequency, exc)
        return None


class AdherenceStore:
    """In-memory adherence state mirrored to a KeyValuePort."""

    def __init__(self, store: KeyValuePort, today: date) -> None:
        self._store = store
        self._schedule = Schedule(DEFAULT_FREQUENCY, DEFAULT_FREQUENCY.days, today)
        self._taken: set[date] = set()
        self._first_taken: date | None = None
        self._conflicts: set[date] = set()
        self._skin: dict[date, SkinRecord] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Rebuild state from the store. Missing or corrupt records keep defaults."""
        self._load_medication(self._read(MEDICATION_KEY))
        self._load_conflicts(self._read(DRINKING_KEY))
        self._load_skin(self._read(SKIN_KEY))
        logger.info(
            "Adherence loaded: %s, %d taken, %d drinking dates, %d skin records",
            self._schedule.frequency.value, len(self._taken),
            len(self._conflicts), len(self._skin),
        )

    def _read(self, key: str) -> Any | None:
        try:
            return self._store.get(key)
        except StorageError as exc:
            logger.error("Failed to load %s: %s", key, exc)
            return None

    def _load_medication(self, data: Any) -> None:
        if not isinstance(data, dict):
            return

        raw_schedule = data.get("schedule")
        if isinstance(raw_schedule, dict):
            ref = _parse_date(raw_schedule.get("referenceDate"))
            freq = raw_schedule.get("frequency")
            interval = raw_schedule.get("intervalDays")
            if ref is not None:
                if freq == Frequency.CUSTOM.value and isinstance(interval, int):
                    loaded = _schedule_from(interval, ref)
                else:
                    loaded = _schedule_from(freq, ref) if freq else None
                if loaded is not None:
                    self._schedule = loaded

        taken = data.get("takenDates")
        if isinstance(taken, list):
            self._taken = {d for d in map(_parse_date, taken) if d is not None}
        self._first_taken = _parse_date(data.get("firstTakenDate"))

    def _load_conflicts(self, data: Any) -> None:
        if isinstance(data, list):
            self._conflicts = {d for d in map(_parse_date, data) if d is not None}

    def _load_skin(self, data: Any) -> None:
        if not isinstance(data, list):
            return
        records: dict[date, SkinRecord] = {}
        for item in data:
            if not isinstance(item, dict):
                continue
            day = _parse_date(item.get("date"))
            try:
                record = SkinRecord(
                    date=day,
                    trouble=TroubleLevel(item.get("trouble")),
                    dryness=DrynessLevel(item.get("dryness")),
                    memo=item.get("memo"),
                )
            except ValueError:
                logger.warning("Skipping malformed skin record: %r", item)
                continue
            if day is not None:
                records[day] = record
        self._skin = records

    # ------------------------------------------------------------------
    # Persistence (write-through, best-effort)
    # ------------------------------------------------------------------

    def _write(self, key: str, value: Any) -> None:
        try:
            self._store.set(key, value)
        except StorageError as exc:
            logger.error("Failed to persist %s (keeping in-memory state): %s", key, exc)

    def _persist_medication(self) -> None:
        self._write(MEDICATION_KEY, {
            "schedule": {
                "frequency": self._schedule.frequency.value,
                "intervalDays": self._schedule.interval_days,
                "referenceDate": self._schedule.reference_date.isoformat(),
            },
            "takenDates": sorted(d.isoformat() for d in self._taken),
            "firstTakenDate": (
                self._first_taken.isoformat() if self._first_taken else None
            ),
        })

    def _persist_conflicts(self) -> None:
        self._write(DRINKING_KEY, sorted(d.isoformat() for d in self._conflicts))

    def _persist_skin(self) -> None:
        self._write(SKIN_KEY, [
            {
                "date": r.date.isoformat(),
                "trouble": r.trouble.value,
                "dryness": r.dryness.value,
                "memo": r.memo,
            }
            for r in sorted(self._skin.values(), key=lambda r: r.date)
        ])

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def schedule(self) -> Schedule:
        return self._schedule

    @property
    def taken_dates(self) -> frozenset[date]:
        return frozenset(self._taken)

    @property
    def first_taken_date(self) -> date | None:
        return self._first_taken

    @property
    def conflict_dates(self) -> frozenset[date]:
        return frozenset(self._conflicts)

    def has_taken(self, day: date) -> bool:
        return day in self._taken

    def is_dose_day(self, day: date) -> bool:
        return schedule_is_dose_day(self._schedule, day)

    def today_status(self, today: date) -> TodayStatus:
        return TodayStatus(
            is_dose_day=self.is_dose_day(today),
            has_taken_today=today in self._taken,
        )

    def can_edit(self, day: date, today: date) -> bool:
        """Whether the user may toggle adherence or log skin for `day`.

        Future dates are never editable. Before any dose is logged every
        past date is; afterwards only dates on or after the first taken
        date are. Callers enforce this; the store itself does not.
        """
        return can_edit(day, today, self._first_taken)

    def taken_count_in_month(self, year: int, month: int) -> int:
        last_day = calendar.monthrange(year, month)[1]
        first, last = date(year, month, 1), date(year, month, last_day)
        return sum(1 for d in self._taken if first <= d <= last)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def toggle_taken(self, day: date) -> bool:
        """Flip `day` in the taken set. Returns the new taken state.

        Inserting a date earlier than the current floor lowers the floor.
        Removing a date never raises it again.
        """
        if day in self._taken:
            self._taken.discard(day)
            now_taken = False
        else:
            self._taken.add(day)
            if self._first_taken is None or day < self._first_taken:
                self._first_taken = day
            now_taken = True

        logger.info("Dose on %s marked %s", day, "taken" if now_taken else "not taken")
        self._persist_medication()
        return now_taken

    def update_schedule(
        self, frequency: Frequency | str | int, effective_date: date,
    ) -> bool:
        """Replace the schedule; the cycle restarts on effective_date.

        Accepts a Frequency, its name, or a raw interval in days. Invalid
        input leaves the schedule untouched and returns False.
        """
        new_schedule = _schedule_from(frequency, effective_date)
        if new_schedule is None:
            return False

        self._schedule = new_schedule
        logger.info(
            "Schedule updated: %s (interval=%s) anchored %s",
            new_schedule.frequency.value, new_schedule.interval_days, effective_date,
        )
        self._persist_medication()
        return True

    def seed_schedule(
        self, frequency: Frequency | str | int, last_dose_date: date,
    ) -> bool:
        """Set the initial schedule anchored at the user's last dose date.

        Only first-run setup uses this; later edits go through
        update_schedule and always anchor on the day of the edit.
        """
        return self.update_schedule(frequency, last_dose_date)

    def toggle_conflict_date(self, day: date) -> bool:
        """Declare or retract a drinking day. Returns True if now declared."""
        if day in self._conflicts:
            self._conflicts.discard(day)
            declared = False
        else:
            self._conflicts.add(day)
            declared = True
        logger.info("Drinking day %s %s", day, "declared" if declared else "removed")
        self._persist_conflicts()
        return declared

    def has_conflict(self, day: date) -> bool:
        return day in self._conflicts

    def warning_level(self, day: date) -> WarningLevel | None:
        return warning_level(self._conflicts, day)

    def save_skin_record(self, record: SkinRecord) -> None:
        """Create or overwrite the skin record for record.date."""
        self._skin[record.date] = record
        logger.info(
            "Skin record saved for %s: %s/%s", record.date,
            record.trouble.value, record.dryness.value,
        )
        self._persist_skin()

    def get_skin_record(self, day: date) -> SkinRecord | None:
        return self._skin.get(day)

    def has_memo(self, day: date) -> bool:
        record = self._skin.get(day)
        return bool(record and record.memo and record.memo.strip())
