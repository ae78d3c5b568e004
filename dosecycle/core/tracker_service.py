"""
DoseCycle — Tracker Service.

UI-agnostic service layer. Every user action that changes adherence,
schedule or notification preferences goes through here, and each one ends
by reconciling the reminder scheduler:

- schedule change      -> retire former dose days, reconcile the new window
- taken toggle         -> single-date fast path
- preference change    -> full reconcile
- reminder-time change -> full reconcile (stale instants are cancelled first)
- day rollover / resume (via DayRolloverWatcher) -> full reconcile

Read-only queries (day status, month grid, today status) are exposed here
too so the host never has to touch the stores directly.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING

from dosecycle.core.cycle import schedule_window
from dosecycle.core.day_status import resolve_day, resolve_month
from dosecycle.ports.reminder_port import PermissionState

if TYPE_CHECKING:
    from dosecycle.core.adherence import AdherenceStore
    from dosecycle.core.day_status import DayCell
    from dosecycle.core.preferences import PreferencesStore
    from dosecycle.core.reminder_sync import ReconcileReport, ReminderSynchronizer
    from dosecycle.data.models import (
        DrynessLevel,
        Frequency,
        NotificationPreferences,
        SkinRecord,
        TodayStatus,
        TroubleLevel,
    )
    from dosecycle.ports.clock_port import ClockPort
    from dosecycle.ports.reminder_port import ReminderSchedulerPort

logger = logging.getLogger(__name__)


class TrackerService:
    """Single owner of all mutations; serializes them onto the reconcile path."""

    def __init__(
        self,
        adherence: AdherenceStore,
        preferences: PreferencesStore,
        synchronizer: ReminderSynchronizer,
        scheduler: ReminderSchedulerPort,
        clock: ClockPort,
        today: date,
        lookahead_days: int = 7,
    ) -> None:
        self._adherence = adherence
        self._preferences = preferences
        self._sync = synchronizer
        self._scheduler = scheduler
        self._clock = clock
        self._today = today
        self._lookahead_days = lookahead_days
        self._awaiting_permission = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def today(self) -> date:
        return self._today

    @property
    def prefs(self) -> NotificationPreferences:
        return self._preferences.current

    @property
    def adherence(self) -> AdherenceStore:
        return self._adherence

    def window(self) -> list[date]:
        """Upcoming dose days the scheduler should hold reminders for."""
        return schedule_window(self._adherence.schedule, self._today, self._lookahead_days)

    def _horizon(self) -> list[date]:
        return [self._today + timedelta(days=i) for i in range(self._lookahead_days)]

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self) -> ReconcileReport:
        report = self._sync.reconcile(
            self.window(), self._adherence.taken_dates, self.prefs, self._clock.now(),
        )
        self._apply_permission(report.permission)
        return report

    def refresh(self, today: date, changed: bool = False) -> ReconcileReport:
        """Called by the DayRolloverWatcher with the freshly computed today."""
        self._today = today
        if changed:
            logger.info("Refreshing reminders for new day %s", today)
        return self.reconcile()

    def _apply_permission(self, permission: PermissionState) -> None:
        if permission is PermissionState.DENIED and self.prefs.enabled:
            logger.warning("Notification permission denied, disabling reminders")
            self._preferences.set_enabled(False)

    def _resync_window(self) -> ReconcileReport:
        window = set(self.window())
        self._sync.retire(d for d in self._horizon() if d not in window)
        return self.reconcile()

    # ------------------------------------------------------------------
    # Adherence actions
    # ------------------------------------------------------------------

    def can_edit(self, day: date) -> bool:
        return self._adherence.can_edit(day, self._today)

    def toggle_taken(self, day: date) -> bool:
        """Flip taken state for `day` and re-sync that date's reminder.

        Edit eligibility is the caller's responsibility (see can_edit).
        """
        taken = self._adherence.toggle_taken(day)
        if day == self._today or day in self.window():
            report = self._sync.sync_date(
                day, self._adherence.is_dose_day(day), taken,
                self.prefs, self._clock.now(),
            )
            self._apply_permission(report.permission)
        return taken

    def update_schedule(self, frequency: Frequency | str | int) -> bool:
        """Change the cadence; the new cycle starts today."""
        if not self._adherence.update_schedule(frequency, self._today):
            return False
        self._resync_window()
        return True

    def seed_schedule(self, frequency: Frequency | str | int, last_dose_date: date) -> bool:
        """First-run setup: anchor the cycle at the user's last dose date."""
        if not self._adherence.seed_schedule(frequency, last_dose_date):
            return False
        self._resync_window()
        return True

    def toggle_conflict_date(self, day: date) -> bool:
        return self._adherence.toggle_conflict_date(day)

    def save_skin_record(
        self,
        day: date,
        trouble: TroubleLevel,
        dryness: DrynessLevel,
        memo: str | None = None,
    ) -> SkinRecord:
        from dosecycle.data.models import SkinRecord

        record = SkinRecord(date=day, trouble=trouble, dryness=dryness, memo=memo or None)
        self._adherence.save_skin_record(record)
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def today_status(self) -> TodayStatus:
        return self._adherence.today_status(self._today)

    def day_cell(self, day: date) -> DayCell:
        a = self._adherence
        return resolve_day(
            day, self._today, a.schedule, a.taken_dates, a.first_taken_date,
            a.conflict_dates, {day} if a.has_memo(day) else set(),
        )

    def month(self, year: int, month: int, start_day: int = 0) -> list[DayCell]:
        return resolve_month(self._adherence, year, month, self._today, start_day)

    # ------------------------------------------------------------------
    # Notification preferences
    # ------------------------------------------------------------------

    def enable_notifications(self) -> PermissionState:
        """Master toggle ON. Returns the permission state that decided it.

        DENIED means the user must grant permission in system settings;
        the next resume with permission granted turns reminders on.
        """
        state = self._permission_state()
        if state is PermissionState.UNDETERMINED:
            try:
                state = self._scheduler.request_permission()
            except Exception as exc:
                logger.error("Permission request failed: %s", exc)
                state = PermissionState.UNDETERMINED

        if state is not PermissionState.GRANTED:
            self._awaiting_permission = True
            logger.info("Reminders not enabled: permission %s", state.value)
            return state

        self._awaiting_permission = False
        self._preferences.set_enabled(True)
        self.reconcile()
        return state

    def disable_notifications(self) -> None:
        self._preferences.set_enabled(False)
        self.reconcile()

    def set_medication_reminder_enabled(self, enabled: bool) -> None:
        self._preferences.set_medication_reminder_enabled(enabled)
        self.reconcile()

    def set_reminder_time(self, hour: int, minute: int) -> None:
        self._preferences.set_reminder_time(hour, minute)
        self.reconcile()

    def set_skin_reminder_enabled(self, enabled: bool) -> None:
        self._preferences.set_skin_reminder_enabled(enabled)
        self._sync_skin()

    def set_skin_reminder_time(self, hour: int, minute: int) -> None:
        self._preferences.set_skin_reminder_time(hour, minute)
        self._sync_skin()

    def _sync_skin(self) -> None:
        report = self._sync.sync_skin_reminder(self.prefs)
        self._apply_permission(report.permission)

    def recheck_permission(self) -> PermissionState:
        """Foreground edge: follow permission changes made while away.

        Revoked -> reminders off. Granted after the user was sent to grant
        it -> reminders on. Anything else leaves the preference alone.
        """
        state = self._permission_state()
        if state is PermissionState.DENIED and self.prefs.enabled:
            logger.info("Permission revoked while away, disabling reminders")
            self._preferences.set_enabled(False)
        elif (
            state is PermissionState.GRANTED
            and not self.prefs.enabled
            and self._awaiting_permission
        ):
            logger.info("Permission granted while away, enabling reminders")
            self._preferences.set_enabled(True)
            self._awaiting_permission = False
        return state

    def request_permission(self) -> PermissionState:
        """Ask the scheduler for permission again, then follow the result."""
        try:
            self._scheduler.request_permission()
        except Exception as exc:
            logger.error("Permission request failed: %s", exc)
        state = self.recheck_permission()
        self._sync.forget()
        self.reconcile()
        return state

    def _permission_state(self) -> PermissionState:
        try:
            return self._scheduler.get_permission_state()
        except Exception as exc:
            logger.error("Permission query failed: %s", exc)
            return PermissionState.UNDETERMINED
