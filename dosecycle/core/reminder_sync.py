"""
DoseCycle — Reminder Synchronizer.

Brings the external notification scheduler in line with the current
schedule, adherence and notification preferences.

The scheduler cannot list its entries, so every command is keyed by a
deterministic id (a fixed prefix plus the calendar date, or a constant for
the daily skin prompt) and is safe to repeat. On top of that the
synchronizer keeps a ledger of the commands it has issued during this
process: an id it has already armed for the same instant, or already
cancelled, is not sent again. Ids it has not touched this session are
treated as unknown and always get a real command.

This module is provider-agnostic: it depends on ReminderSchedulerPort,
not on a specific scheduler.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, tzinfo
from typing import TYPE_CHECKING

from dosecycle.ports.reminder_port import PermissionState

if TYPE_CHECKING:
    from dosecycle.data.models import NotificationPreferences, ReminderTime
    from dosecycle.ports.reminder_port import ReminderSchedulerPort

logger = logging.getLogger(__name__)

MEDICATION_REMINDER_PREFIX = "medication_reminder_"
SKIN_REMINDER_ID = "skin_condition_reminder"

MEDICATION_TITLE = "Medication reminder"
MEDICATION_BODY = "Did you take your dose today? Log it with /taken."
SKIN_TITLE = "Skin check-in"
SKIN_BODY = "How is your skin today? Log it with /skin."

_UNKNOWN = object()


def medication_reminder_id(day: date) -> str:
    return f"{MEDICATION_REMINDER_PREFIX}{day.isoformat()}"


def firing_instant(day: date, reminder_time: ReminderTime, tz: tzinfo) -> datetime:
    """Local wall-clock instant at which the reminder for `day` fires."""
    return datetime.combine(day, time(reminder_time.hour, reminder_time.minute), tzinfo=tz)


@dataclass
class ReconcileReport:
    """What one synchronization pass did, by calendar date."""

    scheduled: list[date] = field(default_factory=list)
    cancelled: list[date] = field(default_factory=list)
    suppressed: list[date] = field(default_factory=list)
    failed: list[date] = field(default_factory=list)
    skin_scheduled: bool = False
    skin_cancelled: bool = False
    permission: PermissionState = PermissionState.UNDETERMINED
    commands: int = 0


class ReminderSynchronizer:
    """Idempotent reconciliation against a ReminderSchedulerPort."""

    def __init__(self, scheduler: ReminderSchedulerPort, tz: tzinfo) -> None:
        self._scheduler = scheduler
        self._tz = tz
        # reminder id -> armed instant / skin ReminderTime, or None when cancelled
        self._ledger: dict[str, object] = {}

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def reconcile(
        self,
        window: Iterable[date],
        taken_dates: Collection[date],
        prefs: NotificationPreferences,
        now: datetime,
    ) -> ReconcileReport:
        """Arm or cancel the reminder of every dose day in `window`, then the skin prompt.

        Never raises: each date is handled in isolation and failures are
        logged and reported.
        """
        report = ReconcileReport(permission=self._permission())
        allowed = self._medication_allowed(prefs, report.permission)

        for day in window:
            if not allowed:
                self._cancel(day, report)
            else:
                self._sync_one(day, day not in taken_dates, prefs, now, report)

        self._sync_skin(prefs, report)

        if report.commands:
            logger.info(
                "Reconciled: %d scheduled, %d cancelled, %d suppressed, %d failed",
                len(report.scheduled), len(report.cancelled),
                len(report.suppressed), len(report.failed),
            )
        else:
            logger.debug("Reconcile: scheduler already up to date")
        return report

    def sync_date(
        self,
        day: date,
        is_dose_day: bool,
        taken: bool,
        prefs: NotificationPreferences,
        now: datetime,
    ) -> ReconcileReport:
        """Single-date fast path after a taken toggle.

        Cancels on taken; re-arms on untaken if the date is a dose day.
        """
        report = ReconcileReport(permission=self._permission())
        wanted = (
            self._medication_allowed(prefs, report.permission)
            and is_dose_day
            and not taken
        )
        if wanted:
            self._sync_one(day, True, prefs, now, report)
        else:
            self._cancel(day, report)
        return report

    def retire(self, days: Iterable[date]) -> ReconcileReport:
        """Cancel reminders for dates that are no longer dose days."""
        report = ReconcileReport()
        for day in days:
            self._cancel(day, report)
        if report.cancelled:
            logger.info("Retired %d stale reminders", len(report.cancelled))
        return report

    def sync_skin_reminder(self, prefs: NotificationPreferences) -> ReconcileReport:
        """Re-sync only the repeating skin prompt."""
        report = ReconcileReport(permission=self._permission())
        self._sync_skin(prefs, report)
        return report

    def forget(self) -> None:
        """Drop the session ledger so the next pass re-issues every command."""
        self._ledger.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _permission(self) -> PermissionState:
        try:
            return self._scheduler.get_permission_state()
        except Exception as exc:
            logger.error("Permission query failed, assuming undetermined: %s", exc)
            return PermissionState.UNDETERMINED

    @staticmethod
    def _medication_allowed(
        prefs: NotificationPreferences, permission: PermissionState,
    ) -> bool:
        return (
            prefs.enabled
            and prefs.medication_reminder_enabled
            and permission is not PermissionState.DENIED
        )

    def _sync_one(
        self,
        day: date,
        wanted: bool,
        prefs: NotificationPreferences,
        now: datetime,
        report: ReconcileReport,
    ) -> None:
        if not wanted:
            self._cancel(day, report)
            return

        when = firing_instant(day, prefs.reminder_time, self._tz)
        if when <= now:
            # Never fire retroactively; drop anything left armed for this date.
            report.suppressed.append(day)
            logger.debug("Reminder for %s at %s already passed, not scheduling", day, when)
            self._cancel(day, report, record=False)
            return

        self._schedule(day, when, report)

    def _schedule(self, day: date, when: datetime, report: ReconcileReport) -> None:
        reminder_id = medication_reminder_id(day)
        previous = self._ledger.get(reminder_id, _UNKNOWN)
        if previous == when:
            return

        try:
            if isinstance(previous, datetime):
                # Stale instant (reminder time changed): cancel before re-arming.
                self._scheduler.cancel(reminder_id)
                report.commands += 1
            self._scheduler.schedule_at(reminder_id, when, {
                "type": "medication",
                "date": day.isoformat(),
                "title": MEDICATION_TITLE,
                "body": MEDICATION_BODY,
            })
            report.commands += 1
        except Exception as exc:
            self._ledger.pop(reminder_id, None)
            report.failed.append(day)
            logger.error("Failed to schedule reminder for %s: %s", day, exc)
            return

        self._ledger[reminder_id] = when
        report.scheduled.append(day)
        logger.info("Reminder armed for %s at %s", day, when.strftime("%H:%M"))

    def _cancel(self, day: date, report: ReconcileReport, record: bool = True) -> None:
        reminder_id = medication_reminder_id(day)
        if reminder_id in self._ledger and self._ledger[reminder_id] is None:
            return

        try:
            self._scheduler.cancel(reminder_id)
            report.commands += 1
        except Exception as exc:
            self._ledger.pop(reminder_id, None)
            report.failed.append(day)
            logger.error("Failed to cancel reminder for %s: %s", day, exc)
            return

        self._ledger[reminder_id] = None
        if record:
            report.cancelled.append(day)
        logger.debug("Reminder cancelled for %s", day)

    def _sync_skin(self, prefs: NotificationPreferences, report: ReconcileReport) -> None:
        wanted = (
            prefs.enabled
            and prefs.skin_reminder_enabled
            and report.permission is not PermissionState.DENIED
        )
        previous = self._ledger.get(SKIN_REMINDER_ID, _UNKNOWN)
        target = prefs.skin_reminder_time if wanted else None
        if previous is not _UNKNOWN and previous == target:
            return

        try:
            if wanted:
                if previous is not None:
                    self._scheduler.cancel(SKIN_REMINDER_ID)
                    report.commands += 1
                self._scheduler.schedule_repeating_daily(
                    SKIN_REMINDER_ID, target.hour, target.minute,
                    {"type": "skin_condition", "title": SKIN_TITLE, "body": SKIN_BODY},
                )
                report.skin_scheduled = True
            else:
                self._scheduler.cancel(SKIN_REMINDER_ID)
                report.skin_cancelled = True
            report.commands += 1
        except Exception as exc:
            self._ledger.pop(SKIN_REMINDER_ID, None)
            logger.error("Failed to sync skin reminder: %s", exc)
            return

        self._ledger[SKIN_REMINDER_ID] = target
        if wanted:
            logger.info("Daily skin reminder armed at %s", target)
        else:
            logger.info("Daily skin reminder cancelled")
