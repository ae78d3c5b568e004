"""Tests for dosecycle.core.tracker_service — end-to-end engine behaviour.

Real AdherenceStore / PreferencesStore / ReminderSynchronizer on top of the
in-memory fakes from conftest.
"""

import pytest
from datetime import date

from dosecycle.core.adherence import AdherenceStore
from dosecycle.core.day_status import DayState
from dosecycle.core.preferences import NOTIFICATION_KEY, PreferencesStore
from dosecycle.core.reminder_sync import SKIN_REMINDER_ID, ReminderSynchronizer
from dosecycle.core.tracker_service import TrackerService
from dosecycle.data.models import DrynessLevel, Frequency, TroubleLevel
from dosecycle.ports.reminder_port import PermissionState

from conftest import SEOUL, seoul

TODAY = date(2024, 3, 1)


def _armed_dates(scheduler):
    return sorted(
        date.fromisoformat(rid.rsplit("_", 1)[1])
        for rid in scheduler.armed
        if rid.startswith("medication_reminder_")
    )


@pytest.fixture
def service(store, scheduler, clock):
    adherence = AdherenceStore(store, TODAY)
    adherence.load()
    preferences = PreferencesStore(store)
    preferences.load()
    return TrackerService(
        adherence, preferences, ReminderSynchronizer(scheduler, SEOUL),
        scheduler, clock, TODAY, lookahead_days=7,
    )


class TestWindow:
    def test_default_window(self, service):
        assert service.window() == [
            date(2024, 3, 1), date(2024, 3, 3), date(2024, 3, 5), date(2024, 3, 7),
        ]

    def test_disabled_by_default_arms_nothing(self, service, scheduler):
        service.reconcile()
        assert scheduler.armed == {}
        assert scheduler.daily == {}


class TestEnableNotifications:
    def test_granted_arms_window_and_skin(self, service, scheduler):
        assert service.enable_notifications() is PermissionState.GRANTED
        assert service.prefs.enabled
        assert _armed_dates(scheduler) == service.window()
        assert SKIN_REMINDER_ID in scheduler.daily

    def test_undetermined_requests_permission(self, service, scheduler):
        scheduler.permission = PermissionState.UNDETERMINED
        assert service.enable_notifications() is PermissionState.GRANTED
        assert ("request_permission",) in scheduler.calls
        assert service.prefs.enabled

    def test_request_refused_leaves_disabled(self, service, scheduler):
        scheduler.permission = PermissionState.UNDETERMINED
        scheduler.grant_on_request = False
        assert service.enable_notifications() is PermissionState.UNDETERMINED
        assert not service.prefs.enabled

    def test_denied_waits_for_grant_on_resume(self, service, scheduler):
        scheduler.permission = PermissionState.DENIED
        assert service.enable_notifications() is PermissionState.DENIED
        assert not service.prefs.enabled
        assert scheduler.armed == {}

        scheduler.permission = PermissionState.GRANTED
        service.recheck_permission()
        assert service.prefs.enabled

    def test_grant_without_prior_request_does_not_enable(self, service, scheduler):
        service.recheck_permission()
        assert not service.prefs.enabled

    def test_request_permission_after_denial(self, service, scheduler):
        scheduler.permission = PermissionState.DENIED
        service.enable_notifications()
        assert service.request_permission() is PermissionState.GRANTED
        assert service.prefs.enabled
        assert _armed_dates(scheduler) == service.window()

    def test_disable_cancels_everything(self, service, scheduler, store):
        service.enable_notifications()
        service.disable_notifications()
        assert scheduler.armed == {}
        assert scheduler.daily == {}
        assert store.data[NOTIFICATION_KEY]["notificationEnabled"] is False


class TestPermissionRevoked:
    def test_recheck_disables_when_revoked(self, service, scheduler):
        service.enable_notifications()
        scheduler.permission = PermissionState.DENIED
        assert service.recheck_permission() is PermissionState.DENIED
        assert not service.prefs.enabled

    def test_reconcile_under_denial_turns_preference_off(self, service, scheduler, store):
        service.enable_notifications()
        scheduler.permission = PermissionState.DENIED
        service.reconcile()
        assert not service.prefs.enabled
        assert store.data[NOTIFICATION_KEY]["notificationEnabled"] is False

    def test_taken_toggle_under_denial_turns_preference_off(self, service, scheduler):
        service.enable_notifications()
        scheduler.permission = PermissionState.DENIED
        service.toggle_taken(TODAY)
        assert not service.prefs.enabled

    def test_skin_setting_under_denial_turns_preference_off(self, service, scheduler):
        service.enable_notifications()
        scheduler.permission = PermissionState.DENIED
        service.set_skin_reminder_time(21, 0)
        assert not service.prefs.enabled
        assert SKIN_REMINDER_ID not in scheduler.daily

    def test_request_permission_rearms_lost_reminders(self, service, scheduler):
        service.enable_notifications()
        scheduler.armed.clear()
        scheduler.daily.clear()
        service.request_permission()
        assert _armed_dates(scheduler) == service.window()
        assert SKIN_REMINDER_ID in scheduler.daily


class TestToggleTaken:
    def test_taken_today_cancels_todays_reminder(self, service, scheduler, clock):
        clock.set(2024, 3, 1, 21, 30)
        service.enable_notifications()
        assert date(2024, 3, 1) in _armed_dates(scheduler)

        assert service.toggle_taken(TODAY) is True
        assert date(2024, 3, 1) not in _armed_dates(scheduler)

        assert service.toggle_taken(TODAY) is False
        assert date(2024, 3, 1) in _armed_dates(scheduler)

    def test_after_reminder_time_nothing_rearmed(self, service, scheduler, clock):
        clock.set(2024, 3, 1, 22, 30)
        service.enable_notifications()
        assert date(2024, 3, 1) not in _armed_dates(scheduler)
        service.toggle_taken(TODAY)
        service.toggle_taken(TODAY)
        assert date(2024, 3, 1) not in _armed_dates(scheduler)

    def test_past_toggle_touches_no_reminder(self, service, scheduler):
        service.enable_notifications()
        scheduler.reset_calls()
        service.toggle_taken(date(2024, 2, 27))
        assert scheduler.calls == []

    def test_can_edit_follows_floor(self, service):
        service.toggle_taken(date(2024, 2, 26))
        assert service.can_edit(date(2024, 2, 26))
        assert not service.can_edit(date(2024, 2, 25))
        assert not service.can_edit(date(2024, 3, 2))


class TestUpdateSchedule:
    def test_denser_schedule_arms_more(self, service, scheduler):
        service.enable_notifications()
        assert service.update_schedule(Frequency.DAILY)
        assert _armed_dates(scheduler) == [date(2024, 3, d) for d in range(1, 8)]

    def test_sparser_schedule_retires_old_dates(self, service, scheduler):
        service.enable_notifications()
        service.update_schedule(Frequency.DAILY)
        service.update_schedule(Frequency.WEEKLY)
        assert _armed_dates(scheduler) == [date(2024, 3, 1)]

    def test_none_cancels_all(self, service, scheduler):
        service.enable_notifications()
        service.update_schedule(Frequency.NONE)
        assert _armed_dates(scheduler) == []
        assert SKIN_REMINDER_ID in scheduler.daily

    def test_invalid_frequency_changes_nothing(self, service, scheduler):
        service.enable_notifications()
        scheduler.reset_calls()
        assert service.update_schedule("fortnightly") is False
        assert scheduler.calls == []

    def test_seed_anchors_on_last_dose(self, service, scheduler):
        service.enable_notifications()
        assert service.seed_schedule(Frequency.EVERY_3_DAYS, date(2024, 2, 28))
        assert _armed_dates(scheduler) == [date(2024, 3, 2), date(2024, 3, 5)]


class TestReminderTimes:
    def test_reminder_time_change_moves_instants(self, service, scheduler):
        service.enable_notifications()
        service.set_reminder_time(7, 30)
        when, _ = scheduler.armed["medication_reminder_2024-03-03"]
        assert when == seoul(2024, 3, 3, 7, 30)

    def test_medication_toggle_off(self, service, scheduler):
        service.enable_notifications()
        service.set_medication_reminder_enabled(False)
        assert _armed_dates(scheduler) == []
        assert SKIN_REMINDER_ID in scheduler.daily

    def test_skin_time_and_toggle(self, service, scheduler):
        service.enable_notifications()
        service.set_skin_reminder_time(20, 0)
        assert scheduler.daily[SKIN_REMINDER_ID][:2] == (20, 0)
        service.set_skin_reminder_enabled(False)
        assert SKIN_REMINDER_ID not in scheduler.daily


class TestRefresh:
    def test_new_day_moves_window(self, service, scheduler, clock):
        service.enable_notifications()
        clock.set(2024, 3, 8, 0, 0, 1)
        service.refresh(date(2024, 3, 8), changed=True)
        assert service.today == date(2024, 3, 8)
        assert date(2024, 3, 13) in _armed_dates(scheduler)


class TestQueries:
    def test_today_status(self, service):
        status = service.today_status()
        assert status.is_dose_day
        assert not status.has_taken_today

    def test_day_cell_with_drinking_warning(self, service):
        service.toggle_conflict_date(date(2024, 3, 4))
        cell = service.day_cell(date(2024, 3, 3))
        assert cell.state is DayState.SCHEDULED
        assert cell.display_status == "drinking_warning1"

    def test_month(self, service):
        service.toggle_taken(TODAY)
        cells = service.month(2024, 3)
        assert len(cells) == 42
        assert next(c for c in cells if c.date == TODAY).state is DayState.TAKEN

    def test_save_skin_record(self, service):
        record = service.save_skin_record(TODAY, TroubleLevel.FEW, DrynessLevel.DRY, "")
        assert record.memo is None
        assert service.adherence.get_skin_record(TODAY) == record
