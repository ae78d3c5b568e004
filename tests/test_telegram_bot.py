"""Tests for dosecycle.bot.telegram_bot — Telegram bot handlers.

Handlers run against a real TrackerService on in-memory fakes; Telegram
objects are mocked.
"""

import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from dosecycle.bot.telegram_bot import (
    _parse_day,
    _parse_frequency,
    _parse_hhmm,
    _parse_month,
    _parse_switch,
    cmd_calendar,
    cmd_drink,
    cmd_frequency,
    cmd_reminders,
    cmd_remindertime,
    cmd_skin,
    cmd_start,
    cmd_taken,
    cmd_today,
    render_calendar,
)
from dosecycle.core.adherence import AdherenceStore
from dosecycle.core.preferences import PreferencesStore
from dosecycle.core.reminder_sync import ReminderSynchronizer
from dosecycle.core.tracker_service import TrackerService
from dosecycle.data.models import Frequency, ReminderTime, TroubleLevel
from dosecycle.ports.reminder_port import PermissionState

from conftest import SEOUL

TODAY = date(2024, 3, 1)


def _make_update(user_id=12345):
    """Create a mock Update from the owner (or a stranger)."""
    update = MagicMock()
    update.effective_user.id = user_id
    update.message.reply_text = AsyncMock()
    return update


def _make_context(service, args=None, lifecycle=None):
    context = MagicMock()
    context.args = args or []
    context.bot_data = {"service": service}
    if lifecycle is not None:
        context.bot_data["lifecycle"] = lifecycle
    return context


def _reply(update):
    return update.message.reply_text.call_args.args[0]


@pytest.fixture
def service(store, scheduler, clock):
    adherence = AdherenceStore(store, TODAY)
    adherence.load()
    preferences = PreferencesStore(store)
    preferences.load()
    return TrackerService(
        adherence, preferences, ReminderSynchronizer(scheduler, SEOUL),
        scheduler, clock, TODAY,
    )


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


class TestParsing:
    def test_parse_day(self):
        assert _parse_day("today", TODAY) == TODAY
        assert _parse_day("Yesterday", TODAY) == date(2024, 2, 29)
        assert _parse_day("2024-02-10", TODAY) == date(2024, 2, 10)
        assert _parse_day("10/02", TODAY) is None

    def test_parse_hhmm(self):
        assert _parse_hhmm("07:05") == (7, 5)
        assert _parse_hhmm("25:00") is None

    def test_parse_month(self):
        assert _parse_month("2024-02") == (2024, 2)
        assert _parse_month("Feb") is None

    def test_parse_switch(self):
        assert _parse_switch(["ON"]) is True
        assert _parse_switch(["off"]) is False
        assert _parse_switch(["maybe"]) is None
        assert _parse_switch([]) is None

    def test_parse_frequency(self):
        assert _parse_frequency("Weekly") == "weekly"
        assert _parse_frequency("10") == 10


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_stranger_is_silently_ignored(self, service):
        update = _make_update(user_id=999)
        await cmd_today(update, _make_context(service))
        update.message.reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_owner_activity_recorded(self, service):
        lifecycle = MagicMock()
        update = _make_update()
        await cmd_today(update, _make_context(service, lifecycle=lifecycle))
        lifecycle.record_activity.assert_called_once()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestToday:
    @pytest.mark.asyncio
    async def test_dose_day(self, service):
        update = _make_update()
        await cmd_today(update, _make_context(service))
        assert "dose day" in _reply(update)

    @pytest.mark.asyncio
    async def test_rest_day_with_warning(self, service):
        service.seed_schedule(Frequency.WEEKLY, date(2024, 2, 28))
        service.toggle_conflict_date(date(2024, 3, 3))
        update = _make_update()
        await cmd_today(update, _make_context(service))
        text = _reply(update)
        assert "rest day" in text
        assert "2 day(s) from a drinking day" in text


class TestTaken:
    @pytest.mark.asyncio
    async def test_toggle_today(self, service):
        update = _make_update()
        await cmd_taken(update, _make_context(service))
        assert service.adherence.has_taken(TODAY)
        assert "marked as taken" in _reply(update)

    @pytest.mark.asyncio
    async def test_future_refused(self, service):
        update = _make_update()
        await cmd_taken(update, _make_context(service, ["2024-03-05"]))
        assert not service.adherence.has_taken(date(2024, 3, 5))
        assert "can't be edited" in _reply(update)

    @pytest.mark.asyncio
    async def test_bad_date_shows_usage(self, service):
        update = _make_update()
        await cmd_taken(update, _make_context(service, ["someday"]))
        assert "Usage" in _reply(update)


class TestFrequency:
    @pytest.mark.asyncio
    async def test_preset(self, service):
        update = _make_update()
        await cmd_frequency(update, _make_context(service, ["weekly"]))
        assert service.adherence.schedule.interval_days == 7
        assert "every 7 day(s)" in _reply(update)

    @pytest.mark.asyncio
    async def test_custom_days_with_last_dose(self, service):
        update = _make_update()
        await cmd_frequency(update, _make_context(service, ["5", "2024-02-27"]))
        schedule = service.adherence.schedule
        assert schedule.frequency is Frequency.CUSTOM
        assert schedule.reference_date == date(2024, 2, 27)

    @pytest.mark.asyncio
    async def test_none_pauses(self, service):
        update = _make_update()
        await cmd_frequency(update, _make_context(service, ["none"]))
        assert "paused" in _reply(update)

    @pytest.mark.asyncio
    async def test_unknown(self, service):
        update = _make_update()
        await cmd_frequency(update, _make_context(service, ["hourly"]))
        assert "Unknown frequency" in _reply(update)
        assert service.adherence.schedule.frequency is Frequency.EVERY_2_DAYS


class TestDrinkAndSkin:
    @pytest.mark.asyncio
    async def test_drink_toggles(self, service):
        update = _make_update()
        await cmd_drink(update, _make_context(service, ["2024-03-04"]))
        assert service.adherence.has_conflict(date(2024, 3, 4))

    @pytest.mark.asyncio
    async def test_skin_with_memo(self, service):
        update = _make_update()
        await cmd_skin(update, _make_context(service, ["few", "dry", "a", "bit", "red"]))
        record = service.adherence.get_skin_record(TODAY)
        assert record.trouble is TroubleLevel.FEW
        assert record.memo == "a bit red"

    @pytest.mark.asyncio
    async def test_skin_bad_level(self, service):
        update = _make_update()
        await cmd_skin(update, _make_context(service, ["awful", "dry"]))
        assert "Usage" in _reply(update)
        assert service.adherence.get_skin_record(TODAY) is None

    @pytest.mark.asyncio
    async def test_skin_future_refused(self, service):
        update = _make_update()
        await cmd_skin(update, _make_context(service, ["2024-03-09", "calm", "moist"]))
        assert "can't be edited" in _reply(update)


class TestCalendar:
    @pytest.mark.asyncio
    async def test_current_month(self, service):
        service.toggle_taken(TODAY)
        update = _make_update()
        await cmd_calendar(update, _make_context(service))
        text = _reply(update)
        assert text.startswith("March 2024")
        assert " 1✅" in text
        assert "Doses taken this month: 1" in text

    def test_render_marks_out_of_month_cells(self, service):
        text = render_calendar(service.month(2024, 3), 2024, 3, 0)
        week_rows = text.splitlines()[2:8]
        assert len(week_rows) == 6
        assert week_rows[0].startswith("  ·  ")


class TestReminders:
    @pytest.mark.asyncio
    async def test_on(self, service, scheduler):
        update = _make_update()
        await cmd_reminders(update, _make_context(service, ["on"]))
        assert service.prefs.enabled
        assert "turned on" in _reply(update)
        assert scheduler.armed

    @pytest.mark.asyncio
    async def test_on_when_blocked(self, service, scheduler):
        scheduler.permission = PermissionState.DENIED
        update = _make_update()
        await cmd_reminders(update, _make_context(service, ["on"]))
        assert not service.prefs.enabled
        assert "/start" in _reply(update)

    @pytest.mark.asyncio
    async def test_start_after_block_enables(self, service, scheduler):
        scheduler.permission = PermissionState.DENIED
        await cmd_reminders(_make_update(), _make_context(service, ["on"]))
        await cmd_start(_make_update(), _make_context(service))
        assert service.prefs.enabled

    @pytest.mark.asyncio
    async def test_show_settings(self, service):
        update = _make_update()
        await cmd_reminders(update, _make_context(service))
        assert "Medication reminder: on at 22:00" in _reply(update)

    @pytest.mark.asyncio
    async def test_remindertime(self, service):
        update = _make_update()
        await cmd_remindertime(update, _make_context(service, ["20:15"]))
        assert service.prefs.reminder_time == ReminderTime(20, 15)

    @pytest.mark.asyncio
    async def test_remindertime_invalid(self, service):
        update = _make_update()
        await cmd_remindertime(update, _make_context(service, ["8pm"]))
        assert "Usage" in _reply(update)
