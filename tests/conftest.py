"""Shared test fixtures and configuration.

Sets up fake environment variables so dosecycle.config doesn't sys.exit(),
and provides in-memory fakes for the storage, scheduler, clock and timer
ports.
"""

import os

# Patch env vars BEFORE any dosecycle imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("OWNER_USER_ID", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Asia/Seoul")

import copy
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from dosecycle.ports.reminder_port import PermissionState, ReminderSchedulerError
from dosecycle.ports.storage_port import StorageError

SEOUL = ZoneInfo("Asia/Seoul")


class FakeStore:
    """Dict-backed KeyValuePort. Set fail_reads / fail_writes to simulate outages."""

    def __init__(self, data=None):
        self.data = dict(data or {})
        self.fail_reads = False
        self.fail_writes = False
        self.writes = []

    def get(self, key):
        if self.fail_reads:
            raise StorageError(f"read {key} failed")
        return copy.deepcopy(self.data.get(key))

    def set(self, key, value):
        if self.fail_writes:
            raise StorageError(f"write {key} failed")
        self.writes.append(key)
        self.data[key] = copy.deepcopy(value)


class FakeScheduler:
    """Recording ReminderSchedulerPort.

    `armed` mirrors what a real scheduler would hold; `calls` records every
    command in order. Ids in `fail_ids` raise on schedule_at / cancel.
    """

    def __init__(self, permission=PermissionState.GRANTED):
        self.permission = permission
        self.armed = {}
        self.daily = {}
        self.calls = []
        self.fail_ids = set()
        self.fail_permission = False
        self.grant_on_request = True

    def schedule_at(self, reminder_id, when, payload):
        self.calls.append(("schedule_at", reminder_id, when))
        if reminder_id in self.fail_ids:
            raise ReminderSchedulerError(f"boom {reminder_id}")
        self.armed[reminder_id] = (when, payload)

    def cancel(self, reminder_id):
        self.calls.append(("cancel", reminder_id))
        if reminder_id in self.fail_ids:
            raise ReminderSchedulerError(f"boom {reminder_id}")
        self.armed.pop(reminder_id, None)
        self.daily.pop(reminder_id, None)

    def schedule_repeating_daily(self, reminder_id, hour, minute, payload):
        self.calls.append(("schedule_repeating_daily", reminder_id, hour, minute))
        if reminder_id in self.fail_ids:
            raise ReminderSchedulerError(f"boom {reminder_id}")
        self.daily[reminder_id] = (hour, minute, payload)

    def get_permission_state(self):
        if self.fail_permission:
            raise ReminderSchedulerError("permission lookup failed")
        return self.permission

    def request_permission(self):
        self.calls.append(("request_permission",))
        if self.grant_on_request:
            self.permission = PermissionState.GRANTED
        return self.permission

    def reset_calls(self):
        self.calls.clear()


class FakeClock:
    """Settable ClockPort in Asia/Seoul."""

    def __init__(self, now):
        self.current = now

    def now(self):
        return self.current

    def set(self, *args):
        self.current = datetime(*args, tzinfo=SEOUL)


class FakeHandle:
    def __init__(self, timer, when, callback):
        self.timer = timer
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimer:
    """TimerPort that records arms; tests fire the latest live one by hand."""

    def __init__(self):
        self.handles = []

    def arm(self, when, callback):
        handle = FakeHandle(self, when, callback)
        self.handles.append(handle)
        return handle

    @property
    def live(self):
        return [h for h in self.handles if not h.cancelled]

    def fire(self):
        handle = self.live[-1]
        handle.cancelled = True
        handle.callback()


def seoul(*args):
    return datetime(*args, tzinfo=SEOUL)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def clock():
    return FakeClock(seoul(2024, 3, 1, 9, 0))


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def kv_db(tmp_path):
    """Return a KeyValueDB instance backed by a temp file."""
    from dosecycle.data.db import KeyValueDB
    return KeyValueDB(db_path=str(tmp_path / "test_dosecycle.db"))


@pytest.fixture
def adherence(store):
    """AdherenceStore on an empty FakeStore, today = 2024-03-01."""
    from dosecycle.core.adherence import AdherenceStore
    a = AdherenceStore(store, date(2024, 3, 1))
    a.load()
    return a
