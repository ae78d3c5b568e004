"""Reminder port — abstract interface for the local notification scheduler.

The scheduler offers no "list all entries" query: entries can only be
created (overwriting any entry with the same id) or cancelled by id.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Protocol


class ReminderSchedulerError(Exception):
    """Raised when the scheduler rejects a schedule or cancel command."""


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class ReminderSchedulerPort(Protocol):
    """Abstract notification scheduler used by the Reminder Synchronizer."""

    def schedule_at(self, reminder_id: str, when: datetime, payload: dict) -> None: ...

    def cancel(self, reminder_id: str) -> None: ...

    def schedule_repeating_daily(
        self, reminder_id: str, hour: int, minute: int, payload: dict
    ) -> None: ...

    def get_permission_state(self) -> PermissionState: ...

    def request_permission(self) -> PermissionState: ...
