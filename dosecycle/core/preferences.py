"""
DoseCycle — Notification preferences holder.

Loaded once at startup (migrating the legacy `premium_data` record if the
current key has never been written), kept in memory, and echoed to the
key-value store on every change.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from dosecycle.data.models import NotificationPreferences, ReminderTime
from dosecycle.ports.storage_port import StorageError

if TYPE_CHECKING:
    from dosecycle.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)

NOTIFICATION_KEY = "notification_settings"
LEGACY_KEY = "premium_data"


def _parse_time(raw: Any, default: ReminderTime) -> ReminderTime:
    if not isinstance(raw, dict):
        return default
    try:
        return ReminderTime(int(raw["hour"]), int(raw["minute"]))
    except (KeyError, TypeError, ValueError):
        return default


def _parse_bool(raw: Any, default: bool) -> bool:
    return raw if isinstance(raw, bool) else default


def preferences_from_dict(
    data: dict, defaults: NotificationPreferences,
) -> NotificationPreferences:
    """Decode a stored settings record, falling back per field."""
    return NotificationPreferences(
        enabled=_parse_bool(data.get("notificationEnabled"), False),
        reminder_time=_parse_time(data.get("notificationTime"), defaults.reminder_time),
        medication_reminder_enabled=_parse_bool(
            data.get("medicationReminderEnabled"), defaults.medication_reminder_enabled,
        ),
        skin_reminder_enabled=_parse_bool(
            data.get("skinConditionReminderEnabled"), defaults.skin_reminder_enabled,
        ),
        skin_reminder_time=_parse_time(
            data.get("skinConditionReminderTime"), defaults.skin_reminder_time,
        ),
    )


def preferences_to_dict(prefs: NotificationPreferences) -> dict:
    return {
        "notificationEnabled": prefs.enabled,
        "notificationTime": {
            "hour": prefs.reminder_time.hour, "minute": prefs.reminder_time.minute,
        },
        "medicationReminderEnabled": prefs.medication_reminder_enabled,
        "skinConditionReminderEnabled": prefs.skin_reminder_enabled,
        "skinConditionReminderTime": {
            "hour": prefs.skin_reminder_time.hour,
            "minute": prefs.skin_reminder_time.minute,
        },
    }


class PreferencesStore:
    """Holds the current NotificationPreferences and mirrors them to storage."""

    def __init__(
        self,
        store: KeyValuePort,
        defaults: NotificationPreferences | None = None,
    ) -> None:
        self._store = store
        self._defaults = defaults or NotificationPreferences()
        self._prefs = self._defaults

    @property
    def current(self) -> NotificationPreferences:
        return self._prefs

    def load(self) -> NotificationPreferences:
        """Load from the current key, else migrate the legacy record, else defaults."""
        try:
            stored = self._store.get(NOTIFICATION_KEY)
            if isinstance(stored, dict):
                self._prefs = preferences_from_dict(stored, self._defaults)
                return self._prefs

            legacy = self._store.get(LEGACY_KEY)
        except StorageError as exc:
            logger.error("Failed to load notification settings: %s", exc)
            return self._prefs

        if isinstance(legacy, dict):
            self._prefs = preferences_from_dict(legacy, self._defaults)
            logger.info("Migrated notification settings from legacy %r", LEGACY_KEY)
            self._persist()
        return self._prefs

    def _persist(self) -> None:
        try:
            self._store.set(NOTIFICATION_KEY, preferences_to_dict(self._prefs))
        except StorageError as exc:
            logger.error("Failed to persist notification settings: %s", exc)

    def _update(self, **changes: Any) -> NotificationPreferences:
        self._prefs = replace(self._prefs, **changes)
        logger.info("Notification settings changed: %s", changes)
        self._persist()
        return self._prefs

    def set_enabled(self, enabled: bool) -> NotificationPreferences:
        return self._update(enabled=enabled)

    def set_medication_reminder_enabled(self, enabled: bool) -> NotificationPreferences:
        return self._update(medication_reminder_enabled=enabled)

    def set_reminder_time(self, hour: int, minute: int) -> NotificationPreferences:
        return self._update(reminder_time=ReminderTime(hour, minute))

    def set_skin_reminder_enabled(self, enabled: bool) -> NotificationPreferences:
        return self._update(skin_reminder_enabled=enabled)

    def set_skin_reminder_time(self, hour: int, minute: int) -> NotificationPreferences:
        return self._update(skin_reminder_time=ReminderTime(hour, minute))
