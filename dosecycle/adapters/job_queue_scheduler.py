"""JobQueue reminder scheduler — implements ReminderSchedulerPort.

Each reminder id maps to a named job in python-telegram-bot's JobQueue.
Arming an id first removes any job with that name, so a repeat is an
overwrite. When a job fires, its payload is delivered through the
NotificationPort.

"Permission" on Telegram means the owner has not blocked the bot. It is
granted by /start and flipped to denied when delivery raises Forbidden;
the state is kept in the key-value store so it survives restarts.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, tzinfo
from typing import TYPE_CHECKING

from telegram.error import Forbidden

from dosecycle.adapters.telegram_notifier import format_reminder
from dosecycle.ports.reminder_port import PermissionState, ReminderSchedulerError
from dosecycle.ports.storage_port import StorageError

if TYPE_CHECKING:
    from telegram.ext import ContextTypes, JobQueue

    from dosecycle.ports.notification_port import NotificationPort
    from dosecycle.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)

PERMISSION_KEY = "notification_permission"


class JobQueueReminderScheduler:
    """python-telegram-bot JobQueue implementation of ReminderSchedulerPort."""

    def __init__(
        self,
        job_queue: JobQueue,
        notifier: NotificationPort,
        user_id: int,
        store: KeyValuePort,
        tz: tzinfo,
    ) -> None:
        self._job_queue = job_queue
        self._notifier = notifier
        self._user_id = user_id
        self._store = store
        self._tz = tz

    def _remove(self, reminder_id: str) -> int:
        jobs = self._job_queue.get_jobs_by_name(reminder_id)
        for job in jobs:
            job.schedule_removal()
        return len(jobs)

    def schedule_at(self, reminder_id: str, when: datetime, payload: dict) -> None:
        try:
            self._remove(reminder_id)
            self._job_queue.run_once(
                self._deliver,
                when=when,
                data=payload,
                name=reminder_id,
                chat_id=self._user_id,
            )
        except Exception as exc:
            raise ReminderSchedulerError(f"run_once {reminder_id} failed: {exc}") from exc

    def cancel(self, reminder_id: str) -> None:
        try:
            removed = self._remove(reminder_id)
        except Exception as exc:
            raise ReminderSchedulerError(f"cancel {reminder_id} failed: {exc}") from exc
        if removed:
            logger.debug("Removed %d job(s) named %s", removed, reminder_id)

    def schedule_repeating_daily(
        self, reminder_id: str, hour: int, minute: int, payload: dict
    ) -> None:
        try:
            self._remove(reminder_id)
            self._job_queue.run_daily(
                self._deliver,
                time=time(hour=hour, minute=minute, tzinfo=self._tz),
                data=payload,
                name=reminder_id,
                chat_id=self._user_id,
            )
        except Exception as exc:
            raise ReminderSchedulerError(f"run_daily {reminder_id} failed: {exc}") from exc

    def get_permission_state(self) -> PermissionState:
        try:
            raw = self._store.get(PERMISSION_KEY)
        except StorageError as exc:
            raise ReminderSchedulerError(f"permission lookup failed: {exc}") from exc
        try:
            return PermissionState(raw) if raw else PermissionState.UNDETERMINED
        except ValueError:
            return PermissionState.UNDETERMINED

    def request_permission(self) -> PermissionState:
        """The owner is talking to the bot, so delivery is possible again."""
        self._set_permission(PermissionState.GRANTED)
        return PermissionState.GRANTED

    def _set_permission(self, state: PermissionState) -> None:
        try:
            self._store.set(PERMISSION_KEY, state.value)
        except StorageError as exc:
            logger.error("Failed to persist permission %s: %s", state.value, exc)
        logger.info("Notification permission is now %s", state.value)

    async def _deliver(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        job = context.job
        payload = job.data or {}
        try:
            await self._notifier.send_message(self._user_id, format_reminder(payload))
            logger.info("Reminder %s delivered", job.name)
        except Forbidden as exc:
            logger.warning("Owner blocked the bot, reminder %s not delivered: %s", job.name, exc)
            self._set_permission(PermissionState.DENIED)
        except Exception as exc:
            logger.error("Failed to deliver reminder %s: %s", job.name, exc)
