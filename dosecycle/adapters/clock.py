"""System clock and JobQueue-backed one-shot timer (ClockPort / TimerPort)."""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from telegram.ext import ContextTypes, JobQueue

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall-clock time in the configured local timezone."""

    def __init__(self, tz: tzinfo) -> None:
        self._tz = tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class _JobHandle:
    def __init__(self, job_queue: JobQueue, name: str) -> None:
        self._job_queue = job_queue
        self._name = name

    def cancel(self) -> None:
        for job in self._job_queue.get_jobs_by_name(self._name):
            job.schedule_removal()


class JobQueueTimer:
    """TimerPort on top of JobQueue.run_once; each arm gets a unique job name."""

    def __init__(self, job_queue: JobQueue, prefix: str = "day_rollover") -> None:
        self._job_queue = job_queue
        self._prefix = prefix

    def arm(self, when: datetime, callback: Callable[[], None]) -> _JobHandle:
        name = f"{self._prefix}@{when.isoformat()}"

        async def _fire(context: ContextTypes.DEFAULT_TYPE) -> None:
            callback()

        self._job_queue.run_once(_fire, when=when, name=name)
        return _JobHandle(self._job_queue, name)
