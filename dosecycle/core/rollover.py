"""
DoseCycle — Day-Rollover Watcher.

Owns the single mutable "today". Two triggers recompute it and then hand
it to the reconcile path:

- a one-shot timer armed for the next local midnight, re-armed every time
  it fires (a chain of deadlines, never a fixed period, so wall-clock
  drift cannot accumulate);
- the host's "became active" signal.

A permission recheck rides on the became-active signal, but only on the
first one after a "went background" signal.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from dosecycle.ports.clock_port import ClockPort, TimerHandle, TimerPort

logger = logging.getLogger(__name__)

# Fire slightly after midnight so the clock has definitely rolled over.
MIDNIGHT_GRACE = timedelta(seconds=1)


def next_midnight(now: datetime) -> datetime:
    """Start of the next local calendar day in now's timezone."""
    tomorrow = now.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time(0, 0), tzinfo=now.tzinfo)


class DayRolloverWatcher:
    """Keeps `today` current and triggers a refresh on every recompute."""

    def __init__(
        self,
        clock: ClockPort,
        timer: TimerPort,
        on_refresh: Callable[[date, bool], None],
        on_foreground: Callable[[], None] | None = None,
    ) -> None:
        self._clock = clock
        self._timer = timer
        self._on_refresh = on_refresh
        self._on_foreground = on_foreground
        self._today = clock.now().date()
        self._handle: TimerHandle | None = None
        self._backgrounded = False

    @property
    def today(self) -> date:
        return self._today

    def start(self) -> None:
        """Initial refresh plus the first midnight timer."""
        self._arm()
        self._refresh(self.recompute())

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def recompute(self) -> bool:
        """Re-read the local date. Returns True if the day changed."""
        current = self._clock.now().date()
        if current == self._today:
            return False
        logger.info("Day rolled over: %s -> %s", self._today, current)
        self._today = current
        return True

    def handle_went_background(self) -> None:
        self._backgrounded = True

    def handle_became_active(self) -> None:
        """Host lifecycle signal: recompute, re-arm, recheck permission once, refresh."""
        edge = self._backgrounded
        self._backgrounded = False

        changed = self.recompute()
        self._arm()
        if edge and self._on_foreground is not None:
            try:
                self._on_foreground()
            except Exception as exc:
                logger.error("Foreground permission recheck failed: %s", exc)
        self._refresh(changed)

    def _on_midnight(self) -> None:
        self._handle = None
        changed = self.recompute()
        self._arm()
        self._refresh(changed)

    def _arm(self) -> None:
        self.stop()
        deadline = next_midnight(self._clock.now()) + MIDNIGHT_GRACE
        self._handle = self._timer.arm(deadline, self._on_midnight)
        logger.debug("Midnight timer armed for %s", deadline.isoformat())

    def _refresh(self, changed: bool) -> None:
        try:
            self._on_refresh(self._today, changed)
        except Exception as exc:
            logger.error("Refresh after day check failed: %s", exc)
