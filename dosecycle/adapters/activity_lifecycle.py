"""Activity-based lifecycle signal source.

A chat bot has no foreground/background notion, so the owner's activity
stands in for it: the first interaction after an idle gap (or the first
since the process started) counts as coming back to the app. That
interaction emits "went background" followed by "became active".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from dosecycle.ports.clock_port import ClockPort

logger = logging.getLogger(__name__)


class ActivityLifecycle:
    def __init__(self, clock: ClockPort, idle_after: timedelta) -> None:
        self._clock = clock
        self._idle_after = idle_after
        self._last_seen: datetime | None = None
        self._on_background: list[Callable[[], None]] = []
        self._on_active: list[Callable[[], None]] = []

    def subscribe(
        self,
        on_became_active: Callable[[], None],
        on_went_background: Callable[[], None] | None = None,
    ) -> None:
        self._on_active.append(on_became_active)
        if on_went_background is not None:
            self._on_background.append(on_went_background)

    def record_activity(self) -> bool:
        """Note an interaction. Returns True if it triggered "became active"."""
        now = self._clock.now()
        resumed = self._last_seen is None or now - self._last_seen >= self._idle_after
        self._last_seen = now
        if not resumed:
            return False

        logger.debug("Owner active again after idle gap")
        for listener in self._on_background:
            listener()
        for listener in self._on_active:
            listener()
        return True
