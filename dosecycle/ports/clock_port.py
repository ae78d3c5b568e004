"""Clock port — wall-clock time and one-shot timers.

Injected wherever "now" or a deadline is needed so tests can drive time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol


class ClockPort(Protocol):
    def now(self) -> datetime: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerPort(Protocol):
    def arm(self, when: datetime, callback: Callable[[], None]) -> TimerHandle: ...
