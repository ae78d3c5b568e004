"""Notification port — delivers a fired reminder's text to the user.

Scheduler adapters call this when an armed reminder comes due.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract message delivery used by scheduler adapters."""

    async def send_message(self, user_id: int, text: str) -> None: ...
