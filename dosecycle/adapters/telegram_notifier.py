"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance; reminder payloads are rendered to a short
Markdown message before sending.
"""

from __future__ import annotations

import logging

from telegram import Bot

logger = logging.getLogger(__name__)


def format_reminder(payload: dict) -> str:
    """Render a reminder payload ({"title", "body", ...}) as message text."""
    title = payload.get("title", "Reminder")
    body = payload.get("body", "")
    return f"*{title}*\n{body}" if body else f"*{title}*"


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: int, text: str) -> None:
        await self._bot.send_message(chat_id=user_id, text=text, parse_mode="Markdown")
