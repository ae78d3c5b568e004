"""
DoseCycle — Centralized configuration.

Loads all settings from .env and validates required keys.
Every other module reads configuration through the `settings` singleton.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from dosecycle/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    OWNER_USER_ID: int

    # SQLite key-value store
    DATABASE_PATH: str = "data/dosecycle.db"

    # Local calendar: every "today" and every reminder instant uses this zone
    TIMEZONE: str = "Asia/Seoul"

    # Reminder window
    LOOKAHEAD_DAYS: int = 7

    # Defaults for a fresh install
    DEFAULT_REMINDER_HOUR: int = 22
    DEFAULT_REMINDER_MINUTE: int = 0
    DEFAULT_SKIN_REMINDER_HOUR: int = 21
    DEFAULT_SKIN_REMINDER_MINUTE: int = 0

    # Inactivity gap after which the next interaction counts as "became active"
    IDLE_MINUTES: int = 30

    @field_validator(
        "OWNER_USER_ID",
        "LOOKAHEAD_DAYS",
        "DEFAULT_REMINDER_HOUR",
        "DEFAULT_REMINDER_MINUTE",
        "DEFAULT_SKIN_REMINDER_HOUR",
        "DEFAULT_SKIN_REMINDER_MINUTE",
        "IDLE_MINUTES",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("LOOKAHEAD_DAYS")
    @classmethod
    def check_lookahead(cls, v: int) -> int:
        if v < 1:
            raise ValueError("LOOKAHEAD_DAYS must be at least 1")
        return v


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    owner = os.getenv("OWNER_USER_ID", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not owner.strip().isdigit():
        print("ERROR: OWNER_USER_ID is missing or not numeric in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        OWNER_USER_ID=owner.strip(),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/dosecycle.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Seoul"),
        LOOKAHEAD_DAYS=os.getenv("LOOKAHEAD_DAYS", "7"),
        DEFAULT_REMINDER_HOUR=os.getenv("DEFAULT_REMINDER_HOUR", "22"),
        DEFAULT_REMINDER_MINUTE=os.getenv("DEFAULT_REMINDER_MINUTE", "0"),
        DEFAULT_SKIN_REMINDER_HOUR=os.getenv("DEFAULT_SKIN_REMINDER_HOUR", "21"),
        DEFAULT_SKIN_REMINDER_MINUTE=os.getenv("DEFAULT_SKIN_REMINDER_MINUTE", "0"),
        IDLE_MINUTES=os.getenv("IDLE_MINUTES", "30"),
    )


# Singleton — imported by all other modules as:
#   from dosecycle.config import settings
settings = _load_settings()
