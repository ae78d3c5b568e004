"""
DoseCycle — Key-Value Database.

Every logical entity (schedule + adherence, conflict dates, skin records,
notification settings) is one JSON record under its own key, so each can
be written independently after a mutation and read back on restart.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from dosecycle.ports.storage_port import StorageError

logger = logging.getLogger(__name__)


class KeyValueDB:
    """SQLite-backed implementation of KeyValuePort."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from dosecycle.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the kv table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key        TEXT PRIMARY KEY,
                    value      TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
        logger.debug("kv table initialized at %s", self._db_path)

    def get(self, key: str) -> Any | None:
        """Return the decoded JSON value stored under key, or None."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM kv WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read {key!r}: {exc}") from exc

        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as exc:
            raise StorageError(f"Corrupt JSON under {key!r}: {exc}") from exc

    def set(self, key: str, value: Any) -> None:
        """Insert or replace the JSON value under key."""
        try:
            encoded = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Value for {key!r} is not JSON-serializable: {exc}") from exc

        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, encoded, datetime.now().isoformat()),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write {key!r}: {exc}") from exc
        logger.debug("kv %r written (%d bytes)", key, len(encoded))

