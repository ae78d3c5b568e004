"""Storage port — abstract interface for the persistent key-value store.

Core modules depend on this protocol, never on a specific backend.
Values are JSON-compatible Python objects.
"""

from __future__ import annotations

from typing import Any, Protocol


class StorageError(Exception):
    """Raised when the store cannot be read or written."""


class KeyValuePort(Protocol):
    """Abstract key-value store used by core modules."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...
