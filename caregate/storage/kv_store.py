"""Persisted key-value store interface.

Components persist UTF-8 string documents under keys they own exclusively.
Implementations wrap backend failures in ``StorageError`` so callers can
tolerate them without knowing the backend.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the backing store cannot read or write a key."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class KeyValueStore(ABC):
    """Durable string store partitioned by key."""

    async def initialize(self) -> None:
        """Prepare the backend. Default: nothing to do."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the document stored under ``key``, or None when absent.

        Raises:
            StorageError: If the backend read fails
        """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous document.

        Raises:
            StorageError: If the backend write fails
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    async def close(self) -> None:
        """Release backend resources. Default: nothing to do."""


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, used in lite deployments and tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._data[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the stored documents (for diagnostics)."""
        return dict(self._data)
