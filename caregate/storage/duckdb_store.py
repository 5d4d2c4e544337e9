"""Durable key-value store backed by an on-disk DuckDB database."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path

import duckdb

from caregate.storage.kv_store import KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class DuckDBKeyValueStore(KeyValueStore):
    """Key-value store with DuckDB storage.

    Each key maps to one row; writes are upserts so the latest document wins.
    """

    def __init__(self, database_path: str | Path) -> None:
        """Initialize store.

        Args:
            database_path: DuckDB database file (":memory:" for in-memory)
        """
        self.db_path = database_path
        self.conn: duckdb.DuckDBPyConnection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create the documents table."""
        async with self._lock:
            if str(self.db_path) != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            try:
                self.conn = duckdb.connect(str(self.db_path))
                self.conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_documents (
                        key VARCHAR PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP
                    )
                """)
            except duckdb.Error as e:
                raise StorageError(f"Cannot open key-value store at {self.db_path}: {e}") from e

            logger.info(f"Key-value store initialized at {self.db_path}")

    def _require_conn(self) -> duckdb.DuckDBPyConnection:
        if not self.conn:
            raise StorageError("Key-value store not initialized")
        return self.conn

    async def get(self, key: str) -> str | None:
        async with self._lock:
            conn = self._require_conn()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_documents WHERE key = ?", [key]
                ).fetchone()
            except duckdb.Error as e:
                raise StorageError(f"Read failed for '{key}': {e}", key) from e
            return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            conn = self._require_conn()
            try:
                conn.execute(
                    """
                    INSERT INTO kv_documents (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT (key) DO UPDATE
                    SET value = excluded.value, updated_at = excluded.updated_at
                """,
                    [key, value, datetime.now(UTC).replace(tzinfo=None)],
                )
            except duckdb.Error as e:
                raise StorageError(f"Write failed for '{key}': {e}", key) from e

    async def delete(self, key: str) -> None:
        async with self._lock:
            conn = self._require_conn()
            try:
                conn.execute("DELETE FROM kv_documents WHERE key = ?", [key])
            except duckdb.Error as e:
                raise StorageError(f"Delete failed for '{key}': {e}", key) from e

    async def keys(self) -> list[str]:
        """List stored keys."""
        async with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute("SELECT key FROM kv_documents ORDER BY key").fetchall()
            except duckdb.Error as e:
                raise StorageError(f"Key listing failed: {e}") from e
            return [r[0] for r in rows]

    async def close(self) -> None:
        """Close database connection."""
        async with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Key-value store closed")
