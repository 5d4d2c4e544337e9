"""Caregate storage layer."""

from caregate.storage.duckdb_store import DuckDBKeyValueStore
from caregate.storage.kv_store import InMemoryKeyValueStore, KeyValueStore, StorageError
from caregate.storage.path_resolver import StoragePathResolver, get_default_resolver

__all__ = [
    "DuckDBKeyValueStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "StorageError",
    "StoragePathResolver",
    "get_default_resolver",
]
