"""Storage package: result repository interface and its SQLite implementation."""

from skilleval.storage.base import ResultRepository, StorageError
from skilleval.storage.sqlite_store import SQLiteResultStore

__all__ = ["ResultRepository", "SQLiteResultStore", "StorageError"]
