"""SQLite database layer: connection management and the record store implementation."""

from shared.db.connection import Database
from shared.db.record_store import SqliteRecordStore

__all__ = [
    "Database",
    "SqliteRecordStore",
]
