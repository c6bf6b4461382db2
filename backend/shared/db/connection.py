"""SQLite database connection and schema management."""

import sqlite3
from pathlib import Path

import structlog

from shared.dal.store import Table

logger = structlog.get_logger()

_MEMORY_PATH = ":memory:"

# One JSON document per key. Table names come from the Table enum only.
_SCHEMA_SQL = "\n".join(
    f"CREATE TABLE IF NOT EXISTS {table.value} (id TEXT PRIMARY KEY, data TEXT NOT NULL);" for table in Table
)


class Database:
    """SQLite database wrapper with schema management."""

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the active connection or raise if disconnected."""
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    def connect(self) -> None:
        """Open the database, apply pragmas, and create the schema."""
        if self._path != _MEMORY_PATH:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.executescript(_SCHEMA_SQL)
        logger.info("database connected", path=self._path)

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
