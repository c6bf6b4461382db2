"""SQLite-backed record store with conditional writes."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import TYPE_CHECKING

import structlog

from shared.dal.errors import ConditionalCheckFailedError
from shared.dal.store import TABLE_KEYS, Item, RecordStore, Table, project

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from shared.dal.expressions import Condition, Update
    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteRecordStore(RecordStore):
    """SQLite implementation of RecordStore.

    Each write runs as read, evaluate condition, apply, write inside one
    ``BEGIN IMMEDIATE`` transaction while holding the store lock, so concurrent
    handlers observe conditional updates as atomic. Additive updates (ADD,
    APPEND) are applied to the value read inside the transaction, never to a
    caller's snapshot.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def get(self, table: Table, key: str, attributes: Sequence[str] | None = None) -> Item | None:
        item = self._read(self._db.connection, table, key)
        if item is None:
            return None
        return project(item, attributes)

    async def put(self, table: Table, item: Item, condition: Condition | None = None) -> None:
        key = item[TABLE_KEYS[table]]

        def _apply(current: Item | None) -> Item | None:
            self._check(table, key, current, condition)
            return dict(item)

        await self._transact(table, key, _apply)

    async def update(
        self,
        table: Table,
        key: str,
        update: Update,
        condition: Condition | None = None,
    ) -> Item:
        def _apply(current: Item | None) -> Item | None:
            self._check(table, key, current, condition)
            base = current if current is not None else {TABLE_KEYS[table]: key}
            return update.apply(base)

        new_item = await self._transact(table, key, _apply)
        if new_item is None:  # pragma: no cover
            raise RuntimeError("update produced no item")
        return new_item

    async def delete(self, table: Table, key: str, condition: Condition | None = None) -> Item | None:
        previous: Item | None = None

        def _apply(current: Item | None) -> Item | None:
            nonlocal previous
            self._check(table, key, current, condition)
            previous = current
            return None

        await self._transact(table, key, _apply)
        return previous

    async def scan(self, table: Table, attributes: Sequence[str] | None = None) -> list[Item]:
        rows = self._db.connection.execute(f"SELECT data FROM {table.value} ORDER BY rowid").fetchall()  # noqa: S608
        return [project(json.loads(row[0]), attributes) for row in rows]

    @staticmethod
    def _check(table: Table, key: str, current: Item | None, condition: Condition | None) -> None:
        if condition is not None and not condition.evaluate(current):
            raise ConditionalCheckFailedError(table.value, key)

    @staticmethod
    def _read(conn: sqlite3.Connection, table: Table, key: str) -> Item | None:
        row = conn.execute(f"SELECT data FROM {table.value} WHERE id = ?", (key,)).fetchone()  # noqa: S608
        return json.loads(row[0]) if row is not None else None

    async def _transact(
        self,
        table: Table,
        key: str,
        apply: Callable[[Item | None], Item | None],
    ) -> Item | None:
        """Run ``apply`` on the current item and persist its result (None deletes)."""
        async with self._lock:
            conn = self._db.connection
            try:
                conn.execute("BEGIN IMMEDIATE")
                new_item = apply(self._read(conn, table, key))
                if new_item is None:
                    conn.execute(f"DELETE FROM {table.value} WHERE id = ?", (key,))  # noqa: S608
                else:
                    conn.execute(
                        f"INSERT INTO {table.value} (id, data) VALUES (?, ?) "  # noqa: S608
                        "ON CONFLICT(id) DO UPDATE SET data = excluded.data",
                        (key, json.dumps(new_item)),
                    )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            return new_item
