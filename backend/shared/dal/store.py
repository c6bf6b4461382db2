"""Abstract interface for the key-value record store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.dal.expressions import Condition, Update


class Table(StrEnum):
    CONNECTIONS = "connections"
    GAMES = "games"
    GAME_STATE = "game_state"


TABLE_KEYS: dict[Table, str] = {
    Table.CONNECTIONS: "connection_id",
    Table.GAMES: "game_id",
    Table.GAME_STATE: "game_id",
}

Item = dict[str, Any]


class RecordStore(ABC):
    """One JSON document per key, per table, with conditional writes.

    Every write states an optional precondition. When it does not hold at apply
    time the write raises ConditionalCheckFailedError and leaves the record
    untouched.
    """

    @abstractmethod
    async def get(self, table: Table, key: str, attributes: Sequence[str] | None = None) -> Item | None:
        """Return the item (projected to ``attributes`` when given), or None."""

    @abstractmethod
    async def put(self, table: Table, item: Item, condition: Condition | None = None) -> None:
        """Write the whole item, replacing any existing record."""

    @abstractmethod
    async def update(
        self,
        table: Table,
        key: str,
        update: Update,
        condition: Condition | None = None,
    ) -> Item:
        """Apply ``update`` to the record and return the new item.

        A missing record is treated as ``{key_attribute: key}``, so callers that
        must not create records guard with ``attribute_exists``.
        """

    @abstractmethod
    async def delete(self, table: Table, key: str, condition: Condition | None = None) -> Item | None:
        """Delete the record and return its previous value, or None if absent."""

    @abstractmethod
    async def scan(self, table: Table, attributes: Sequence[str] | None = None) -> list[Item]: ...


def project(item: Item, attributes: Sequence[str] | None) -> Item:
    """Keep only the named top-level attributes of an item."""
    if attributes is None:
        return item
    return {name: item[name] for name in attributes if name in item}
