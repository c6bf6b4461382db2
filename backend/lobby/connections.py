"""Connection records: username and the connection's current game reference."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from lobby.models import ConnectionRecord, User
from shared.dal import ConditionalCheckFailedError, Table, Update, attribute_exists, attribute_not_exists

if TYPE_CHECKING:
    from shared.dal import RecordStore
    from shared.dal.expressions import Condition

logger = structlog.get_logger()

_CONNECTION_EXISTS = attribute_exists("connection_id")


class ConnectionRepository:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def save_connection(self, connection_id: str) -> ConnectionRecord:
        record = ConnectionRecord(connection_id=connection_id)
        await self._store.put(Table.CONNECTIONS, record.to_item())
        return record

    async def delete_connection(self, connection_id: str) -> ConnectionRecord | None:
        previous = await self._store.delete(Table.CONNECTIONS, connection_id)
        return ConnectionRecord.model_validate(previous) if previous is not None else None

    async def get_connection(self, connection_id: str) -> ConnectionRecord | None:
        item = await self._store.get(Table.CONNECTIONS, connection_id)
        return ConnectionRecord.model_validate(item) if item is not None else None

    async def get_all_connections(self) -> list[User]:
        items = await self._store.scan(Table.CONNECTIONS, ["connection_id", "username"])
        return [User.model_validate(item) for item in items]

    async def set_username(self, connection_id: str, username: str) -> ConnectionRecord | None:
        """Set the username of an existing connection. Never creates a record."""
        if not username:
            logger.warning("refusing empty username", connection_id=connection_id)
            return None
        return await self._update(
            connection_id, Update().set("username", username), _CONNECTION_EXISTS, operation="set_username"
        )

    async def set_game_id_for_user(self, connection_id: str, game_id: str) -> ConnectionRecord | None:
        """Attach a game, only if the connection is not attached to one already."""
        return await self._update(
            connection_id,
            Update().set("game_id", game_id),
            _CONNECTION_EXISTS & attribute_not_exists("game_id"),
            operation="set_game_id_for_user",
        )

    async def remove_game_id_from_user(self, connection_id: str) -> ConnectionRecord | None:
        return await self._update(
            connection_id,
            Update().remove("game_id"),
            _CONNECTION_EXISTS & attribute_exists("game_id"),
            operation="remove_game_id_from_user",
        )

    async def _update(
        self,
        connection_id: str,
        update: Update,
        condition: Condition,
        *,
        operation: str,
    ) -> ConnectionRecord | None:
        try:
            item = await self._store.update(Table.CONNECTIONS, connection_id, update, condition)
        except ConditionalCheckFailedError:
            logger.info("connection update rejected", connection_id=connection_id, operation=operation)
            return None
        return ConnectionRecord.model_validate(item)
