"""Lobby coordinator: game records and the connection <-> game bookkeeping.

A connection is attached to at most one game. The attachment is claimed
first (conditional on the connection having no game) and the game record is
changed second; when the second step is refused the claim is released, so a
failed create/join leaves no trace.

A game that loses its host, or its last user, is deleted together with its
game-state record and every remaining member is detached from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from lobby.errors import (
    AlreadyInGameError,
    ConnectionNotFoundError,
    GameFullError,
    GameNotJoinableError,
    GameNotReadyError,
    LobbyError,
    NotHostError,
)
from lobby.models import MAX_USERS_IN_GAME, Game, GameStatus, User
from shared.dal import ConditionalCheckFailedError, Table, Update, attr, attribute_exists, attribute_not_exists

if TYPE_CHECKING:
    from lobby.connections import ConnectionRepository
    from shared.dal import RecordStore

logger = structlog.get_logger()

_GAME_EXISTS = attribute_exists("game_id")
_MAX_REMOVE_ATTEMPTS = 5


@dataclass(frozen=True)
class LeaveResult:
    connection_id: str
    game_id: str
    before: Game | None  # the game as it was when the user left
    game: Game | None  # remaining game; None when it was deleted

    @property
    def deleted(self) -> bool:
        return self.game is None

    @property
    def was_host(self) -> bool:
        return self.before is not None and self.before.host_connection_id == self.connection_id

    @property
    def was_started(self) -> bool:
        return self.before is not None and self.before.state == GameStatus.STARTED


class LobbyService:
    def __init__(self, store: RecordStore, connections: ConnectionRepository) -> None:
        self._store = store
        self._connections = connections

    @property
    def connections(self) -> ConnectionRepository:
        return self._connections

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_game_by_game_id(self, game_id: str) -> Game | None:
        item = await self._store.get(Table.GAMES, game_id)
        return Game.model_validate(item) if item is not None else None

    async def get_all_games(self) -> list[Game]:
        return [Game.model_validate(item) for item in await self._store.scan(Table.GAMES)]

    async def get_users_in_game(self, game_id: str) -> list[User] | None:
        game = await self.get_game_by_game_id(game_id)
        return list(game.users) if game is not None else None

    # ------------------------------------------------------------------
    # Create / join / leave
    # ------------------------------------------------------------------

    async def create_game(
        self,
        creator_connection_id: str,
        game_name: str,
        game_type: str,
        game_version: str,
    ) -> Game:
        connection = await self._connections.get_connection(creator_connection_id)
        if connection is None:
            raise ConnectionNotFoundError
        game = Game(
            game_id=uuid4().hex,
            game_name=game_name,
            game_type=game_type,
            game_version=game_version,
            creator_connection_id=creator_connection_id,
            users=[connection.to_user()],
        )
        if await self._connections.set_game_id_for_user(creator_connection_id, game.game_id) is None:
            raise AlreadyInGameError
        await self._store.put(Table.GAMES, game.to_item(), condition=attribute_not_exists("game_id"))
        logger.info("game created", game_id=game.game_id, creator=creator_connection_id)
        return game

    async def add_user_to_game(self, game_id: str, connection_id: str) -> Game | None:
        """
        Append a user, only while the game is CREATED and has room.

        Returns None when the game does not exist. Raises GameFullError or
        GameNotJoinableError without mutating ``users``.
        """
        game = await self.get_game_by_game_id(game_id)
        if game is None:
            return None
        if game.has_user(connection_id):
            raise AlreadyInGameError
        connection = await self._connections.get_connection(connection_id)
        if connection is None:
            raise ConnectionNotFoundError

        update = Update().append("users", [connection.to_user().to_item()])
        condition = (
            _GAME_EXISTS & attr("state").eq(GameStatus.CREATED) & attr("users").size().lt(MAX_USERS_IN_GAME)
        )
        try:
            item = await self._store.update(Table.GAMES, game_id, update, condition)
        except ConditionalCheckFailedError:
            current = await self.get_game_by_game_id(game_id)
            if current is None:
                return None
            if current.state != GameStatus.CREATED:
                raise GameNotJoinableError from None
            raise GameFullError from None
        return Game.model_validate(item)

    async def join_game(self, game_id: str, connection_id: str) -> Game | None:
        """Claim the connection for ``game_id`` and add it to the game, or neither."""
        if await self._connections.set_game_id_for_user(connection_id, game_id) is None:
            raise AlreadyInGameError
        try:
            game = await self.add_user_to_game(game_id, connection_id)
        except LobbyError:
            await self._connections.remove_game_id_from_user(connection_id)
            raise
        if game is None:
            await self._connections.remove_game_id_from_user(connection_id)
            return None
        logger.info("user joined game", game_id=game_id, connection_id=connection_id, users=len(game.users))
        return game

    async def remove_user_from_game(self, game_id: str, connection_id: str) -> Game | None:
        """
        Remove a user. Returns the remaining game, or None if it no longer exists.

        Removing the host (index 0) or the last user deletes the game.
        """
        for _ in range(_MAX_REMOVE_ATTEMPTS):
            game = await self.get_game_by_game_id(game_id)
            if game is None:
                return None
            index = next((i for i, user in enumerate(game.users) if user.connection_id == connection_id), None)
            if index is None:
                return game
            if index == 0 or len(game.users) == 1:
                await self.delete_game(game_id)
                return None

            update = Update().remove(f"users[{index}]")
            condition = _GAME_EXISTS & attr(f"users[{index}].connection_id").eq(connection_id)
            try:
                item = await self._store.update(Table.GAMES, game_id, update, condition)
            except ConditionalCheckFailedError:
                # users shifted under us; look again
                logger.debug("user list changed during removal", game_id=game_id, connection_id=connection_id)
                continue
            return Game.model_validate(item)

        logger.error("could not remove user from game", game_id=game_id, connection_id=connection_id)
        return await self.get_game_by_game_id(game_id)

    async def leave_game(self, connection_id: str) -> LeaveResult | None:
        """Detach the connection from its game. None when it was not in one."""
        connection = await self._connections.get_connection(connection_id)
        if connection is None or connection.game_id is None:
            return None
        game_id = connection.game_id
        before = await self.get_game_by_game_id(game_id)

        remaining = await self.remove_user_from_game(game_id, connection_id)
        # no-op when delete_game already detached it
        await self._connections.remove_game_id_from_user(connection_id)

        return LeaveResult(connection_id=connection_id, game_id=game_id, before=before, game=remaining)

    async def delete_game(self, game_id: str) -> Game | None:
        """Delete the game and its game state as a unit, detaching every member."""
        previous = await self._store.delete(Table.GAMES, game_id)
        await self._store.delete(Table.GAME_STATE, game_id)
        if previous is None:
            return None
        game = Game.model_validate(previous)
        for user in game.users:
            await self._connections.remove_game_id_from_user(user.connection_id)
        logger.info("game deleted", game_id=game_id)
        return game

    # ------------------------------------------------------------------
    # Start / load / end
    # ------------------------------------------------------------------

    async def start_game(self, game_id: str, connection_id: str) -> Game | None:
        """CREATED -> STARTED, host only, with a full table."""
        game = await self.get_game_by_game_id(game_id)
        if game is None:
            return None
        if game.host_connection_id != connection_id:
            raise NotHostError
        if game.state != GameStatus.CREATED:
            raise GameNotJoinableError
        if len(game.users) != MAX_USERS_IN_GAME:
            raise GameNotReadyError(len(game.users), MAX_USERS_IN_GAME)

        update = Update().set("state", GameStatus.STARTED)
        condition = (
            _GAME_EXISTS
            & attr("state").eq(GameStatus.CREATED)
            & attr("users").size().eq(MAX_USERS_IN_GAME)
            & attr("users[0].connection_id").eq(connection_id)
        )
        try:
            item = await self._store.update(Table.GAMES, game_id, update, condition)
        except ConditionalCheckFailedError:
            logger.warning("game start rejected", game_id=game_id)
            raise GameNotJoinableError from None
        logger.info("game started", game_id=game_id)
        return Game.model_validate(item)

    async def increment_game_loaded_count(self, game_id: str, connection_id: str) -> Game | None:
        """Count a member's load signal once. None when refused (not started, repeat, or full)."""
        update = Update().add("game_loaded_count", 1).append("loaded_connection_ids", [connection_id])
        condition = (
            _GAME_EXISTS
            & attr("state").eq(GameStatus.STARTED)
            & attr("game_loaded_count").lt(MAX_USERS_IN_GAME)
            & ~attr("loaded_connection_ids").contains(connection_id)
        )
        try:
            item = await self._store.update(Table.GAMES, game_id, update, condition)
        except ConditionalCheckFailedError:
            logger.info("game load signal ignored", game_id=game_id, connection_id=connection_id)
            return None
        return Game.model_validate(item)

    async def end_game(self, game_id: str) -> Game | None:
        update = Update().set("state", GameStatus.ENDED)
        condition = _GAME_EXISTS & attr("state").eq(GameStatus.STARTED)
        try:
            item = await self._store.update(Table.GAMES, game_id, update, condition)
        except ConditionalCheckFailedError:
            return None
        logger.info("game ended", game_id=game_id)
        return Game.model_validate(item)
