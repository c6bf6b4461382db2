"""Lobby actions and the connection lifecycle."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

import structlog

from game.messaging.types import Action
from game.session.types import HandlerResult, handled, rejected
from lobby.models import GameStatus, UserStatus

if TYPE_CHECKING:
    from game.logic.state_service import GameStateService
    from game.messaging.types import (
        CreateGamePayload,
        EmptyPayload,
        GameIdPayload,
        SendMessagePayload,
        SetUsernamePayload,
    )
    from game.session.broadcast import Broadcaster
    from game.session.scheduler import RoundScheduler
    from lobby.service import LeaveResult, LobbyService

logger = structlog.get_logger()


class SessionManager:
    def __init__(
        self,
        lobby: LobbyService,
        state_service: GameStateService,
        broadcaster: Broadcaster,
        scheduler: RoundScheduler,
    ) -> None:
        self._lobby = lobby
        self._state_service = state_service
        self._broadcaster = broadcaster
        self._scheduler = scheduler

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def handle_connect(self, connection_id: str) -> None:
        record = await self._lobby.connections.save_connection(connection_id)
        logger.info("client connected", connection_id=connection_id)
        await self._broadcaster.broadcast_user_update(record.to_user(), UserStatus.CONNECTED, exclude=connection_id)

    async def handle_disconnect(self, connection_id: str) -> None:
        """Leave the current game (with its cascade), then drop the connection record."""
        await self._leave(connection_id)
        record = await self._lobby.connections.delete_connection(connection_id)
        logger.info("client disconnected", connection_id=connection_id)
        if record is not None:
            await self._broadcaster.broadcast_user_update(
                record.to_user(), UserStatus.DISCONNECTED, exclude=connection_id
            )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def handle_set_username(self, connection_id: str, payload: SetUsernamePayload) -> HandlerResult:
        record = await self._lobby.connections.set_username(connection_id, payload.username)
        if record is None:
            return rejected(Action.SET_USERNAME, "Connection is not registered", HTTPStatus.NOT_FOUND)
        await self._broadcaster.broadcast_user_update(record.to_user(), UserStatus.UPDATED, exclude=connection_id)
        return handled(
            f"Set username to {record.username}", Action.LOGIN_SUCCESS, {"user": record.to_user().to_wire()}
        )

    async def handle_get_all_users(self, connection_id: str, payload: EmptyPayload) -> HandlerResult:  # noqa: ARG002
        await self._broadcaster.broadcast_connections(connection_id)
        return handled("Sent all users")

    async def handle_send_message(self, connection_id: str, payload: SendMessagePayload) -> HandlerResult:
        username = payload.username
        if username is None:
            record = await self._lobby.connections.get_connection(connection_id)
            username = record.username if record is not None else None
        await self._broadcaster.broadcast_message(connection_id, username, payload.message)
        return handled("Message sent")

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    async def handle_get_all_games(self, connection_id: str, payload: EmptyPayload) -> HandlerResult:  # noqa: ARG002
        await self._broadcaster.broadcast_games(connection_id)
        return handled("Sent all games")

    async def handle_create_game(self, connection_id: str, payload: CreateGamePayload) -> HandlerResult:
        details = payload.game
        game = await self._lobby.create_game(
            connection_id, details.game_name, details.game_type, details.game_version
        )
        await self._broadcaster.broadcast_lobby_game_update(game, GameStatus.CREATED, connection_id)
        return handled("Game created successfully", Action.CREATE_GAME, {"game": game.to_wire()})

    async def handle_join_game(self, connection_id: str, payload: GameIdPayload) -> HandlerResult:
        game = await self._lobby.join_game(payload.game_id, connection_id)
        if game is None:
            return rejected(Action.JOIN_GAME, "Game not found", HTTPStatus.NOT_FOUND, {"game": None})
        user = next(u for u in game.users if u.connection_id == connection_id)
        await self._broadcaster.broadcast_in_game_message(game, user.username, connection_id, joined=True)
        await self._broadcaster.broadcast_in_game_update(game, connection_id)
        await self._broadcaster.broadcast_lobby_game_update(game, game.state, connection_id)
        return handled("Joined game successfully", Action.JOIN_GAME, {"game": game.to_wire()})

    async def handle_leave_game(self, connection_id: str, payload: EmptyPayload) -> HandlerResult:  # noqa: ARG002
        result = await self._leave(connection_id)
        if result is None:
            return rejected(Action.LEAVE_GAME, "You are not in a game")
        return handled(
            "Left game successfully", Action.LEAVE_GAME, {"gameId": result.game_id, "deleted": result.deleted}
        )

    async def handle_start_game(self, connection_id: str, payload: GameIdPayload) -> HandlerResult:
        game = await self._lobby.start_game(payload.game_id, connection_id)
        if game is None:
            return rejected(Action.START_GAME, "Game not found", HTTPStatus.NOT_FOUND)
        await self._broadcaster.broadcast_lobby_game_update(game, GameStatus.STARTED, connection_id)
        return handled("Game started", Action.START_GAME, {"game": game.to_wire()})

    # ------------------------------------------------------------------

    async def _leave(self, connection_id: str) -> LeaveResult | None:
        """
        Detach the connection from its game and tell everyone who should know.

        Losing the host (or the last player) deletes the game. Losing anyone
        from a game in progress ends it, since a round cannot continue short
        of players.
        """
        record = await self._lobby.connections.get_connection(connection_id)
        result = await self._lobby.leave_game(connection_id)
        if result is None:
            return None
        username = record.username if record is not None else None

        if result.game is None:
            self._scheduler.cancel_game(result.game_id)
            if result.before is not None:
                await self._broadcaster.broadcast_lobby_game_update(result.before, GameStatus.DELETED, connection_id)
            logger.info("game removed with its host", game_id=result.game_id, connection_id=connection_id)
            return result

        game = result.game
        if result.was_started:
            self._scheduler.cancel_game(game.game_id)
            await self._state_service.finish_game(game.game_id)
            game = await self._lobby.end_game(game.game_id) or game

        await self._broadcaster.broadcast_in_game_message(game, username, connection_id, joined=False)
        await self._broadcaster.broadcast_in_game_update(game, connection_id)
        await self._broadcaster.broadcast_lobby_game_update(game, game.state, connection_id)
        return result
