from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from game.logic.exceptions import GameRuleError, GameStateError, GameStateNotFoundError
from game.messaging.types import Action, failed_response, parse_client_message
from game.session.types import HandlerResult
from lobby.errors import LobbyError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from game.messaging.protocol import ConnectionProtocol
    from game.session.broadcast import Broadcaster
    from game.session.manager import SessionManager
    from game.session.registry import ConnectionRegistry
    from game.session.round_manager import RoundManager

    Handler = Callable[[str, Any], Awaitable[HandlerResult]]

logger = structlog.get_logger()


def _action_of(raw_message: dict[str, Any]) -> Action:
    """Best-effort action for replying to a message that failed validation."""
    try:
        return Action(raw_message.get("action"))
    except ValueError:
        return Action.ERROR


def _validation_error_text(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


class MessageRouter:
    """
    Routes incoming messages to appropriate handlers.

    Every message gets exactly one direct reply: the handler's own, or a
    failed response built here when the payload is invalid or the handler
    raised. Errors never close the connection.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        round_manager: RoundManager,
        broadcaster: Broadcaster,
        registry: ConnectionRegistry,
    ) -> None:
        self._session_manager = session_manager
        self._round_manager = round_manager
        self._broadcaster = broadcaster
        self._registry = registry
        self._handlers: dict[Action, Handler] = {
            Action.SET_USERNAME: session_manager.handle_set_username,
            Action.GET_ALL_USERS: session_manager.handle_get_all_users,
            Action.CREATE_GAME: session_manager.handle_create_game,
            Action.GET_ALL_GAMES: session_manager.handle_get_all_games,
            Action.SEND_MESSAGE: session_manager.handle_send_message,
            Action.JOIN_GAME: session_manager.handle_join_game,
            Action.LEAVE_GAME: session_manager.handle_leave_game,
            Action.START_GAME: session_manager.handle_start_game,
            Action.GAME_PAGE_LOAD: round_manager.handle_game_page_load,
            Action.DRAW_TILE: round_manager.handle_draw_tile,
            Action.PLAY_TILE: round_manager.handle_play_tile,
            Action.PLAYED_TILE_INTERACTION: round_manager.handle_played_tile_interaction,
            Action.SELF_PLAY_TILE: round_manager.handle_self_play_tile,
            Action.WIN_ROUND: round_manager.handle_win_round,
            Action.GET_GAME_STATE: round_manager.handle_get_game_state,
        }

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> HandlerResult:
        connection_id = connection.connection_id
        try:
            message = parse_client_message(raw_message)
        except ValidationError as e:
            error = _validation_error_text(e)
            logger.warning("invalid message", connection_id=connection_id, error=error)
            result = HandlerResult(
                status=HTTPStatus.BAD_REQUEST,
                message=error,
                reply=failed_response(_action_of(raw_message), error),
            )
            await self._reply(connection_id, result)
            return result

        action = message.action
        with structlog.contextvars.bound_contextvars(connection_id=connection_id, action=action.value):
            result = await self._dispatch(connection_id, action, message.payload)
            await self._reply(connection_id, result)
        return result

    async def _dispatch(self, connection_id: str, action: Action, payload: Any) -> HandlerResult:  # noqa: ANN401
        handler = self._handlers[action]
        try:
            result = await handler(connection_id, payload)
        except (LobbyError, GameRuleError) as e:
            logger.info("action rejected", error=str(e))
            return self._failed(action, HTTPStatus.CONFLICT, str(e))
        except GameStateNotFoundError as e:
            logger.warning("game state missing", error=str(e))
            return self._failed(action, HTTPStatus.NOT_FOUND, str(e))
        except GameStateError as e:
            logger.warning("game state inconsistency", error=str(e))
            return self._failed(action, HTTPStatus.CONFLICT, str(e))
        except Exception:
            logger.exception("unexpected error while handling action")
            return self._failed(action, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error")

        if result.ok:
            logger.debug("action handled", status=result.status, message=result.message)
        else:
            logger.info("action refused", status=result.status, message=result.message)
        return result

    @staticmethod
    def _failed(action: Action, status: int, error: str) -> HandlerResult:
        return HandlerResult(status=status, message=error, reply=failed_response(action, error))

    async def _reply(self, connection_id: str, result: HandlerResult) -> None:
        if result.reply is not None:
            await self._broadcaster.send(connection_id, result.reply)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._registry.register(connection)
        with structlog.contextvars.bound_contextvars(connection_id=connection.connection_id):
            await self._session_manager.handle_connect(connection.connection_id)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        self._registry.unregister(connection.connection_id)
        with structlog.contextvars.bound_contextvars(connection_id=connection.connection_id):
            await self._session_manager.handle_disconnect(connection.connection_id)
