"""Fan-out of outcomes to the connections that should see them.

Every policy builds a ``connection_id -> message`` mapping and hands it to
``fan_out``, which delivers all of them concurrently and returns once every
send has settled. A recipient that cannot be reached is logged and skipped;
it never affects the other recipients or the caller.

The caller's own copy of a broadcast doubles as their direct reply when it is
sent with ``reply_to``: that copy carries ``success: true`` and the handler
then sends nothing else.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from game.logic.enums import RoundPhase
from game.logic.wall import DEFAULT_WALL_LENGTH
from game.messaging.protocol import ConnectionGoneError
from game.messaging.types import Action, build_message, failed_response, success_response

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from game.logic.enums import MeldType
    from game.logic.state import DrawnTile, GameState
    from game.logic.state_service import GameStateService
    from game.session.registry import ConnectionRegistry
    from game.session.scheduler import RoundScheduler
    from lobby.models import Game, GameStatus, User, UserStatus
    from lobby.service import LobbyService

logger = structlog.get_logger()

DEFAULT_SEND_ATTEMPTS = 3
DEFAULT_ROUND_RESTART_DELAY = 5.0


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat()


def game_snapshot(state: GameState, connection_id: str) -> dict[str, Any]:
    """Round view for one player: their own concealed hand and everyone's public piles."""
    own = state.hand_of(connection_id)
    return {
        "gameId": state.game_id,
        "tiles": list(own.hand) if own is not None else [],
        "selfPlayedTiles": state.public_played_tiles(),
        "currentIndex": state.current_index,
        "dealer": state.dealer,
        "wind": state.current_wind,
        "currentTurn": state.current_turn,
        "roundNumber": state.round_number,
    }


class Broadcaster:
    def __init__(
        self,
        registry: ConnectionRegistry,
        lobby: LobbyService,
        state_service: GameStateService,
        scheduler: RoundScheduler,
        *,
        send_attempts: int = DEFAULT_SEND_ATTEMPTS,
        round_restart_delay: float = DEFAULT_ROUND_RESTART_DELAY,
    ) -> None:
        self._registry = registry
        self._lobby = lobby
        self._state_service = state_service
        self._scheduler = scheduler
        self._send_attempts = max(1, send_attempts)
        self._round_restart_delay = round_restart_delay

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def send(self, connection_id: str, message: dict[str, Any]) -> bool:
        """Deliver to one recipient, retrying transient failures. Never raises for transport errors."""
        for attempt in range(1, self._send_attempts + 1):
            try:
                await self._registry.send(message, connection_id)
            except ConnectionGoneError:
                logger.info("recipient gone, message dropped", connection_id=connection_id, action=message["action"])
                return False
            except OSError:
                logger.warning(
                    "send failed", connection_id=connection_id, action=message["action"], attempt=attempt
                )
                continue
            return True
        logger.error("giving up on recipient", connection_id=connection_id, action=message["action"])
        return False

    async def fan_out(self, messages: Mapping[str, dict[str, Any]]) -> set[str]:
        """Send every message concurrently; return the ids that received theirs."""
        if not messages:
            return set()
        recipients = list(messages)
        results = await asyncio.gather(
            *(self.send(cid, messages[cid]) for cid in recipients), return_exceptions=True
        )
        delivered: set[str] = set()
        for cid, result in zip(recipients, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "delivery raised", connection_id=cid, action=messages[cid]["action"], exc_info=result
                )
            elif result:
                delivered.add(cid)
        return delivered

    async def broadcast(
        self,
        connection_ids: Iterable[str],
        message: dict[str, Any],
        *,
        exclude: str | None = None,
        reply_to: str | None = None,
    ) -> set[str]:
        """Send one message to many. ``reply_to`` gets it marked as a successful reply."""
        messages: dict[str, dict[str, Any]] = {cid: message for cid in connection_ids if cid != exclude}
        if reply_to is not None:
            messages[reply_to] = {**message, "success": True}
        return await self.fan_out(messages)

    # ------------------------------------------------------------------
    # Lobby policies
    # ------------------------------------------------------------------

    async def broadcast_games(self, requester: str) -> None:
        games = await self._lobby.get_all_games()
        await self.send(requester, success_response(Action.GET_ALL_GAMES, {"games": [g.to_wire() for g in games]}))

    async def broadcast_connections(self, requester: str) -> None:
        users = await self._lobby.connections.get_all_connections()
        await self.send(requester, success_response(Action.GET_ALL_USERS, {"users": [u.to_wire() for u in users]}))

    async def broadcast_user_update(self, user: User, status: UserStatus, *, exclude: str | None = None) -> None:
        """Tell every connected client about one user, except ``exclude``."""
        users = await self._lobby.connections.get_all_connections()
        message = build_message(Action.USER_UPDATE, {"user": user.to_wire(), "state": status.value})
        await self.broadcast([u.connection_id for u in users], message, exclude=exclude)

    async def broadcast_message(self, sender: str, username: str | None, text: str) -> None:
        users = await self._lobby.connections.get_all_connections()
        message = build_message(Action.SEND_MESSAGE, {"username": username, "message": text, "time": _timestamp()})
        await self.broadcast([u.connection_id for u in users], message, reply_to=sender)

    async def broadcast_game_update(
        self,
        game: Game,
        status: GameStatus,
        actor: str | None,
        connection_ids: Iterable[str] | None = None,
        *,
        send_to_all: bool = False,
    ) -> None:
        """
        Announce a game change.

        Goes to ``connection_ids`` (default: the game's members) without the
        actor, unless ``send_to_all`` is set.
        """
        recipients = game.connection_ids if connection_ids is None else list(connection_ids)
        message = build_message(Action.GAME_UPDATE, {"game": game.to_wire(), "state": status.value})
        await self.broadcast(recipients, message, exclude=None if send_to_all else actor)

    async def broadcast_lobby_game_update(self, game: Game, status: GameStatus, actor: str | None) -> None:
        """A game appeared, changed or vanished: every connected client's lobby list needs it."""
        users = await self._lobby.connections.get_all_connections()
        await self.broadcast_game_update(game, status, actor, [u.connection_id for u in users])

    async def broadcast_in_game_message(self, game: Game, username: str | None, actor: str, *, joined: bool) -> None:
        verb = "joined" if joined else "left"
        text = f"{username or actor} just {verb} the game."
        message = build_message(Action.IN_GAME_MESSAGE, {"gameId": game.game_id, "message": text, "time": _timestamp()})
        await self.broadcast(game.connection_ids, message, exclude=actor)

    async def broadcast_in_game_update(self, game: Game, actor: str) -> None:
        message = build_message(
            Action.IN_GAME_UPDATE, {"gameId": game.game_id, "users": [u.to_wire() for u in game.users]}
        )
        await self.broadcast(game.connection_ids, message, exclude=actor)

    # ------------------------------------------------------------------
    # Round policies
    # ------------------------------------------------------------------

    async def broadcast_game_start(self, state: GameState, *, action: Action = Action.GAME_START) -> set[str]:
        """Each player gets a payload built for them alone."""
        messages = {cid: build_message(action, game_snapshot(state, cid)) for cid in state.connection_ids}
        return await self.fan_out(messages)

    async def broadcast_game_reset(self, game_id: str, round_number: int) -> None:
        """Deal the new round's hands, unless the round moved on since this was scheduled."""
        state = await self._state_service.get_game_state(game_id)
        if state is None or state.round_number != round_number or state.phase != RoundPhase.ROUND_IN_PROGRESS:
            logger.info("skipping stale round reset", game_id=game_id, round_number=round_number)
            return
        await self.broadcast_game_start(state)

    async def broadcast_draw_tile_to_user(self, state: GameState, connection_id: str, drawn: DrawnTile | None) -> None:
        """Reply to the drawer; an exhausted wall ends the round as a draw instead."""
        if drawn is not None:
            await self.send(
                connection_id,
                success_response(Action.DRAW_TILE, {"tile": drawn.tile, "currentIndex": drawn.current_index}),
            )
            return

        current_index = await self._state_service.get_current_tile_index(state.game_id)
        if current_index != DEFAULT_WALL_LENGTH:
            logger.error("draw refused before the wall ran out", game_id=state.game_id, current_index=current_index)
            await self.send(connection_id, failed_response(Action.DRAW_TILE, "Could not draw a tile"))
            return
        if await self._state_service.end_round(state.game_id) is not None:
            await self.broadcast_draw_round(state, connection_id)
            await self.start_new_round_and_send_updates(state.game_id, winner_connection_id=None)
        await self.send(
            connection_id,
            success_response(
                Action.DRAW_TILE, {"tile": None, "currentIndex": DEFAULT_WALL_LENGTH, "wallExhausted": True}
            ),
        )

    async def broadcast_draw_round(self, state: GameState, connection_id: str) -> None:
        message = build_message(Action.DRAW_ROUND, {"gameId": state.game_id, "connectionId": connection_id})
        await self.broadcast(state.connection_ids, message)

    async def broadcast_update_game_state(self, state: GameState) -> None:
        message = build_message(
            Action.UPDATE_GAME_STATE,
            {"gameId": state.game_id, "dealer": state.dealer, "wind": state.current_wind},
        )
        await self.broadcast(state.connection_ids, message)

    async def broadcast_played_tile_to_users(self, state: GameState, connection_id: str, tile: int) -> None:
        message = build_message(Action.PLAY_TILE, {"connectionId": connection_id, "tile": tile})
        await self.broadcast(state.connection_ids, message, reply_to=connection_id)

    async def broadcast_interaction_success(
        self,
        state: GameState,
        connection_id: str | None,
        played_tiles: list[int],
        meld_type: MeldType | None,
        tile: int,
    ) -> None:
        """Announce how a discard negotiation ended. ``connection_id`` is None when nobody claimed."""
        message = build_message(
            Action.INTERACTION_SUCCESS,
            {
                "connectionId": connection_id,
                "playedTiles": played_tiles,
                "meldType": meld_type.value if meld_type is not None else None,
                "skipInteraction": connection_id is None,
                "tile": tile,
                "currentTurn": state.current_turn,
                "selfPlayedTiles": state.public_played_tiles(),
            },
        )
        await self.broadcast(state.connection_ids, message)

    async def broadcast_self_play_tile(self, state: GameState, connection_id: str, played_tiles: list[int]) -> None:
        message = build_message(
            Action.SELF_PLAY_TILE,
            {"connectionId": connection_id, "playedTiles": played_tiles, "selfPlayedTiles": state.public_played_tiles()},
        )
        await self.broadcast(state.connection_ids, message, reply_to=connection_id)

    async def broadcast_winning_tiles(
        self, state: GameState, connection_id: str, hand_point_results: dict[str, Any]
    ) -> None:
        """Reveal the winner's hand to the table; the winner's copy is their reply."""
        own = state.hand_of(connection_id)
        message = build_message(
            Action.WINNING_TILES,
            {
                "connectionId": connection_id,
                "handPointResults": hand_point_results,
                "tiles": list(own.hand) if own is not None else [],
                "playedTiles": list(own.played_tiles) if own is not None else [],
            },
        )
        await self.broadcast(state.connection_ids, message, reply_to=connection_id)

    # ------------------------------------------------------------------
    # Round restart
    # ------------------------------------------------------------------

    async def start_new_round_and_send_updates(self, game_id: str, winner_connection_id: str | None) -> GameState | None:
        """
        Deal the next round and announce it in two stages.

        The dealer/wind update goes out at once; the new hands follow after
        the restart delay as a scheduled continuation. The dealer keeps the
        seat only when they won the round.
        """
        state = await self._state_service.get_game_state(game_id)
        if state is None:
            logger.warning("cannot restart round, game state missing", game_id=game_id)
            return None
        dealer_connection_id = state.hands[state.dealer].connection_id
        is_dealer_changed = winner_connection_id != dealer_connection_id

        new_state = await self._state_service.start_new_game_round(
            game_id, state.connection_ids, is_dealer_changed=is_dealer_changed
        )
        if new_state is None:
            return None
        await self.broadcast_update_game_state(new_state)

        round_number = new_state.round_number
        self._scheduler.schedule(
            game_id,
            self._round_restart_delay,
            lambda: self.broadcast_game_reset(game_id, round_number),
        )
        logger.info(
            "round restart scheduled",
            game_id=game_id,
            round_number=round_number,
            dealer=new_state.dealer,
            wind=new_state.current_wind,
        )
        return new_state
