"""In-game actions: loading, drawing, discarding, claims, reveals and wins.

Every action re-reads the game-state record and is checked against it
before any mutation; the state service's conditional updates then reject
whatever changed in between. A rejected update is a state inconsistency and
is reported to the player as such.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from game.logic.claims import select_winning_claim, validate_claim
from game.logic.enums import MeldType, RoundPhase
from game.logic.exceptions import (
    GameStateError,
    GameStateNotFoundError,
    InvalidInteractionError,
    InvalidTileError,
    NotInGameError,
    NotYourTurnError,
    RoundNotInProgressError,
)
from game.logic.tiles import is_bonus, is_valid_meld
from game.messaging.types import Action
from game.session.broadcast import game_snapshot
from game.session.types import HandlerResult, handled, rejected
from lobby.models import MAX_USERS_IN_GAME

if TYPE_CHECKING:
    from game.logic.state import GameState
    from game.logic.state_service import GameStateService
    from game.messaging.types import (
        EmptyPayload,
        PlayedTileInteractionPayload,
        PlayTilePayload,
        SelfPlayTilePayload,
        WinRoundPayload,
    )
    from game.session.broadcast import Broadcaster
    from lobby.service import LobbyService

logger = structlog.get_logger()


class RoundManager:
    def __init__(
        self,
        lobby: LobbyService,
        state_service: GameStateService,
        broadcaster: Broadcaster,
    ) -> None:
        self._lobby = lobby
        self._state_service = state_service
        self._broadcaster = broadcaster

    async def handle_game_page_load(self, connection_id: str, payload: EmptyPayload) -> HandlerResult:  # noqa: ARG002
        """Count the load signal; the last of the four deals the first round."""
        game_id = await self._game_id_of(connection_id)
        game = await self._lobby.increment_game_loaded_count(game_id, connection_id)
        if game is None:
            return rejected(Action.GAME_PAGE_LOAD, "Game is not waiting for players to load")
        if game.game_loaded_count != MAX_USERS_IN_GAME:
            return handled(
                "Waiting for other players", Action.GAME_PAGE_LOAD, {"gameLoadedCount": game.game_loaded_count}
            )

        state = await self._state_service.init_game_state(game_id, game.connection_ids)
        if state is None:
            raise GameStateError("Game state was already initialized")
        await self._broadcaster.broadcast_game_start(state)
        return handled("Game loaded", Action.GAME_PAGE_LOAD, {"gameLoadedCount": game.game_loaded_count})

    async def handle_draw_tile(self, connection_id: str, payload: EmptyPayload) -> HandlerResult:  # noqa: ARG002
        state, seat = await self._seated(connection_id)
        if await self._state_service.claim_draw(state.game_id, seat) is None:
            raise NotYourTurnError("It is not your turn to draw")

        drawn = await self._state_service.draw_tile(state.game_id)
        if drawn is not None and await self._state_service.add_tile_to_hand(state.game_id, seat, drawn.tile) is None:
            raise GameStateError("Drawn tile could not be added to hand")
        # the broadcaster replies, including the exhausted-wall case
        await self._broadcaster.broadcast_draw_tile_to_user(state, connection_id, drawn)
        return handled("Wall exhausted" if drawn is None else "Drew a tile")

    async def handle_play_tile(self, connection_id: str, payload: PlayTilePayload) -> HandlerResult:
        state, seat = await self._seated(connection_id)
        if state.current_turn != seat or not state.has_drawn or state.pending_discard is not None:
            raise NotYourTurnError("It is not your turn to discard")
        if payload.tile not in state.hands[seat].hand:
            raise InvalidTileError("Tile is not in your hand")

        played = await self._state_service.play_tile(state, seat, payload.tile)
        if played is None:
            raise GameStateError("Game state changed before the discard")
        await self._broadcaster.broadcast_played_tile_to_users(played, connection_id, payload.tile)
        return handled("Played tile")

    async def handle_played_tile_interaction(
        self, connection_id: str, payload: PlayedTileInteractionPayload
    ) -> HandlerResult:
        """
        Record a response to the pending discard.

        Responses accumulate additively; the handler whose response is the
        last one expected resolves the negotiation for everyone.
        """
        state, _ = await self._seated(connection_id)
        validate_claim(
            state,
            connection_id,
            payload.played_tiles,
            payload.meld_type,
            skip_interaction=payload.skip_interaction,
        )
        updated = await self._state_service.set_played_tile_interaction(
            state.game_id,
            connection_id,
            payload.played_tiles,
            payload.meld_type,
            skip_interaction=payload.skip_interaction,
        )
        if updated is None:
            raise InvalidInteractionError("Response to the discard was not accepted")

        if updated.interaction_count == updated.num_players - 1:
            await self._resolve_discard(updated)
        return handled(
            "Response recorded",
            Action.PLAYED_TILE_INTERACTION,
            {"interactionCount": updated.interaction_count},
        )

    async def handle_self_play_tile(self, connection_id: str, payload: SelfPlayTilePayload) -> HandlerResult:
        """Reveal a concealed kong or bonus tiles; a replacement draw follows."""
        state, seat = await self._seated(connection_id)
        if state.current_turn != seat or not state.has_drawn or state.pending_discard is not None:
            raise NotYourTurnError("You can only reveal tiles on your turn")
        tiles = payload.played_tiles
        hand = state.hands[seat].hand
        if len(set(tiles)) != len(tiles) or any(tile not in hand for tile in tiles):
            raise InvalidTileError("Tiles are not in your hand")
        if not (all(is_bonus(tile) for tile in tiles) or is_valid_meld(MeldType.KONG, tiles)):
            raise InvalidInteractionError("Only a concealed kong or bonus tiles can be revealed")

        revealed = await self._state_service.self_play_tiles(state, seat, tiles)
        if revealed is None:
            raise GameStateError("Game state changed before the reveal")
        await self._broadcaster.broadcast_self_play_tile(revealed, connection_id, tiles)
        return handled("Revealed tiles")

    async def handle_win_round(self, connection_id: str, payload: WinRoundPayload) -> HandlerResult:
        state, seat = await self._seated(connection_id)
        if state.current_turn != seat or not state.has_drawn:
            raise NotYourTurnError("You can only declare a win on your turn")
        if state.pending_discard is not None:
            raise InvalidInteractionError("Your discard is still waiting for responses")
        if await self._state_service.end_round(state.game_id) is None:
            raise GameStateError("Round has already ended")

        results = payload.hand_point_results.model_dump(mode="json", by_alias=True)
        await self._broadcaster.broadcast_winning_tiles(state, connection_id, results)
        await self._broadcaster.start_new_round_and_send_updates(state.game_id, winner_connection_id=connection_id)
        logger.info("round won", game_id=state.game_id, connection_id=connection_id, seat=seat)
        return handled("Round won")

    async def handle_get_game_state(self, connection_id: str, payload: EmptyPayload) -> HandlerResult:  # noqa: ARG002
        """Full resync for a client that missed broadcasts."""
        state, _ = await self._seated(connection_id, require_in_progress=False)
        snapshot = game_snapshot(state, connection_id)
        snapshot.update(
            {
                "phase": state.phase.value,
                "hasDrawn": state.has_drawn,
                "pendingDiscard": state.pending_discard.to_wire() if state.pending_discard is not None else None,
                "discardedTiles": list(state.discarded_tiles),
            }
        )
        return handled("Sent game state", Action.GET_GAME_STATE, snapshot)

    # ------------------------------------------------------------------

    async def _game_id_of(self, connection_id: str) -> str:
        record = await self._lobby.connections.get_connection(connection_id)
        if record is None or record.game_id is None:
            raise NotInGameError("You are not in a game")
        return record.game_id

    async def _seated(self, connection_id: str, *, require_in_progress: bool = True) -> tuple[GameState, int]:
        game_id = await self._game_id_of(connection_id)
        state = await self._state_service.get_game_state(game_id)
        if state is None:
            raise GameStateNotFoundError(game_id)
        seat = state.seat_of(connection_id)
        if seat is None:
            raise NotInGameError("You are not seated in this game")
        if require_in_progress and state.phase != RoundPhase.ROUND_IN_PROGRESS:
            raise RoundNotInProgressError("The round is not in progress")
        return state, seat

    async def _resolve_discard(self, state: GameState) -> None:
        discard = state.pending_discard
        if discard is None:
            return
        seats = {cid: seat for seat, cid in enumerate(state.connection_ids)}
        winner = select_winning_claim(state.played_tile_interactions, seats, discard.seat, state.num_players)
        resolved = await self._state_service.resolve_discard(state, winner)
        if resolved is None:
            logger.warning("discard negotiation could not be resolved", game_id=state.game_id, tile=discard.tile)
            return
        logger.info(
            "discard resolved",
            game_id=state.game_id,
            tile=discard.tile,
            claimant=winner.connection_id if winner is not None else None,
            meld_type=winner.meld_type if winner is not None else None,
        )
        await self._broadcaster.broadcast_interaction_success(
            resolved,
            winner.connection_id if winner is not None else None,
            list(winner.played_tiles) if winner is not None else [],
            winner.meld_type if winner is not None else None,
            discard.tile,
        )
