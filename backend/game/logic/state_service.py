"""Game-state service: every round mutation is one conditional update on the state record.

A rejected precondition (record gone, wrong phase, stale observation, bound
exceeded) is logged and reported as ``None`` -- no update occurred. Callers
treat that as a game-state inconsistency and surface it to the player; they
never retry with different data.

Field-level counters (``current_index``, ``interaction_count``) only move
through additive updates so concurrent handlers cannot lose increments.
Whole-round replacement is gated on ``phase`` and ``round_number`` so it
happens once per round transition no matter how many callers race for it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from game.logic.enums import MeldType, RoundPhase
from game.logic.exceptions import GameStateNotFoundError
from game.logic.rng import generate_seed
from game.logic.state import DrawnTile, GameState, PendingDiscard, PlayedTileInteraction, UserHand
from game.logic.wall import DEFAULT_WALL_LENGTH, NUM_PLAYERS, deal_hands, shuffle_wall
from shared.dal import ConditionalCheckFailedError, Table, Update, attr, attribute_exists, attribute_not_exists

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.dal import RecordStore
    from shared.dal.expressions import Condition

logger = structlog.get_logger()

MAX_PLAYERS = NUM_PLAYERS

_STATE_EXISTS = attribute_exists("game_id")
_IN_PROGRESS = attr("phase").eq(RoundPhase.ROUND_IN_PROGRESS)
_NO_PENDING_DISCARD = attr("pending_discard").not_exists()


def _remove_tiles(hand: Sequence[int], tiles: Sequence[int]) -> list[int]:
    remaining = list(hand)
    for tile in tiles:
        remaining.remove(tile)
    return remaining


def _reset_interactions(update: Update) -> Update:
    return update.set("interaction_count", 0).set("played_tile_interactions", []).set("interaction_connection_ids", [])


class GameStateService:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_game_state(self, game_id: str) -> GameState | None:
        item = await self._store.get(Table.GAME_STATE, game_id)
        return GameState.model_validate(item) if item is not None else None

    async def _get_attribute(self, game_id: str, name: str) -> Any | None:  # noqa: ANN401
        item = await self._store.get(Table.GAME_STATE, game_id, [name])
        return item.get(name) if item is not None else None

    async def get_current_tile_index(self, game_id: str) -> int | None:
        return await self._get_attribute(game_id, "current_index")

    async def get_current_dealer(self, game_id: str) -> int | None:
        return await self._get_attribute(game_id, "dealer")

    async def get_current_wind(self, game_id: str) -> int | None:
        return await self._get_attribute(game_id, "current_wind")

    async def get_interaction_count(self, game_id: str) -> int | None:
        return await self._get_attribute(game_id, "interaction_count")

    async def get_played_tile_interactions(self, game_id: str) -> list[PlayedTileInteraction] | None:
        items = await self._get_attribute(game_id, "played_tile_interactions")
        if items is None:
            return None
        return [PlayedTileInteraction.model_validate(item) for item in items]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init_game_state(
        self,
        game_id: str,
        connection_ids: Sequence[str],
        seed: str | None = None,
    ) -> GameState | None:
        """Create the first round's record. Rejected when a record already exists."""
        seed = seed or generate_seed()
        wall = shuffle_wall(seed, round_number=0)
        dealt = deal_hands(wall, connection_ids, dealer=0)
        state = GameState(
            game_id=game_id,
            wall=wall,
            hands=[UserHand(connection_id=cid, hand=dealt.hands[cid]) for cid in connection_ids],
            current_index=dealt.current_index,
            seed=seed,
        )
        try:
            await self._store.put(Table.GAME_STATE, state.to_item(), condition=attribute_not_exists("game_id"))
        except ConditionalCheckFailedError:
            logger.warning("game state already initialized", game_id=game_id)
            return None
        logger.info("game state initialized", game_id=game_id, players=len(connection_ids))
        return state

    async def delete_game_state(self, game_id: str) -> bool:
        previous = await self._store.delete(Table.GAME_STATE, game_id)
        return previous is not None

    async def end_round(self, game_id: str) -> GameState | None:
        """
        ROUND_IN_PROGRESS -> ROUND_ENDED. Only one concurrent caller gets a state back.

        Refused while a discard is still pending: its claims have to be resolved first.
        """
        update = _reset_interactions(Update().set("phase", RoundPhase.ROUND_ENDED))
        return await self._update(game_id, update, _IN_PROGRESS & _NO_PENDING_DISCARD, operation="end_round")

    async def finish_game(self, game_id: str) -> GameState | None:
        update = Update().set("phase", RoundPhase.GAME_ENDED)
        return await self._update(
            game_id, update, attr("phase").ne(RoundPhase.GAME_ENDED), operation="finish_game"
        )

    async def start_new_game_round(
        self,
        game_id: str,
        connection_ids: Sequence[str],
        *,
        is_dealer_changed: bool,
    ) -> GameState | None:
        """
        Replace the round: new wall, new hands, cleared negotiation.

        Only accepted in ROUND_ENDED for the round that was observed, so a
        duplicate or late restart is rejected instead of overwriting a round in
        progress. The incoming dealer is dealt 14 tiles and holds the turn.
        """
        state = await self.get_game_state(game_id)
        if state is None:
            logger.warning("cannot restart round, game state missing", game_id=game_id)
            return None
        if state.phase != RoundPhase.ROUND_ENDED:
            logger.warning("round restart outside ROUND_ENDED", game_id=game_id, phase=state.phase)
            return None

        next_dealer = (state.dealer + 1) % MAX_PLAYERS if is_dealer_changed else state.dealer
        round_number = state.round_number + 1
        wall = shuffle_wall(state.seed or None, round_number=round_number)
        dealt = deal_hands(wall, connection_ids, dealer=next_dealer)

        update = _reset_interactions(
            Update()
            .set("wall", wall)
            .set("hands", [UserHand(connection_id=cid, hand=dealt.hands[cid]).to_item() for cid in connection_ids])
            .set("current_index", dealt.current_index)
            .set("current_turn", next_dealer)
            .set("has_drawn", True)
            .set("pending_discard", None)
            .set("discarded_tiles", [])
            .set("phase", RoundPhase.ROUND_IN_PROGRESS)
            .set("round_number", round_number),
        )
        condition = attr("phase").eq(RoundPhase.ROUND_ENDED) & attr("round_number").eq(state.round_number)
        new_state = await self._update(game_id, update, condition, operation="start_new_game_round")
        if new_state is None:
            return None
        logger.info("new round dealt", game_id=game_id, round_number=round_number, dealer=next_dealer)
        if not is_dealer_changed:
            return new_state
        return await self.change_dealer(game_id)

    async def change_wind(self, game_id: str) -> GameState | None:
        state = await self.get_game_state(game_id)
        if state is None:
            return None
        next_wind = (state.current_wind + 1) % MAX_PLAYERS
        if next_wind >= MAX_PLAYERS:  # pragma: no cover
            logger.error("wind out of range", game_id=game_id, wind=next_wind)
            return None
        update = Update().set("current_wind", next_wind)
        return await self._update(
            game_id, update, attr("current_wind").eq(state.current_wind), operation="change_wind"
        )

    async def change_dealer(self, game_id: str) -> GameState | None:
        """Pass the dealer seat on; a wrap back to seat 0 advances the wind first."""
        state = await self.get_game_state(game_id)
        if state is None:
            return None
        next_dealer = (state.dealer + 1) % MAX_PLAYERS
        if next_dealer >= MAX_PLAYERS:  # pragma: no cover
            logger.error("dealer out of range", game_id=game_id, dealer=next_dealer)
            return None
        if next_dealer == 0 and await self.change_wind(game_id) is None:
            return None
        update = Update().set("dealer", next_dealer)
        return await self._update(game_id, update, attr("dealer").eq(state.dealer), operation="change_dealer")

    # ------------------------------------------------------------------
    # Turn actions
    # ------------------------------------------------------------------

    async def draw_tile(self, game_id: str) -> DrawnTile | None:
        """
        Take the next wall tile.

        Returns None when the wall is exhausted (``current_index`` at 144);
        that is the round-end signal, not an error. Raises
        GameStateNotFoundError when the record does not exist.
        """
        update = Update().add("current_index", 1)
        condition = _STATE_EXISTS & attr("current_index").lt(DEFAULT_WALL_LENGTH)
        try:
            item = await self._store.update(Table.GAME_STATE, game_id, update, condition)
        except ConditionalCheckFailedError:
            current_index = await self.get_current_tile_index(game_id)
            if current_index is None:
                raise GameStateNotFoundError(game_id) from None
            logger.info("wall exhausted", game_id=game_id, current_index=current_index)
            return None
        current_index = item["current_index"]
        return DrawnTile(tile=item["wall"][current_index - 1], current_index=current_index)

    async def claim_draw(self, game_id: str, seat: int) -> GameState | None:
        """Mark that ``seat`` is drawing. Fails unless it is their turn and they have not drawn."""
        update = Update().set("has_drawn", True)
        condition = (
            _IN_PROGRESS & attr("current_turn").eq(seat) & attr("has_drawn").eq(False) & _NO_PENDING_DISCARD  # noqa: FBT003
        )
        return await self._update(game_id, update, condition, operation="claim_draw")

    async def add_tile_to_hand(self, game_id: str, seat: int, tile: int) -> GameState | None:
        update = Update().append(f"hands[{seat}].hand", [tile])
        return await self._update(
            game_id, update, attribute_exists(f"hands[{seat}]") & _IN_PROGRESS, operation="add_tile_to_hand"
        )

    async def play_tile(self, state: GameState, seat: int, tile: int) -> GameState | None:
        """Move ``tile`` from the turn owner's hand to the table as the pending discard."""
        hand = state.hands[seat].hand
        discard = PendingDiscard(connection_id=state.hands[seat].connection_id, seat=seat, tile=tile)
        update = _reset_interactions(
            Update().set(f"hands[{seat}].hand", _remove_tiles(hand, [tile])).set("pending_discard", discard.to_item()),
        )
        condition = (
            _IN_PROGRESS
            & attr("round_number").eq(state.round_number)
            & attr("current_turn").eq(seat)
            & attr("has_drawn").eq(True)  # noqa: FBT003
            & _NO_PENDING_DISCARD
            & attr(f"hands[{seat}].hand").eq(hand)
        )
        return await self._update(state.game_id, update, condition, operation="play_tile")

    async def self_play_tiles(self, state: GameState, seat: int, tiles: Sequence[int]) -> GameState | None:
        """Reveal a concealed kong or bonus tiles; the player then draws a replacement."""
        hand = state.hands[seat].hand
        update = (
            Update()
            .set(f"hands[{seat}].hand", _remove_tiles(hand, tiles))
            .append(f"hands[{seat}].played_tiles", list(tiles))
            .set("has_drawn", False)
        )
        condition = (
            _IN_PROGRESS
            & attr("round_number").eq(state.round_number)
            & attr("current_turn").eq(seat)
            & _NO_PENDING_DISCARD
            & attr(f"hands[{seat}].hand").eq(hand)
        )
        return await self._update(state.game_id, update, condition, operation="self_play_tiles")

    # ------------------------------------------------------------------
    # Discard negotiation
    # ------------------------------------------------------------------

    async def set_played_tile_interaction(
        self,
        game_id: str,
        connection_id: str,
        played_tiles: Sequence[int],
        meld_type: MeldType | None,
        *,
        skip_interaction: bool,
    ) -> GameState | None:
        """Record one response to the pending discard (additive, safe under concurrency)."""
        interaction = PlayedTileInteraction(
            connection_id=connection_id,
            played_tiles=list(played_tiles),
            meld_type=None if skip_interaction else meld_type,
            skip_interaction=skip_interaction,
        )
        update = (
            Update()
            .add("interaction_count", 1)
            .append("played_tile_interactions", [interaction.to_item()])
            .append("interaction_connection_ids", [connection_id])
        )
        condition = (
            attr("interaction_count").lt(MAX_PLAYERS)
            & attr("pending_discard").exists()
            & ~attr("interaction_connection_ids").contains(connection_id)
        )
        return await self._update(game_id, update, condition, operation="set_played_tile_interaction")

    async def reset_played_tile_interaction(self, game_id: str) -> GameState | None:
        return await self._update(game_id, _reset_interactions(Update()), None, operation="reset_played_tile_interaction")

    async def resolve_discard(self, state: GameState, winner: PlayedTileInteraction | None) -> GameState | None:
        """
        Apply the outcome of a finished negotiation and clear it in the same update.

        With no winning claim the discard stays on the table and the turn
        passes to the discarder's right. Otherwise the claimant takes the
        discard: a WIN claim completes their concealed hand, a meld moves to
        their public pile. After a KONG the claimant draws a replacement.
        """
        discard = state.pending_discard
        if discard is None:
            logger.warning("no pending discard to resolve", game_id=state.game_id)
            return None

        update = _reset_interactions(Update().set("pending_discard", None))
        condition = (
            _IN_PROGRESS
            & attr("round_number").eq(state.round_number)
            & attr("interaction_count").eq(state.interaction_count)
            & attr("pending_discard.tile").eq(discard.tile)
        )

        if winner is None:
            update.append("discarded_tiles", [discard.tile])
            update.set("current_turn", (discard.seat + 1) % state.num_players).set("has_drawn", False)
        else:
            seat = state.seat_of(winner.connection_id)
            if seat is None:
                logger.warning("claimant not seated", game_id=state.game_id, connection_id=winner.connection_id)
                return None
            hand = state.hands[seat].hand
            if winner.meld_type == MeldType.WIN:
                update.set(f"hands[{seat}].hand", [*hand, discard.tile])
            else:
                own_tiles = [tile for tile in winner.played_tiles if tile != discard.tile]
                update.set(f"hands[{seat}].hand", _remove_tiles(hand, own_tiles))
                update.append(f"hands[{seat}].played_tiles", list(winner.played_tiles))
            update.set("current_turn", seat).set("has_drawn", winner.meld_type != MeldType.KONG)
            condition = condition & attr(f"hands[{seat}].hand").eq(hand)

        return await self._update(state.game_id, update, condition, operation="resolve_discard")

    # ------------------------------------------------------------------

    async def _update(
        self,
        game_id: str,
        update: Update,
        condition: Condition | None,
        *,
        operation: str,
    ) -> GameState | None:
        full_condition = _STATE_EXISTS if condition is None else _STATE_EXISTS & condition
        try:
            item = await self._store.update(Table.GAME_STATE, game_id, update, full_condition)
        except ConditionalCheckFailedError:
            logger.warning("game state update rejected", game_id=game_id, operation=operation)
            return None
        return GameState.model_validate(item)
