"""Claim resolution -- pick the winning response to a discard once every player answered.

Priority: WIN > KONG > PONG > CHOW. Among claims of equal priority the
claimant closest to the discarder in turn order wins. Skips never win; when
every response is a skip the discard is left on the table.
"""

from collections.abc import Mapping, Sequence

from game.logic.enums import MeldType
from game.logic.exceptions import InvalidInteractionError
from game.logic.state import GameState, PlayedTileInteraction
from game.logic.tiles import is_valid_meld

# lower value wins
CLAIM_PRIORITY: dict[MeldType, int] = {
    MeldType.WIN: 0,
    MeldType.KONG: 1,
    MeldType.PONG: 2,
    MeldType.CHOW: 3,
}


def select_winning_claim(
    interactions: Sequence[PlayedTileInteraction],
    seats: Mapping[str, int],
    discarder_seat: int,
    num_players: int,
) -> PlayedTileInteraction | None:
    claims = [i for i in interactions if not i.skip_interaction and i.meld_type is not None and i.connection_id in seats]
    if not claims:
        return None

    def _sort_key(claim: PlayedTileInteraction) -> tuple[int, int]:
        distance = (seats[claim.connection_id] - discarder_seat) % num_players
        return (CLAIM_PRIORITY[claim.meld_type], distance)  # type: ignore[index]

    return min(claims, key=_sort_key)


def validate_claim(
    state: GameState,
    connection_id: str,
    played_tiles: Sequence[int],
    meld_type: MeldType | None,
    *,
    skip_interaction: bool,
) -> None:
    """
    Check a response against the pending discard before it is recorded.

    Raises InvalidInteractionError when there is nothing to respond to, when
    the discarder or an outsider responds, or when a claimed meld is not
    formed from the discard plus tiles in the claimant's concealed hand.
    """
    discard = state.pending_discard
    if discard is None:
        raise InvalidInteractionError("There is no discard to respond to")
    seat = state.seat_of(connection_id)
    if seat is None:
        raise InvalidInteractionError("Player is not seated in this game")
    if seat == discard.seat:
        raise InvalidInteractionError("Cannot respond to your own discard")
    if connection_id in state.interaction_connection_ids:
        raise InvalidInteractionError("Already responded to this discard")
    if skip_interaction:
        return

    if meld_type is None:
        raise InvalidInteractionError("meldType is required unless skipping")
    if meld_type == MeldType.CHOW and seat != (discard.seat + 1) % state.num_players:
        raise InvalidInteractionError("Only the next player may chow")
    if meld_type != MeldType.WIN and discard.tile not in played_tiles:
        raise InvalidInteractionError("Claimed meld must include the discarded tile")
    if not is_valid_meld(meld_type, list(played_tiles)):
        raise InvalidInteractionError(f"Tiles do not form a {meld_type.value}")

    hand = state.hands[seat].hand
    own_tiles = [tile for tile in played_tiles if tile != discard.tile]
    if any(tile not in hand for tile in own_tiles):
        raise InvalidInteractionError("Claimed tiles are not in hand")
