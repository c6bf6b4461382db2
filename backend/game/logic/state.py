"""Authoritative per-game round state, stored as one record per game."""

from pydantic import Field

from game.logic.enums import MeldType, RoundPhase
from shared.dal.models import RecordModel


class UserHand(RecordModel):
    connection_id: str
    hand: list[int]  # concealed
    played_tiles: list[int] = Field(default_factory=list)  # public: melds and revealed bonus tiles


class PlayedTileInteraction(RecordModel):
    """One player's response to the pending discard."""

    connection_id: str
    played_tiles: list[int] = Field(default_factory=list)
    meld_type: MeldType | None = None
    skip_interaction: bool = False


class PendingDiscard(RecordModel):
    connection_id: str
    seat: int
    tile: int


class DrawnTile(RecordModel):
    tile: int
    current_index: int


class GameState(RecordModel):
    game_id: str
    wall: list[int]
    hands: list[UserHand]  # parallel to the game's users (seat order)
    current_index: int
    dealer: int = 0
    current_wind: int = 0
    current_turn: int = 0
    interaction_count: int = 0
    played_tile_interactions: list[PlayedTileInteraction] = Field(default_factory=list)
    # connection ids that already answered the pending discard
    interaction_connection_ids: list[str] = Field(default_factory=list)
    phase: RoundPhase = RoundPhase.ROUND_IN_PROGRESS
    has_drawn: bool = True  # the turn owner already holds 14 tiles
    pending_discard: PendingDiscard | None = None
    discarded_tiles: list[int] = Field(default_factory=list)
    round_number: int = 0
    seed: str = ""

    @property
    def connection_ids(self) -> list[str]:
        return [hand.connection_id for hand in self.hands]

    @property
    def num_players(self) -> int:
        return len(self.hands)

    def seat_of(self, connection_id: str) -> int | None:
        for seat, hand in enumerate(self.hands):
            if hand.connection_id == connection_id:
                return seat
        return None

    def hand_of(self, connection_id: str) -> UserHand | None:
        seat = self.seat_of(connection_id)
        return self.hands[seat] if seat is not None else None

    def public_played_tiles(self) -> list[dict[str, object]]:
        """Every player's public pile, safe to show to any recipient."""
        return [
            {"connectionId": hand.connection_id, "playedTiles": list(hand.played_tiles)} for hand in self.hands
        ]
