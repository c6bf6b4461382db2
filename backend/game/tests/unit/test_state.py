import pytest
from pydantic import ValidationError

from game.logic.enums import MeldType, RoundPhase
from game.logic.state import GameState, PendingDiscard, PlayedTileInteraction, UserHand
from game.tests.conftest import create_state


class TestGameState:
    def test_seat_lookup(self):
        state = create_state()
        assert state.connection_ids == ["c0", "c1", "c2", "c3"]
        assert state.num_players == 4
        assert state.seat_of("c2") == 2
        assert state.seat_of("stranger") is None

    def test_hand_of(self):
        state = create_state(hands=[[1], [2, 3], [4], [5]])
        assert state.hand_of("c1").hand == [2, 3]
        assert state.hand_of("stranger") is None

    def test_public_played_tiles_hides_concealed_hand(self):
        state = create_state(hands=[[1, 2], [3], [4], [5]])
        state = state.model_copy(
            update={"hands": [state.hands[0].model_copy(update={"played_tiles": [136]}), *state.hands[1:]]}
        )
        public = state.public_played_tiles()
        assert public[0] == {"connectionId": "c0", "playedTiles": [136]}
        assert all("hand" not in entry for entry in public)

    def test_defaults_start_a_round(self):
        state = GameState(game_id="g1", wall=[], hands=[], current_index=0)
        assert state.phase == RoundPhase.ROUND_IN_PROGRESS
        assert state.has_drawn is True
        assert state.pending_discard is None
        assert state.interaction_count == 0

    def test_frozen(self):
        state = create_state()
        with pytest.raises(ValidationError):
            state.dealer = 2


class TestStoredShape:
    def test_item_round_trips_nested_records(self):
        state = create_state(pending_discard=PendingDiscard(connection_id="c0", seat=0, tile=7))
        state = state.model_copy(
            update={
                "played_tile_interactions": [
                    PlayedTileInteraction(connection_id="c1", played_tiles=[7, 8, 9], meld_type=MeldType.CHOW)
                ]
            }
        )
        restored = GameState.model_validate(state.to_item())
        assert restored == state
        assert restored.played_tile_interactions[0].meld_type == MeldType.CHOW

    def test_wire_uses_camel_case(self):
        wire = UserHand(connection_id="c0", hand=[1]).to_wire()
        assert wire == {"connectionId": "c0", "hand": [1], "playedTiles": []}
