"""
Unit tests for wall shuffling and dealing.
"""

import pytest

from game.logic.rng import SEED_BYTES
from game.logic.tiles import NUM_TILES
from game.logic.wall import HAND_SIZE, deal_hands, is_wall_exhausted, shuffle_wall, tiles_remaining

FIXED_SEED = "ab" * SEED_BYTES
PLAYERS = ["c0", "c1", "c2", "c3"]


class TestShuffleWall:
    def test_is_permutation_of_all_tiles(self):
        wall = shuffle_wall(FIXED_SEED)
        assert sorted(wall) == list(range(NUM_TILES))

    def test_seeded_wall_is_reproducible(self):
        assert shuffle_wall(FIXED_SEED, 2) == shuffle_wall(FIXED_SEED, 2)

    def test_rounds_get_different_walls(self):
        assert shuffle_wall(FIXED_SEED, 0) != shuffle_wall(FIXED_SEED, 1)

    def test_unseeded_wall_is_permutation(self):
        assert sorted(shuffle_wall()) == list(range(NUM_TILES))


class TestDealHands:
    def test_dealer_gets_fourteen(self):
        dealt = deal_hands(list(range(NUM_TILES)), PLAYERS, dealer=0)
        assert [len(dealt.hands[cid]) for cid in PLAYERS] == [HAND_SIZE + 1, HAND_SIZE, HAND_SIZE, HAND_SIZE]

    def test_cursor_after_deal(self):
        dealt = deal_hands(list(range(NUM_TILES)), PLAYERS)
        assert dealt.current_index == 53

    def test_hands_are_disjoint_and_from_wall_prefix(self):
        wall = shuffle_wall(FIXED_SEED)
        dealt = deal_hands(wall, PLAYERS, dealer=2)
        all_dealt = [tile for cid in PLAYERS for tile in dealt.hands[cid]]
        assert len(all_dealt) == len(set(all_dealt))
        assert sorted(all_dealt) == sorted(wall[: dealt.current_index])

    def test_deal_order_starts_at_dealer(self):
        dealt = deal_hands(list(range(NUM_TILES)), PLAYERS, dealer=1)
        # dealer takes the first block of four and the final extra tile
        assert dealt.hands["c1"][:4] == [0, 1, 2, 3]
        assert 52 in dealt.hands["c1"]
        assert len(dealt.hands["c1"]) == HAND_SIZE + 1

    def test_hands_are_sorted(self):
        dealt = deal_hands(shuffle_wall(FIXED_SEED), PLAYERS)
        assert all(dealt.hands[cid] == sorted(dealt.hands[cid]) for cid in PLAYERS)

    def test_rejects_bad_dealer(self):
        with pytest.raises(ValueError, match="Dealer seat"):
            deal_hands(list(range(NUM_TILES)), PLAYERS, dealer=4)

    def test_rejects_short_wall(self):
        with pytest.raises(ValueError, match="need at least"):
            deal_hands(list(range(20)), PLAYERS)


class TestExhaustion:
    def test_wall_exhausted_at_length(self):
        assert not is_wall_exhausted(NUM_TILES - 1)
        assert is_wall_exhausted(NUM_TILES)

    def test_tiles_remaining(self):
        assert tiles_remaining(53) == NUM_TILES - 53
        assert tiles_remaining(200) == 0
