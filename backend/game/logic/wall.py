"""Wall shuffling and initial dealing."""

import random
from collections.abc import Sequence

from pydantic import BaseModel

from game.logic.rng import create_round_rng
from game.logic.tiles import NUM_TILES, sort_tiles

# A draw at or past this index means the wall is exhausted.
DEFAULT_WALL_LENGTH = NUM_TILES
NUM_PLAYERS = 4
TILES_PER_DEAL_BLOCK = 4
DEAL_BLOCKS = 3
TILES_PER_FINAL_DEAL = 1
HAND_SIZE = TILES_PER_DEAL_BLOCK * DEAL_BLOCKS + TILES_PER_FINAL_DEAL  # 13


class DealtHands(BaseModel, frozen=True):
    """Hands keyed by connection id, plus the cursor of the next undrawn tile."""

    hands: dict[str, list[int]]
    current_index: int


def shuffle_wall(seed: str | None = None, round_number: int = 0) -> list[int]:
    """
    Return a permutation of all 144 tile ids.

    With a seed the order is reproducible per (seed, round_number); without
    one it comes from the OS entropy source.
    """
    tiles = list(range(NUM_TILES))
    rng = create_round_rng(seed, round_number) if seed is not None else random.SystemRandom()
    rng.shuffle(tiles)
    return tiles


def deal_hands(wall: Sequence[int], connection_ids: Sequence[str], dealer: int = 0) -> DealtHands:
    """
    Deal 13 tiles to each player and a 14th to the dealer.

    Deal order starts from the dealer: 3 rounds of 4 tiles, then 1 tile each,
    then the dealer's extra tile. Tiles are taken strictly in wall order from
    index 0, so the returned cursor is the number of tiles dealt.
    """
    num_players = len(connection_ids)
    if not 1 <= num_players <= NUM_PLAYERS:
        raise ValueError(f"Cannot deal to {num_players} players")
    if not 0 <= dealer < num_players:
        raise ValueError(f"Dealer seat {dealer} out of range for {num_players} players")
    needed = num_players * HAND_SIZE + 1
    if len(wall) < needed:
        raise ValueError(f"Wall has {len(wall)} tiles, need at least {needed} for dealing")

    seats = [(dealer + offset) % num_players for offset in range(num_players)]
    hands: list[list[int]] = [[] for _ in range(num_players)]
    pos = 0

    for _ in range(DEAL_BLOCKS):
        for seat in seats:
            hands[seat].extend(wall[pos : pos + TILES_PER_DEAL_BLOCK])
            pos += TILES_PER_DEAL_BLOCK

    for seat in seats:
        hands[seat].append(wall[pos])
        pos += TILES_PER_FINAL_DEAL

    hands[dealer].append(wall[pos])
    pos += 1

    return DealtHands(
        hands={connection_id: sort_tiles(hands[seat]) for seat, connection_id in enumerate(connection_ids)},
        current_index=pos,
    )


def is_wall_exhausted(current_index: int) -> bool:
    return current_index >= DEFAULT_WALL_LENGTH


def tiles_remaining(current_index: int) -> int:
    return max(0, DEFAULT_WALL_LENGTH - current_index)
