"""
Tile representation utilities for the 144-tile mahjong set.

Tiles are integer ids. Ids 0-135 are the suited and honor tiles in
136-format (4 copies of each of the 34 kinds, ``tile_id // 4`` is the kind).
Ids 136-143 are the eight bonus tiles, one copy each.
"""

from collections.abc import Iterable

from game.logic.enums import MeldType

# tile ranges in 136-format (4 copies of each tile)
# characters: 0-35, dots: 36-71, bamboo: 72-107
# honors: 108-135 (E, S, W, N, white, green, red dragon)
STANDARD_TILE_COUNT = 136
FLOWER_START = 136
SEASON_START = 140
NUM_TILES = 144
BONUS_TILES_PER_CATEGORY = 4

SUITS = ("CHARACTER", "DOT", "BAMBOO")
TILES_PER_SUIT_34 = 9
HONOR_34_START = 27
HONOR_NAMES = ("EAST_WIND", "SOUTH_WIND", "WEST_WIND", "NORTH_WIND", "WHITE_DRAGON", "GREEN_DRAGON", "RED_DRAGON")

CHOW_SIZE = 3
PONG_SIZE = 3
KONG_SIZE = 4


def validate_tile_id(tile_id: int) -> None:
    if not 0 <= tile_id < NUM_TILES:
        raise ValueError(f"Tile id must be in [0, {NUM_TILES}), got {tile_id}")


def is_bonus(tile_id: int) -> bool:
    """Flowers and seasons are revealed and replaced, never melded."""
    return FLOWER_START <= tile_id < NUM_TILES


def tile_to_34(tile_id: int) -> int:
    """
    Convert a standard tile id to its kind index (0-33).
    """
    if is_bonus(tile_id):
        raise ValueError(f"Bonus tile {tile_id} has no 34-format kind")
    return tile_id // 4


def _bonus_tile(start: int, number: int, category: str) -> int:
    if not 1 <= number <= BONUS_TILES_PER_CATEGORY:
        raise ValueError(f"{category} number must be between 1 and {BONUS_TILES_PER_CATEGORY}, got {number}")
    return start + number - 1


def flower_tile(number: int) -> int:
    return _bonus_tile(FLOWER_START, number, "Flower")


def season_tile(number: int) -> int:
    return _bonus_tile(SEASON_START, number, "Season")


def tile_kind(tile_id: int) -> str:
    """Kind name shared by every copy of a tile, e.g. ``3_DOT`` or ``RED_DRAGON``."""
    validate_tile_id(tile_id)
    if tile_id >= SEASON_START:
        return f"{tile_id - SEASON_START + 1}_SEASON"
    if tile_id >= FLOWER_START:
        return f"{tile_id - FLOWER_START + 1}_FLOWER"
    kind = tile_to_34(tile_id)
    if kind >= HONOR_34_START:
        return HONOR_NAMES[kind - HONOR_34_START]
    suit, rank = divmod(kind, TILES_PER_SUIT_34)
    return f"{rank + 1}_{SUITS[suit]}"


def tile_name(tile_id: int) -> str:
    """Kind plus copy, e.g. ``3_DOT#2``; for logs and debugging."""
    if is_bonus(tile_id):
        return tile_kind(tile_id)
    return f"{tile_kind(tile_id)}#{tile_id % 4}"


def sort_tiles(tiles: Iterable[int]) -> list[int]:
    return sorted(tiles)


def _is_chow(kinds: list[int]) -> bool:
    if any(kind >= HONOR_34_START for kind in kinds):
        return False
    if len({kind // TILES_PER_SUIT_34 for kind in kinds}) != 1:
        return False
    ordered = sorted(kinds)
    return ordered[1] == ordered[0] + 1 and ordered[2] == ordered[1] + 1


def is_valid_meld(meld_type: MeldType, tiles: list[int]) -> bool:
    """
    Check the shape of a claimed meld (the discard plus the claimant's tiles).

    WIN claims carry no meld shape; hand validity is the client's concern
    since scoring is not evaluated server-side.
    """
    if meld_type == MeldType.WIN:
        return True
    if any(is_bonus(tile) for tile in tiles) or len(set(tiles)) != len(tiles):
        return False
    kinds = [tile_to_34(tile) for tile in tiles]
    if meld_type == MeldType.CHOW:
        return len(kinds) == CHOW_SIZE and _is_chow(kinds)
    expected = PONG_SIZE if meld_type == MeldType.PONG else KONG_SIZE
    return len(kinds) == expected and len(set(kinds)) == 1
