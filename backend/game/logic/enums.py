from enum import StrEnum


class RoundPhase(StrEnum):
    ROUND_IN_PROGRESS = "ROUND_IN_PROGRESS"
    ROUND_ENDED = "ROUND_ENDED"
    GAME_ENDED = "GAME_ENDED"


class MeldType(StrEnum):
    """Claim a player can make on another player's discard."""

    CHOW = "CHOW"
    PONG = "PONG"
    KONG = "KONG"
    WIN = "WIN"
