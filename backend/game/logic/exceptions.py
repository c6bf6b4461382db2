"""Typed domain exceptions for game rule and game state violations.

Rule violations (wrong turn, tile not in hand, bad claim) subclass
GameRuleError and are reported back to the acting player. GameStateError
marks a missing or inconsistent game-state record, which handlers log and
surface as a failed action rather than retrying with different data.
"""


class GameRuleError(Exception):
    """Base exception for player actions that violate game rules."""


class NotYourTurnError(GameRuleError):
    """The acting player does not hold the turn, or has already drawn."""


class InvalidTileError(GameRuleError):
    """The tile is not in the player's concealed hand (or is not a valid tile id)."""


class InvalidInteractionError(GameRuleError):
    """A claim on a discard is not acceptable in the current negotiation."""


class GameStateError(Exception):
    """The authoritative game-state record rejected an update."""


class GameStateNotFoundError(GameStateError):
    def __init__(self, game_id: str) -> None:
        super().__init__(f"Game state for {game_id} does not exist")
        self.game_id = game_id


class NotInGameError(GameRuleError):
    """The acting connection is not seated in a game."""


class RoundNotInProgressError(GameRuleError):
    """The round has ended and the next one has not been dealt yet."""
