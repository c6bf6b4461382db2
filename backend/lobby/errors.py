"""Capacity and policy violations in the lobby. Raised before (or instead of) any mutation."""


class LobbyError(Exception):
    """Base class; the message is shown to the acting player."""


class AlreadyInGameError(LobbyError):
    def __init__(self) -> None:
        super().__init__("You are already in a game")


class GameFullError(LobbyError):
    def __init__(self) -> None:
        super().__init__("Game is full")


class GameNotJoinableError(LobbyError):
    def __init__(self) -> None:
        super().__init__("Game has already started")


class NotHostError(LobbyError):
    def __init__(self) -> None:
        super().__init__("Only the host can start the game")


class GameNotReadyError(LobbyError):
    def __init__(self, players: int, required: int) -> None:
        super().__init__(f"Game needs {required} players to start, has {players}")


class ConnectionNotFoundError(LobbyError):
    def __init__(self) -> None:
        super().__init__("Connection is not registered")
