from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

from game.logic.enums import MeldType
from game.logic.tiles import NUM_TILES

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F


def _reject_control_chars(v: str) -> str:
    if any((ord(c) < _SPACE_ORD and c not in ("\t", "\n", "\r")) or ord(c) == _DEL_ORD for c in v):
        raise ValueError("text must not contain control characters")
    return v


class Action(StrEnum):
    SET_USERNAME = "SET_USERNAME"
    GET_ALL_USERS = "GET_ALL_USERS"
    CREATE_GAME = "CREATE_GAME"
    GET_ALL_GAMES = "GET_ALL_GAMES"
    SEND_MESSAGE = "SEND_MESSAGE"
    JOIN_GAME = "JOIN_GAME"
    LEAVE_GAME = "LEAVE_GAME"
    START_GAME = "START_GAME"
    GAME_PAGE_LOAD = "GAME_PAGE_LOAD"
    DRAW_TILE = "DRAW_TILE"
    PLAY_TILE = "PLAY_TILE"
    PLAYED_TILE_INTERACTION = "PLAYED_TILE_INTERACTION"
    SELF_PLAY_TILE = "SELF_PLAY_TILE"
    WIN_ROUND = "WIN_ROUND"
    GET_GAME_STATE = "GET_GAME_STATE"
    # server -> client only
    USER_UPDATE = "USER_UPDATE"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    GAME_UPDATE = "GAME_UPDATE"
    IN_GAME_UPDATE = "IN_GAME_UPDATE"
    IN_GAME_MESSAGE = "IN_GAME_MESSAGE"
    GAME_START = "GAME_START"
    DRAW_ROUND = "DRAW_ROUND"
    UPDATE_GAME_STATE = "UPDATE_GAME_STATE"
    INTERACTION_SUCCESS = "INTERACTION_SUCCESS"
    WINNING_TILES = "WINNING_TILES"
    ERROR = "ERROR"


class ErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    MESSAGE_TOO_LARGE = "message_too_large"


class PayloadModel(BaseModel):
    """Inbound payload: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


_TileId = Annotated[int, Field(ge=0, lt=NUM_TILES)]
_GAME_ID_FIELD = Field(min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_-]+$")


class EmptyPayload(PayloadModel):
    pass


class SetUsernamePayload(PayloadModel):
    username: str = Field(min_length=1, max_length=32)

    @field_validator("username")
    @classmethod
    def _validate_username(cls, v: str) -> str:
        v = _reject_control_chars(v).strip()
        if not v:
            raise ValueError("username must not be blank")
        return v


class GameDetails(PayloadModel):
    game_name: str = Field(min_length=1, max_length=50)
    game_type: str = Field(default="MAHJONG", min_length=1, max_length=32)
    game_version: str = Field(default="1", min_length=1, max_length=16)

    @field_validator("game_name")
    @classmethod
    def _validate_game_name(cls, v: str) -> str:
        return _reject_control_chars(v)


class CreateGamePayload(PayloadModel):
    game: GameDetails


class SendMessagePayload(PayloadModel):
    message: str = Field(min_length=1, max_length=1000)
    username: str | None = Field(default=None, max_length=32)

    @field_validator("message")
    @classmethod
    def _validate_message(cls, v: str) -> str:
        return _reject_control_chars(v)


class GameIdPayload(PayloadModel):
    game_id: str = _GAME_ID_FIELD


class PlayTilePayload(PayloadModel):
    tile: _TileId


class PlayedTileInteractionPayload(PayloadModel):
    played_tiles: list[_TileId] = Field(default_factory=list, max_length=4)
    meld_type: MeldType | None = None
    skip_interaction: bool = False

    @model_validator(mode="after")
    def _require_meld_type(self) -> "PlayedTileInteractionPayload":
        if not self.skip_interaction and self.meld_type is None:
            raise ValueError("meldType is required unless skipInteraction is set")
        return self


class SelfPlayTilePayload(PayloadModel):
    played_tiles: list[_TileId] = Field(min_length=1, max_length=4)


class HandPointResults(PayloadModel):
    """Scoring summary computed by the winner's client; relayed, not evaluated."""

    model_config = ConfigDict(extra="allow")

    total_points: int = Field(default=0, ge=0)


class WinRoundPayload(PayloadModel):
    hand_point_results: HandPointResults = Field(default_factory=HandPointResults)


# ============================================================================
# Inbound messages
# ============================================================================


class _ClientMessage(BaseModel):
    model_config = ConfigDict(frozen=True)


class SetUsernameMessage(_ClientMessage):
    action: Literal[Action.SET_USERNAME]
    payload: SetUsernamePayload


class GetAllUsersMessage(_ClientMessage):
    action: Literal[Action.GET_ALL_USERS]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


class CreateGameMessage(_ClientMessage):
    action: Literal[Action.CREATE_GAME]
    payload: CreateGamePayload


class GetAllGamesMessage(_ClientMessage):
    action: Literal[Action.GET_ALL_GAMES]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


class SendMessageMessage(_ClientMessage):
    action: Literal[Action.SEND_MESSAGE]
    payload: SendMessagePayload


class JoinGameMessage(_ClientMessage):
    action: Literal[Action.JOIN_GAME]
    payload: GameIdPayload


class LeaveGameMessage(_ClientMessage):
    action: Literal[Action.LEAVE_GAME]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


class StartGameMessage(_ClientMessage):
    action: Literal[Action.START_GAME]
    payload: GameIdPayload


class GamePageLoadMessage(_ClientMessage):
    action: Literal[Action.GAME_PAGE_LOAD]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


class DrawTileMessage(_ClientMessage):
    action: Literal[Action.DRAW_TILE]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


class PlayTileMessage(_ClientMessage):
    action: Literal[Action.PLAY_TILE]
    payload: PlayTilePayload


class PlayedTileInteractionMessage(_ClientMessage):
    action: Literal[Action.PLAYED_TILE_INTERACTION]
    payload: PlayedTileInteractionPayload


class SelfPlayTileMessage(_ClientMessage):
    action: Literal[Action.SELF_PLAY_TILE]
    payload: SelfPlayTilePayload


class WinRoundMessage(_ClientMessage):
    action: Literal[Action.WIN_ROUND]
    payload: WinRoundPayload = Field(default_factory=WinRoundPayload)


class GetGameStateMessage(_ClientMessage):
    action: Literal[Action.GET_GAME_STATE]
    payload: EmptyPayload = Field(default_factory=EmptyPayload)


ClientMessage = Annotated[
    SetUsernameMessage
    | GetAllUsersMessage
    | CreateGameMessage
    | GetAllGamesMessage
    | SendMessageMessage
    | JoinGameMessage
    | LeaveGameMessage
    | StartGameMessage
    | GamePageLoadMessage
    | DrawTileMessage
    | PlayTileMessage
    | PlayedTileInteractionMessage
    | SelfPlayTileMessage
    | WinRoundMessage
    | GetGameStateMessage,
    Field(discriminator="action"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw ``{action, payload}`` dict into a typed message.

    A missing ``payload`` is treated as empty so payload-less actions can be
    sent as ``{"action": "GET_ALL_GAMES"}``.
    """
    if data.get("payload") is None:
        data = {**data, "payload": {}}
    return _client_message_adapter.validate_python(data)


# ============================================================================
# Outbound envelopes
# ============================================================================


def build_message(action: Action, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """A server-initiated message (broadcasts)."""
    return {"action": action.value, "payload": payload or {}}


def success_response(action: Action, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"action": action.value, "payload": payload or {}, "success": True}


def failed_response(action: Action, error: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"action": action.value, "payload": payload or {}, "success": False, "error": error}


def error_message(code: ErrorCode, message: str) -> dict[str, Any]:
    """Reply to a frame that could not be attributed to any action."""
    return failed_response(Action.ERROR, message, {"code": code.value})
