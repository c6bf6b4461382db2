"""Lobby records: connections and games."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import Field

from shared.dal.models import RecordModel

MAX_USERS_IN_GAME = 4


def _now() -> datetime:
    return datetime.now(tz=UTC)


class GameStatus(StrEnum):
    CREATED = "CREATED"
    STARTED = "STARTED"
    ENDED = "ENDED"
    DELETED = "DELETED"


class UserStatus(StrEnum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    UPDATED = "UPDATED"


class User(RecordModel):
    """Public view of a connection."""

    connection_id: str
    username: str | None = None


class ConnectionRecord(RecordModel):
    connection_id: str
    username: str | None = None
    game_id: str | None = None  # at most one active game per connection
    connected_at: datetime = Field(default_factory=_now)

    def to_user(self) -> User:
        return User(connection_id=self.connection_id, username=self.username)


class Game(RecordModel):
    game_id: str
    game_name: str
    game_type: str
    game_version: str
    creator_connection_id: str
    users: list[User]  # join order; index 0 is the host
    state: GameStatus = GameStatus.CREATED
    game_loaded_count: int = 0
    loaded_connection_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)

    @property
    def connection_ids(self) -> list[str]:
        return [user.connection_id for user in self.users]

    @property
    def host_connection_id(self) -> str | None:
        return self.users[0].connection_id if self.users else None

    def has_user(self, connection_id: str) -> bool:
        return connection_id in self.connection_ids

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"loaded_connection_ids"})
