"""Live transport connections by connection id."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from game.messaging.protocol import ConnectionGoneError

if TYPE_CHECKING:
    from game.messaging.protocol import ConnectionProtocol


class ConnectionRegistry:
    """Map connection ids to the transport objects that can reach them.

    Records in the connections table outlive nothing: a registered
    connection is one with an open socket in this process.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}

    def register(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> ConnectionProtocol | None:
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> ConnectionProtocol | None:
        return self._connections.get(connection_id)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    async def send(self, message: dict[str, Any], connection_id: str) -> None:
        """Deliver one message. Raises ConnectionGoneError for unknown or closed connections."""
        connection = self._connections.get(connection_id)
        if connection is None:
            raise ConnectionGoneError(f"Connection {connection_id} is not registered")
        await connection.send_json(message)

    async def close_all(self, code: int = 1001, reason: str = "server_shutdown") -> None:
        for connection in list(self._connections.values()):
            await connection.close(code=code, reason=reason)
        self._connections.clear()
