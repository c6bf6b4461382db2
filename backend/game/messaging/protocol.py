"""Abstract connection protocol for JSON text-frame communication."""

from abc import ABC, abstractmethod
from typing import Any


class ConnectionGoneError(ConnectionError):
    """The peer is no longer reachable; retrying the send will not help."""


class ConnectionProtocol(ABC):
    """
    Abstract interface for a client connection.

    Lets message handling and fan-out be tested without real WebSockets.
    Implementations raise ConnectionGoneError once the peer has gone away
    and OSError for failures that may be transient.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection."""
        ...

    @abstractmethod
    async def send_json(self, data: dict[str, Any]) -> None:
        """
        Send one JSON message to the client.
        """
        ...

    @abstractmethod
    async def receive_text(self) -> str:
        """
        Receive one raw text frame from the client.
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.
        """
        ...
