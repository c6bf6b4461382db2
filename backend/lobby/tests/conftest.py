"""Shared fixtures for lobby tests."""

import pytest

from lobby.connections import ConnectionRepository
from lobby.service import LobbyService


@pytest.fixture
def connections(store):
    return ConnectionRepository(store)


@pytest.fixture
def lobby(store, connections):
    return LobbyService(store, connections)


@pytest.fixture
def register(connections):
    """Save connection records (with usernames) for the given ids."""

    async def _register(*connection_ids: str) -> None:
        for connection_id in connection_ids:
            await connections.save_connection(connection_id)
            await connections.set_username(connection_id, f"user-{connection_id}")

    return _register


@pytest.fixture
async def full_game(lobby, register):
    """A CREATED game with four users; h is the host."""
    await register("h", "p1", "p2", "p3")
    game = await lobby.create_game("h", "Table", "MAHJONG", "1")
    for connection_id in ("p1", "p2", "p3"):
        game = await lobby.join_game(game.game_id, connection_id)
    return game
