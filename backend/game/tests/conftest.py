from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from game.logic.enums import RoundPhase
from game.logic.state import GameState, PendingDiscard, UserHand
from game.logic.state_service import GameStateService
from game.messaging.router import MessageRouter
from game.session.broadcast import Broadcaster
from game.session.manager import SessionManager
from game.session.registry import ConnectionRegistry
from game.session.round_manager import RoundManager
from game.session.scheduler import RoundScheduler
from game.tests.mocks.connection import MockConnection
from lobby.connections import ConnectionRepository
from lobby.service import LobbyService
from shared.dal import Table

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.dal import RecordStore

PLAYER_IDS = ("c0", "c1", "c2", "c3")


# ============================================================================
# Test State Builder Helpers
# ============================================================================


def create_state(
    game_id: str = "g1",
    *,
    hands: Sequence[Sequence[int]] | None = None,
    connection_ids: Sequence[str] = PLAYER_IDS,
    wall: Sequence[int] | None = None,
    current_index: int = 53,
    dealer: int = 0,
    current_wind: int = 0,
    current_turn: int = 0,
    has_drawn: bool = True,
    pending_discard: PendingDiscard | None = None,
    phase: RoundPhase = RoundPhase.ROUND_IN_PROGRESS,
    round_number: int = 0,
) -> GameState:
    """Build a GameState with small, readable hands for rule tests."""
    if hands is None:
        hands = [[] for _ in connection_ids]
    return GameState(
        game_id=game_id,
        wall=list(wall) if wall is not None else list(range(144)),
        hands=[UserHand(connection_id=cid, hand=list(hand)) for cid, hand in zip(connection_ids, hands, strict=True)],
        current_index=current_index,
        dealer=dealer,
        current_wind=current_wind,
        current_turn=current_turn,
        has_drawn=has_drawn,
        pending_discard=pending_discard,
        phase=phase,
        round_number=round_number,
    )


async def save_state(store: RecordStore, state: GameState) -> GameState:
    await store.put(Table.GAME_STATE, state.to_item())
    return state


# ============================================================================
# Service fixtures
# ============================================================================


@pytest.fixture
def connections(store):
    return ConnectionRepository(store)


@pytest.fixture
def lobby(store, connections):
    return LobbyService(store, connections)


@pytest.fixture
def state_service(store):
    return GameStateService(store)


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
async def scheduler():
    scheduler = RoundScheduler()
    yield scheduler
    scheduler.cancel_all()


@pytest.fixture
def broadcaster(registry, lobby, state_service, scheduler):
    return Broadcaster(registry, lobby, state_service, scheduler, send_attempts=3, round_restart_delay=0)


@pytest.fixture
def session_manager(lobby, state_service, broadcaster, scheduler):
    return SessionManager(lobby, state_service, broadcaster, scheduler)


@pytest.fixture
def round_manager(lobby, state_service, broadcaster):
    return RoundManager(lobby, state_service, broadcaster)


@pytest.fixture
def router(session_manager, round_manager, broadcaster, registry):
    return MessageRouter(session_manager, round_manager, broadcaster, registry)


@pytest.fixture
async def players(router):
    """Four connected clients, registered and stored, with usernames set."""
    clients = [MockConnection(cid) for cid in PLAYER_IDS]
    for client in clients:
        await router.handle_connect(client)
    for index, client in enumerate(clients):
        await router.handle_message(client, {"action": "SET_USERNAME", "payload": {"username": f"Player{index}"}})
    for client in clients:
        client.clear()
    return clients


@pytest.fixture
async def started_game(router, players, lobby):
    """A started game with all four players seated in join order; returns its id."""
    host = players[0]
    await router.handle_message(host, {"action": "CREATE_GAME", "payload": {"game": {"gameName": "Table 1"}}})
    game_id = host.messages_for("CREATE_GAME")[-1]["payload"]["game"]["gameId"]
    for client in players[1:]:
        await router.handle_message(client, {"action": "JOIN_GAME", "payload": {"gameId": game_id}})
    await router.handle_message(host, {"action": "START_GAME", "payload": {"gameId": game_id}})
    for client in players:
        client.clear()
    return game_id


@pytest.fixture
async def loaded_game(router, players, started_game):
    """A started game whose first round has been dealt; returns its id."""
    for client in players:
        await router.handle_message(client, {"action": "GAME_PAGE_LOAD"})
    for client in players:
        client.clear()
    return started_game
