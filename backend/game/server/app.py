from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from game.logic.state_service import GameStateService
from game.messaging.router import MessageRouter
from game.server.settings import GameServerSettings
from game.server.websocket import websocket_endpoint
from game.session.broadcast import Broadcaster
from game.session.manager import SessionManager
from game.session.registry import ConnectionRegistry
from game.session.round_manager import RoundManager
from game.session.scheduler import RoundScheduler
from lobby.connections import ConnectionRepository
from lobby.models import GameStatus
from lobby.service import LobbyService
from shared.db import Database, SqliteRecordStore
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from shared.dal import RecordStore


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    registry: ConnectionRegistry = request.app.state.registry
    lobby: LobbyService = request.app.state.lobby
    games = await lobby.get_all_games()
    return JSONResponse(
        {
            "status": "ok",
            "connections": len(registry),
            "games": len(games),
            "started_games": sum(1 for game in games if game.state == GameStatus.STARTED),
        },
    )


def create_app(
    settings: GameServerSettings | None = None,
    store: RecordStore | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = GameServerSettings()

    # When the app opens its own database, it owns the DB lifecycle.
    owned_db: Database | None = None

    if store is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        store = SqliteRecordStore(db)

    registry = ConnectionRegistry()
    scheduler = RoundScheduler()
    lobby = LobbyService(store, ConnectionRepository(store))
    state_service = GameStateService(store)
    broadcaster = Broadcaster(
        registry,
        lobby,
        state_service,
        scheduler,
        send_attempts=settings.send_attempts,
        round_restart_delay=settings.round_restart_delay_seconds,
    )
    session_manager = SessionManager(lobby, state_service, broadcaster, scheduler)
    round_manager = RoundManager(lobby, state_service, broadcaster)
    message_router = MessageRouter(session_manager, round_manager, broadcaster, registry)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, max_message_bytes=settings.max_message_bytes)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        scheduler.cancel_all()
        await registry.close_all()
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.scheduler = scheduler
    app.state.lobby = lobby
    app.state.state_service = state_service
    app.state.router = message_router

    logger.info("game server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = GameServerSettings()
    setup_logging(_settings.log_dir)
    return create_app(settings=_settings)
