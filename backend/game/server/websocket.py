from __future__ import annotations

import asyncio
import contextlib
import json
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from game.messaging.protocol import ConnectionGoneError, ConnectionProtocol
from game.messaging.types import ErrorCode, error_message

logger = structlog.get_logger()

if TYPE_CHECKING:
    from game.messaging.router import MessageRouter

# Disconnect after this many consecutive unreadable frames
_MAX_DECODE_ERRORS = 5


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or uuid4().hex
        self._send_lock = asyncio.Lock()

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_json(self, data: dict[str, Any]) -> None:
        # concurrent handlers share the socket; one frame at a time
        async with self._send_lock:
            try:
                await self._websocket.send_text(json.dumps(data))
            except (WebSocketDisconnect, RuntimeError):
                raise ConnectionGoneError("WebSocket already disconnected") from None

    async def receive_text(self) -> str:
        try:
            return await self._websocket.receive_text()
        except (WebSocketDisconnect, RuntimeError):
            raise ConnectionGoneError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


class DecodeError(ValueError):
    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_MESSAGE) -> None:
        super().__init__(message)
        self.code = code


def decode(raw: str, max_bytes: int) -> dict[str, Any]:
    """Parse one text frame into a JSON object."""
    if len(raw.encode()) > max_bytes:
        raise DecodeError(f"Message exceeds {max_bytes} bytes", ErrorCode.MESSAGE_TOO_LARGE)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e.msg}") from None
    if not isinstance(data, dict):
        raise DecodeError("Message must be a JSON object")
    return data


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter, *, max_message_bytes: int) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    logger.info("websocket connected", connection_id=connection.connection_id)
    await router.handle_connect(connection)

    decode_errors = 0
    # each message runs in its own task so a slow action does not hold up the next frame
    in_flight: set[asyncio.Task[Any]] = set()

    try:
        while True:
            raw = await connection.receive_text()
            try:
                data = decode(raw, max_message_bytes)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await connection.send_json(error_message(e.code, str(e)))
                if decode_errors >= _MAX_DECODE_ERRORS:
                    logger.info("too many decode errors, disconnecting", connection_id=connection.connection_id)
                    await connection.close(code=4004, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0
            task = asyncio.create_task(router.handle_message(connection, data))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)
    except (WebSocketDisconnect, ConnectionError):  # fmt: skip
        pass
    finally:
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("websocket disconnected", connection_id=connection.connection_id)
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
