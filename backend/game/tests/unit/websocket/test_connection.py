"""Unit tests for the WebSocketConnection wrapper and frame decoding."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketDisconnect

from game.messaging.protocol import ConnectionGoneError
from game.messaging.types import ErrorCode
from game.server.websocket import DecodeError, WebSocketConnection, decode


class TestWebSocketConnection:
    """Test error handling and delegation in WebSocketConnection wrapper."""

    async def test_send_json_writes_text_frame(self):
        mock_ws = MagicMock()
        mock_ws.send_text = AsyncMock()
        conn = WebSocketConnection(mock_ws, connection_id="test-conn")

        await conn.send_json({"action": "GET_ALL_GAMES", "payload": {"games": []}})

        (frame,) = mock_ws.send_text.await_args.args
        assert json.loads(frame) == {"action": "GET_ALL_GAMES", "payload": {"games": []}}

    async def test_send_json_converts_disconnect_to_connection_gone(self):
        mock_ws = MagicMock()
        mock_ws.send_text = AsyncMock(side_effect=WebSocketDisconnect())
        conn = WebSocketConnection(mock_ws, connection_id="test-conn")

        with pytest.raises(ConnectionGoneError, match="WebSocket already disconnected"):
            await conn.send_json({"action": "ERROR"})

    async def test_receive_text_converts_disconnect_to_connection_gone(self):
        mock_ws = MagicMock()
        mock_ws.receive_text = AsyncMock(side_effect=WebSocketDisconnect())
        conn = WebSocketConnection(mock_ws, connection_id="test-conn")

        with pytest.raises(ConnectionGoneError):
            await conn.receive_text()

    async def test_close_suppresses_disconnect(self):
        """Closing an already-disconnected WebSocket completes without error."""
        mock_ws = MagicMock()
        mock_ws.close = AsyncMock(side_effect=WebSocketDisconnect())
        conn = WebSocketConnection(mock_ws, connection_id="test-conn")

        await conn.close(code=4004, reason="bye")
        mock_ws.close.assert_awaited_once_with(code=4004, reason="bye")

    def test_connection_id_generated_when_missing(self):
        first = WebSocketConnection(MagicMock())
        second = WebSocketConnection(MagicMock())
        assert first.connection_id
        assert first.connection_id != second.connection_id


class TestDecode:
    def test_valid_object(self):
        assert decode('{"action": "GET_ALL_USERS"}', 1024) == {"action": "GET_ALL_USERS"}

    def test_invalid_json(self):
        with pytest.raises(DecodeError, match="Invalid JSON") as exc_info:
            decode("{oops", 1024)
        assert exc_info.value.code == ErrorCode.INVALID_MESSAGE

    @pytest.mark.parametrize("raw", ["[]", '"text"', "42", "null"])
    def test_non_object_rejected(self, raw):
        with pytest.raises(DecodeError, match="must be a JSON object"):
            decode(raw, 1024)

    def test_size_limit_counts_bytes(self):
        # four bytes per character in UTF-8
        raw = json.dumps({"message": "\U0001f004" * 10}, ensure_ascii=False)
        with pytest.raises(DecodeError) as exc_info:
            decode(raw, 40)
        assert exc_info.value.code == ErrorCode.MESSAGE_TOO_LARGE
