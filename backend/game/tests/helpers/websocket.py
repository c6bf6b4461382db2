"""Shared WebSocket test helpers for game integration tests."""

import json


def send_ws(ws, action: str, payload: dict | None = None) -> None:
    """Send one ``{action, payload}`` text frame over a test WebSocket."""
    message: dict = {"action": action}
    if payload is not None:
        message["payload"] = payload
    ws.send_text(json.dumps(message))


def recv_ws(ws) -> dict:
    """Receive and decode one JSON text frame from a test WebSocket."""
    return json.loads(ws.receive_text())


def recv_until(ws, action: str, *, limit: int = 50) -> tuple[dict, list[dict]]:
    """Read frames until one with ``action`` arrives. Return it and everything read before it."""
    skipped = []
    for _ in range(limit):
        message = recv_ws(ws)
        if message["action"] == action:
            return message, skipped
        skipped.append(message)
    raise AssertionError(f"No {action} message within {limit} frames; got {[m['action'] for m in skipped]}")


def set_username(ws, username: str) -> dict:
    send_ws(ws, "SET_USERNAME", {"username": username})
    message, _ = recv_until(ws, "LOGIN_SUCCESS")
    return message["payload"]["user"]
