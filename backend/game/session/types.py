"""
Pydantic models for the session layer.
"""

from http import HTTPStatus
from typing import Any

from pydantic import BaseModel, ConfigDict

from game.messaging.types import Action, failed_response, success_response


class HandlerResult(BaseModel):
    """Outcome of one handled action.

    ``reply`` is the caller's direct reply, sent by the router. It is None
    when the handler already delivered the reply as part of a broadcast.
    """

    model_config = ConfigDict(frozen=True)

    status: int = HTTPStatus.OK
    message: str = "OK"
    reply: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status < HTTPStatus.BAD_REQUEST


def handled(message: str, action: Action | None = None, payload: dict[str, Any] | None = None) -> HandlerResult:
    """Success; with ``action`` the router also sends ``payload`` as the reply."""
    reply = success_response(action, payload) if action is not None else None
    return HandlerResult(message=message, reply=reply)


def rejected(
    action: Action,
    error: str,
    status: int = HTTPStatus.CONFLICT,
    payload: dict[str, Any] | None = None,
) -> HandlerResult:
    return HandlerResult(status=status, message=error, reply=failed_response(action, error, payload))
