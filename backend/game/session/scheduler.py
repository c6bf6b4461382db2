"""Delayed continuations for round transitions.

Between the end-of-round update and the next round's hands clients get a
fixed pause to show the result. The pause runs as a scheduled task, so the
handler that ended the round returns immediately and nothing blocks while
waiting.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from game.logic.exceptions import GameStateError
from shared.dal.errors import StoreError

logger = structlog.get_logger()

Continuation = Callable[[], Awaitable[None]]


class RoundScheduler:
    """Own the per-game continuation tasks so they can be cancelled with the game."""

    def __init__(self) -> None:
        self._tasks: dict[str, set[asyncio.Task[None]]] = {}

    def schedule(self, game_id: str, delay: float, callback: Continuation) -> asyncio.Task[None]:
        task = asyncio.create_task(self._run(game_id, delay, callback))
        self._tasks.setdefault(game_id, set()).add(task)
        task.add_done_callback(lambda t, gid=game_id: self._forget(gid, t))
        return task

    def pending_tasks(self, game_id: str) -> list[asyncio.Task[None]]:
        return list(self._tasks.get(game_id, ()))

    def has_pending(self, game_id: str) -> bool:
        return bool(self._tasks.get(game_id))

    def cancel_game(self, game_id: str) -> None:
        """Cancel every pending continuation for a game."""
        for task in self._tasks.pop(game_id, set()):
            if not task.done():
                task.cancel()

    def cancel_all(self) -> None:
        for game_id in list(self._tasks):
            self.cancel_game(game_id)

    def _forget(self, game_id: str, task: asyncio.Task[None]) -> None:
        tasks = self._tasks.get(game_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._tasks[game_id]

    async def _run(self, game_id: str, delay: float, callback: Continuation) -> None:
        try:
            await asyncio.sleep(delay)
            await callback()
        except asyncio.CancelledError:
            logger.debug("round continuation cancelled", game_id=game_id)
        except (RuntimeError, OSError, ValueError, GameStateError, StoreError):
            logger.exception("round continuation failed", game_id=game_id)
