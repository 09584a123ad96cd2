"""Progress events emitted by the rollup and consumed by notifications.

The rollup never talks to the network: it hands events to an ``Emit``
callback. In the application that callback is ``EventOutbox.emit``; a
background task drains the outbox and dispatches notifications.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GoalCompleted:
    goal_id: int
    roadmap_id: int


@dataclass(frozen=True)
class MilestoneCompleted:
    milestone_id: int
    goal_id: int


ProgressEvent = GoalCompleted | MilestoneCompleted
Emit = Callable[[ProgressEvent], None]


def safe_emit(emit: Emit | None, event: ProgressEvent) -> None:
    """Hand ``event`` to ``emit``; a failing sink is logged, never raised."""
    if emit is None:
        return
    try:
        emit(event)
    except Exception:
        logger.exception("Failed to emit progress event", progress_event=repr(event))


class EventOutbox:
    """Unbounded in-process queue between request handlers and the dispatcher."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()

    def emit(self, event: ProgressEvent) -> None:
        self._queue.put_nowait(event)

    def pending(self) -> int:
        return self._queue.qsize()

    async def drain(self, handler: Callable[[ProgressEvent], Awaitable[None]]) -> None:
        """Consume events forever, isolating handler failures per event."""
        while True:
            event = await self._queue.get()
            try:
                await handler(event)
            except Exception:
                logger.exception("Progress event handler failed", progress_event=repr(event))
            finally:
                self._queue.task_done()
