"""
Event Bus — how the creature's life is observed from outside.

The orchestrator announces what happens (actions, level-ups, energy bands,
engine status, rebirth) as typed pydantic events. ``emit()`` is called from the
synchronous tick, so it only enqueues: it never blocks and never raises, and a
full queue drops the event with a warning. A dispatcher task hands each event
to the handlers whose fnmatch pattern matches its type ("creature.*", "*").
A failing handler is logged and the rest still run.
"""

from __future__ import annotations

import asyncio
import fnmatch
import re
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

EventHandler = Callable[["TerrariumEvent"], Any]

# Dot before every interior capital: "EnergyStateChanged" -> "Energy.State.Changed"
_WORD_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")


class TerrariumEvent(BaseModel):
    """Base class for events; ``event_type`` is derived from the class name."""

    event_type: str = ""

    def model_post_init(self, __context: Any) -> None:
        if not self.event_type:
            name = type(self).__name__.removesuffix("Event")
            self.event_type = _WORD_BOUNDARY_RE.sub(".", name).lower()


class EventBus:
    """Queue-backed fan-out from the control loop to observers."""

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._queue: asyncio.Queue[TerrariumEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._handlers: list[tuple[str, EventHandler]] = []
        self._dispatcher: Optional[asyncio.Task[None]] = None

    async def start(self) -> None:
        if self._dispatcher is None:
            self._dispatcher = asyncio.create_task(self._run(), name="terrarium-events")
            logger.debug("event_bus.started")

    async def stop(self, timeout: float = 5.0) -> None:
        """Deliver everything already queued, then stop the dispatcher."""
        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("event_bus.stop_timeout", pending=self._queue.qsize())
        dispatcher.cancel()
        await asyncio.gather(dispatcher, return_exceptions=True)
        logger.debug("event_bus.stopped")

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._handlers.append((pattern, handler))

    def emit(self, event: TerrariumEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("event_bus.queue_full", event_type=event.event_type, dropped=True)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for pattern, handler in list(self._handlers):
                    if fnmatch.fnmatchcase(event.event_type, pattern):
                        await self._deliver(pattern, handler, event)
            finally:
                self._queue.task_done()

    @staticmethod
    async def _deliver(pattern: str, handler: EventHandler, event: TerrariumEvent) -> None:
        try:
            result = handler(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.error(
                "event_bus.handler_error",
                pattern=pattern,
                event_type=event.event_type,
                exc_info=True,
            )


# ---------------------------------------------------------------------------
# Event Definitions
# ---------------------------------------------------------------------------

class CreatureActionEvent(TerrariumEvent):
    """An action was executed and charged against the energy ledger."""

    action: str
    intensity: float
    source: str
    thought: Optional[str] = None
    direction: Optional[str] = None
    color: Optional[str] = None


class LevelUpEvent(TerrariumEvent):
    level: int
    name: str
    xp: float
    manual: bool = False


class EnergyStateChangedEvent(TerrariumEvent):
    previous: str
    current: str
    energy: float


class InferenceStatusEvent(TerrariumEvent):
    """Engine lifecycle: loading, ready, error, switching."""

    status: str
    detail: str = ""


class CreatureRebornEvent(TerrariumEvent):
    generation: int
    parent_traits: dict[str, float] = Field(default_factory=dict)
