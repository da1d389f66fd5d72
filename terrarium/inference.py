"""
Inference Slot — at most one thought in flight.

The control loop must never wait on the model. A submission spawns an asyncio
task and returns immediately; later ticks poll ``collect()`` for the finished
text. While a call is outstanding the slot is busy and further submissions are
dropped rather than queued. Each call is capped by ``asyncio.wait_for``; a
timeout or engine error yields an empty string, which downstream code treats
exactly like malformed output.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Optional

import structlog

from terrarium.api.engine import InferenceEngine

logger = structlog.get_logger(__name__)


class InferenceSlot:
    """Single-occupancy wrapper around an engine's ``complete``."""

    def __init__(self, timeout: float = 20.0):
        self._timeout = timeout
        self._task: Optional[asyncio.Task[str]] = None
        self._started_at = 0.0

        # Metrics
        self.submitted = 0
        self.dropped = 0
        self.completed = 0
        self.timeouts = 0
        self.errors = 0
        self.total_seconds = 0.0
        self.last_duration: Optional[float] = None

    @property
    def busy(self) -> bool:
        return self._task is not None

    def submit(
        self,
        engine: InferenceEngine,
        messages: list[dict[str, str]],
        grammar: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Start a call unless one is already running. Must be called inside a loop."""
        if self._task is not None:
            self.dropped += 1
            logger.debug("inference.dropped_busy")
            return False
        self.submitted += 1
        self._started_at = time.monotonic()
        self._task = asyncio.get_running_loop().create_task(
            self._run(engine, messages, grammar, options),
            name="terrarium-inference",
        )
        return True

    async def _run(
        self,
        engine: InferenceEngine,
        messages: list[dict[str, str]],
        grammar: Optional[dict[str, Any]],
        options: Optional[dict[str, Any]],
    ) -> str:
        try:
            result = await asyncio.wait_for(
                engine.complete(messages, grammar, options),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self.timeouts += 1
            logger.warning("inference.timeout", timeout=self._timeout)
            return ""
        except Exception:
            self.errors += 1
            logger.warning("inference.engine_error", exc_info=True)
            return ""
        return result if isinstance(result, str) else ""

    def collect(self) -> Optional[str]:
        """The finished text, or None if nothing is ready (or the call was cancelled)."""
        task = self._task
        if task is None or not task.done():
            return None
        self._task = None
        duration = time.monotonic() - self._started_at
        self.last_duration = duration
        self.total_seconds += duration
        if task.cancelled():
            return None
        self.completed += 1
        return task.result()

    async def wait(self) -> None:
        """Wait for the in-flight call to finish, leaving it for ``collect``."""
        if self._task is not None:
            await asyncio.wait([self._task])

    async def drain(self) -> None:
        """Wait for any in-flight call and discard its result.

        The slot stays busy until the call has finished, so nothing new can be
        submitted against an engine that is about to be torn down.
        """
        task = self._task
        if task is None:
            return
        await asyncio.wait([task])
        if self._task is task:
            self._task = None

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "busy": self.busy,
            "submitted": self.submitted,
            "dropped": self.dropped,
            "completed": self.completed,
            "timeouts": self.timeouts,
            "errors": self.errors,
            "average_seconds": (
                round(self.total_seconds / self.completed, 3) if self.completed else None
            ),
            "last_seconds": (
                round(self.last_duration, 3) if self.last_duration is not None else None
            ),
        }
