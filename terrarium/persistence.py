"""
Persistence — the creature survives a restart.

The whole creature (traits, energy, level, XP, lineage, memories, recent
conversation) is one pydantic record written as JSON. Writes are atomic
(tempfile + rename). On load, the time spent switched off is added to the
creature's age and charged against its energy at a slow offline rate. A record
that fails to parse or validate is logged and ignored; the caller cold-starts.
"""

from __future__ import annotations

import asyncio
import json
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

logger = structlog.get_logger(__name__)

RECORD_FORMAT_VERSION = 1


class CreatureRecord(BaseModel):
    """Everything needed to bring a creature back."""

    creature_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: Optional[str] = None
    traits: dict[str, float]
    level: int = Field(0, ge=0)
    xp: float = Field(0.0, ge=0)
    energy: float = Field(50.0, ge=0, le=100)
    created_at: float = Field(default_factory=time.time)
    last_saved_at: float = Field(default_factory=time.time)
    total_age: float = Field(0.0, ge=0)
    generation: int = Field(1, ge=1)
    parent_traits: Optional[dict[str, float]] = None
    action_history: list[dict[str, Any]] = Field(default_factory=list)
    memories: list[dict[str, Any]] = Field(default_factory=list)
    conversation: list[dict[str, Any]] = Field(default_factory=list)
    strategy: str = "legacy"
    format_version: int = RECORD_FORMAT_VERSION


class StateStore(ABC):
    """Where a CreatureRecord lives between runs."""

    @abstractmethod
    def load(self) -> Optional[CreatureRecord]:
        ...

    @abstractmethod
    def save(self, record: CreatureRecord) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class JsonStateStore(StateStore):
    """A single JSON file on disk."""

    def __init__(
        self,
        path: Path,
        offline_decay_per_second: float = 0.01,
        clock: Callable[[], float] = time.time,
    ):
        self._path = Path(path)
        self._offline_decay = offline_decay_per_second
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[CreatureRecord]:
        """Read, validate and age the stored record; None if absent or corrupt."""
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            record = CreatureRecord.model_validate(data)
        except (OSError, ValueError, ValidationError) as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning("state_store.corrupt", path=str(self._path), error=str(exc)[:200])
            return None

        now = self._clock()
        elapsed = max(0.0, now - record.last_saved_at)
        record.total_age += elapsed
        record.energy = max(0.0, record.energy - elapsed * self._offline_decay)
        record.conversation = [
            ex for ex in record.conversation
            if isinstance(ex, dict) and ex.get("user_message") and ex.get("creature_action")
        ]
        logger.info(
            "state_store.loaded",
            path=str(self._path),
            offline_seconds=round(elapsed, 1),
            energy=round(record.energy, 2),
            generation=record.generation,
        )
        return record

    def save(self, record: CreatureRecord) -> None:
        record.last_saved_at = self._clock()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = record.model_dump_json(indent=2)

        fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(data)
            Path(tmp_path).replace(self._path)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug("state_store.saved", path=str(self._path), size_bytes=len(data))

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
        logger.info("state_store.cleared", path=str(self._path))


class AutoSaver:
    """Periodically persists whatever ``snapshot()`` returns."""

    def __init__(
        self,
        store: StateStore,
        snapshot: Callable[[], Optional[CreatureRecord]],
        interval: float = 30.0,
    ):
        self._store = store
        self._snapshot = snapshot
        self._interval = interval
        self._task: Optional[asyncio.Task[None]] = None

    def save_now(self) -> bool:
        record = self._snapshot()
        if record is None:
            return False
        try:
            self._store.save(record)
        except OSError:
            logger.warning("state_store.save_failed", exc_info=True)
            return False
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.save_now()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._loop(), name="terrarium-autosave"
            )

    async def stop(self) -> None:
        """Stop the timer and write one last time."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.save_now()


def format_age(total_seconds: float) -> str:
    """Human-readable age: 42s, 17m, 3.5h, 2.1d."""
    if total_seconds < 60:
        return f"{round(total_seconds)}s"
    if total_seconds < 3600:
        return f"{round(total_seconds / 60)}m"
    if total_seconds < 86400:
        return f"{total_seconds / 3600:.1f}h"
    return f"{total_seconds / 86400:.1f}d"
