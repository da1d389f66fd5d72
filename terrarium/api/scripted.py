"""
Scripted backend — an offline stand-in for a small local model.

Produces plausible creature output shaped by the grammar it is handed (single
actions, plans, or disposition vectors), with simulated latency. A fraction of
replies are deliberately sloppy (prose, fenced JSON, truncated objects) so the
repair path gets exercised the way a tiny model would exercise it. A fixed list
of replies can be supplied instead, which is what the tests do.
"""

from __future__ import annotations

import asyncio
import json
import random
from typing import Any, Iterable, Optional

import structlog

from terrarium.actions import DIRECTIONS, L0_ACTIONS
from terrarium.api.engine import InferenceEngine, InferenceEngineInitError, ProgressCallback

logger = structlog.get_logger(__name__)

MOODS = ("curious", "calm", "alert", "happy", "restless")
THOUGHTS = ("warm here", "what is that", "light moves", "someone watches", "i drift", "quiet")


class ScriptedInferenceEngine(InferenceEngine):
    """Deterministic-when-seeded fake model."""

    def __init__(
        self,
        responses: Optional[Iterable[str]] = None,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        sloppy_rate: float = 0.2,
        fail_init_times: int = 0,
        rng: Optional[random.Random] = None,
    ):
        self._responses = list(responses) if responses is not None else None
        self._min_latency = min_latency
        self._max_latency = max(min_latency, max_latency)
        self._sloppy_rate = sloppy_rate
        self._fail_init_times = fail_init_times
        self._rng = rng or random.Random()
        self._ready = False
        self.model_id: Optional[str] = None
        self.calls: list[dict[str, Any]] = []
        self.cache_clears = 0
        self.destroyed = False

    @classmethod
    def from_config(cls, config, rng: Optional[random.Random] = None) -> ScriptedInferenceEngine:
        return cls(
            min_latency=config.scripted_min_latency,
            max_latency=config.scripted_max_latency,
            rng=rng,
        )

    async def init(
        self,
        model_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        if self._fail_init_times > 0:
            self._fail_init_times -= 1
            raise InferenceEngineInitError("scripted engine refused to load")
        self.model_id = model_id or "scripted"
        if on_progress:
            on_progress(1.0, "ready")
        self._ready = True
        self.destroyed = False

    def is_ready(self) -> bool:
        return self._ready

    def clear_cache(self) -> None:
        self.cache_clears += 1

    async def destroy(self) -> None:
        self._ready = False
        self.destroyed = True

    async def complete(
        self,
        messages: list[dict[str, str]],
        grammar: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        if not self._ready:
            raise InferenceEngineInitError("scripted engine used before init()")
        self.calls.append({"messages": messages, "grammar": grammar, "options": options})
        if self._max_latency > 0:
            await asyncio.sleep(self._rng.uniform(self._min_latency, self._max_latency))
        if self._responses is not None:
            return self._responses.pop(0) if self._responses else ""
        return self._generate(grammar or {})

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def _allowed(self, grammar: dict[str, Any]) -> list[str]:
        props = grammar.get("properties", {})
        if "plan" in props:
            props = props["plan"].get("items", {}).get("properties", {})
        enum = props.get("action", {}).get("enum")
        return list(enum) if enum else list(L0_ACTIONS)

    def _action(self, allowed: list[str]) -> dict[str, Any]:
        obj: dict[str, Any] = {
            "action": self._rng.choice(allowed),
            "intensity": round(self._rng.uniform(0.2, 0.9), 2),
        }
        if self._rng.random() < 0.5:
            obj["direction"] = self._rng.choice(DIRECTIONS)
        if self._rng.random() < 0.5:
            obj["thought"] = self._rng.choice(THOUGHTS)
        return obj

    def _generate(self, grammar: dict[str, Any]) -> str:
        props = grammar.get("properties", {})
        allowed = self._allowed(grammar)

        if "weights" in props:
            obj: dict[str, Any] = {
                "weights": {
                    k: round(self._rng.random(), 2) for k in ("move", "rest", "express", "caution")
                },
            }
            if self._rng.random() < 0.3:
                obj["action"] = self._rng.choice(allowed)
        elif "plan" in props:
            steps = self._rng.randint(3, 5)
            obj = {
                "plan": [self._action(allowed) for _ in range(steps)],
                "mood": self._rng.choice(MOODS),
            }
        else:
            obj = self._action(allowed)
            if "mood" in props:
                obj["mood"] = self._rng.choice(MOODS)

        text = json.dumps(obj)
        if self._rng.random() >= self._sloppy_rate:
            return text
        return self._sloppy(text, allowed)

    def _sloppy(self, text: str, allowed: list[str]) -> str:
        style = self._rng.randrange(4)
        if style == 0:
            return f"```json\n{text}\n```"
        if style == 1:
            return f"Sure! Here is what I do: {text} Hope that helps."
        if style == 2:
            return text[: max(1, len(text) - self._rng.randint(2, 8))]
        return f"I think I will {self._rng.choice(allowed)} for a while"
