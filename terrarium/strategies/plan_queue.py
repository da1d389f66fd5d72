"""
Plan Queue strategy — think rarely, act often.

One inference call yields a short plan of 3-5 actions plus an optional mood.
The queue is replayed one action per sub-tick; a new plan is requested only
when the queue has run dry and the per-level minimum interval has passed. A
user message short-circuits the wait (rate-limited) and clears the old plan.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Optional

import structlog

from terrarium.actions import Action, actions_for_level, plan_schema
from terrarium.energy import EnergyState
from terrarium.repair import extract_json_object
from terrarium.strategies.base import BehaviorStrategy, InferenceContext, Message, level_interval

logger = structlog.get_logger(__name__)

SUB_TICK_SECONDS = (45.0, 15.0, 7.5, 4.0)
MIN_INFERENCE_SECONDS = (180.0, 60.0, 30.0, 20.0)
USER_REFLEX_COOLDOWN = 5.0
MAX_PLAN_LENGTH = 5


class PlanQueueStrategy(BehaviorStrategy):
    name = "plan-queue"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._queue: deque[Action] = deque()
        self._mood: Optional[str] = None
        self._since_action = 0.0
        self._last_inference: Optional[float] = None
        self._last_user_reflex: Optional[float] = None
        self._pending_reflex = False

    def _on_init(self) -> None:
        self._queue.clear()
        self._since_action = 0.0
        # No plan yet: the first one is requested straight away.
        self._last_inference = None
        self._pending_reflex = False

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def mood(self) -> Optional[str]:
        return self._mood

    # -------------------------------------------------------------------------
    # Reflex
    # -------------------------------------------------------------------------

    def tick(self, dt: float) -> Optional[Action]:
        self._since_action += dt
        if self._since_action < level_interval(SUB_TICK_SECONDS, self._level):
            return None
        if not self._queue:
            return None
        self._since_action = 0.0
        action = self._queue.popleft()
        # The plan may predate a level change; re-check the vocabulary.
        if not self._allowed(action.name):
            action.name = self._repair.resolve_name(action.name, self._level)
        return action

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def needs_inference(self) -> bool:
        if self._pending_reflex:
            return True
        if self._queue:
            return False
        if self._last_inference is None:
            return True
        elapsed = self._clock() - self._last_inference
        return elapsed >= level_interval(MIN_INFERENCE_SECONDS, self._level)

    def inference_grammar(self) -> Optional[dict[str, Any]]:
        return plan_schema(self._level)

    def build_inference_prompt(self, context: InferenceContext) -> list[Message]:
        self._pending_reflex = False
        self._last_inference = self._clock()
        actions = ", ".join(actions_for_level(self._level))
        mood = f" You feel {self._mood}." if self._mood else ""
        return self._messages(
            context,
            instruction=(
                f"Plan your next 3 to 5 actions from: {actions}.{mood} "
                'Reply as {"plan": [{"action": ..., "intensity": ...}], "mood": ...}.'
            ),
            idle_prompt="What will you do next?",
        )

    def on_inference_result(self, raw: str) -> None:
        self._last_inference = self._clock()
        plan = self._parse_plan(raw)
        if plan:
            self._queue.clear()
            self._queue.extend(plan)
            self._since_action = level_interval(SUB_TICK_SECONDS, self._level)
        logger.debug("plan_queue.plan_received", steps=len(plan), mood=self._mood)
        return None

    def _parse_plan(self, raw: str) -> list[Action]:
        if not raw or not raw.strip():
            return []
        obj = extract_json_object(raw, "plan")
        if obj is not None and isinstance(obj.get("plan"), list):
            mood = obj.get("mood")
            if isinstance(mood, str) and mood.strip():
                self._mood = mood.strip()
            steps = [s for s in obj["plan"] if isinstance(s, dict)][:MAX_PLAN_LENGTH]
            return [self._repair.normalize(step, self._level) for step in steps]
        single = extract_json_object(raw, "action")
        if single is not None:
            return [self._repair.normalize(single, self._level)]
        return [self._repair.repair(raw, self._level)]

    # -------------------------------------------------------------------------
    # Stimuli
    # -------------------------------------------------------------------------

    def on_user_message(self, text: str) -> None:
        now = self._clock()
        if (
            self._last_user_reflex is not None
            and now - self._last_user_reflex < USER_REFLEX_COOLDOWN
        ):
            logger.debug("plan_queue.user_reflex_rate_limited")
            return
        self._last_user_reflex = now
        self._queue.clear()
        self._pending_reflex = True

    def on_energy_state_change(self, state: EnergyState) -> None:
        if state is EnergyState.DORMANT:
            self._queue.clear()
