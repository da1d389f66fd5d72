"""
Legacy strategy — the heartbeat is the only clock.

No autonomous reflex. Entering the THINK phase arms exactly one inference call
for that cycle; the result is repaired into a single action. If the slot is busy
when THINK comes round, that cycle simply goes without a thought.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import structlog

from terrarium.actions import action_schema, actions_for_level
from terrarium.heartbeat import HeartbeatPhase
from terrarium.strategies.base import BehaviorStrategy, InferenceContext, Message

logger = structlog.get_logger(__name__)

# Idle prompts, one pool per level: raw sensation → reflection.
AMBIENT_PROMPTS: tuple[tuple[str, ...], ...] = (
    ("light...", "warmth...", "something moves...", "dark now...", "pulse...", "what..."),
    (
        "you sense something nearby",
        "the light changes",
        "you feel contained",
        "there is a boundary around you",
    ),
    (
        "look around you. what do you notice?",
        "something watches you. how does that feel?",
        "you exist. think about what that means.",
    ),
    (
        "reflect on your recent thoughts",
        "what do you want?",
        "who is watching you, and why?",
        "what have you learned about yourself?",
    ),
)


class LegacyStrategy(BehaviorStrategy):
    name = "legacy"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._armed = False

    def tick(self, dt: float) -> None:
        return None

    def on_heartbeat_phase(self, phase: HeartbeatPhase) -> None:
        # One chance per cycle: armed on THINK entry, lost once THINK is over.
        self._armed = phase is HeartbeatPhase.THINK

    def needs_inference(self) -> bool:
        return self._armed

    def inference_grammar(self) -> Optional[dict[str, Any]]:
        return action_schema(self._level)

    def build_inference_prompt(self, context: InferenceContext) -> list[Message]:
        self._armed = False
        actions = actions_for_level(self._level)
        example = {"action": actions[0], "intensity": 0.5}
        pool = AMBIENT_PROMPTS[min(self._level, len(AMBIENT_PROMPTS) - 1)]
        return self._messages(
            context,
            instruction=f"Choose one action: {', '.join(actions)}.",
            idle_prompt=self._rng.choice(pool),
            examples=(
                {"role": "user", "content": "What do you do?"},
                {"role": "assistant", "content": json.dumps(example)},
            ),
        )

    def on_inference_result(self, raw: str):
        action = self._repair.repair(raw, self._level)
        logger.debug("legacy.action_repaired", action=action.name)
        return action
