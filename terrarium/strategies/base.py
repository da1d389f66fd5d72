"""
Behavior Strategy — the contract every way of being alive implements.

A strategy decides two things on every tick of the control loop:
  - whether a fast local reflex fires right now (``tick``), and
  - whether it is time to ask the slow inference engine (``needs_inference``),
    and with what prompt (``build_inference_prompt``).

Strategies never call the inference engine themselves and never block. The
orchestrator owns the in-flight request and hands raw results back through
``on_inference_result``. Each strategy keeps its mutable state private.
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

from terrarium.actions import Action, actions_for_level
from terrarium.intelligence import MAX_LEVEL, build_system_prompt
from terrarium.repair import ActionRepairPipeline

if TYPE_CHECKING:
    from terrarium.energy import EnergyLedger, EnergyState
    from terrarium.heartbeat import HeartbeatPhase
    from terrarium.traits import TraitVector

Message = dict[str, str]


@dataclass
class InferenceContext:
    """Everything a strategy may put into a prompt."""

    energy: float
    traits: TraitVector
    user_message: Optional[str] = None
    memory_context: str = ""
    conversation_messages: list[Message] = field(default_factory=list)


def level_interval(table: Sequence[float], level: int) -> float:
    """Pick a per-level value from a four-entry table."""
    return table[max(0, min(level, len(table) - 1))]


class BehaviorStrategy(ABC):
    """Base class for the closed set of behavior strategies."""

    name: str = ""

    def __init__(
        self,
        repair: Optional[ActionRepairPipeline] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rng = rng or random.Random()
        self._repair = repair or ActionRepairPipeline(self._rng)
        self._clock = clock
        self._traits: Optional[TraitVector] = None
        self._level = 0
        self._energy: Optional[EnergyLedger] = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self, traits: TraitVector, level: int, energy: EnergyLedger) -> None:
        self._traits = traits
        self._level = max(0, min(level, MAX_LEVEL))
        self._energy = energy
        self._on_init()

    def _on_init(self) -> None:
        """Hook for subclasses to build trait-derived state."""

    def set_level(self, level: int) -> None:
        self._level = max(0, min(level, MAX_LEVEL))

    @property
    def level(self) -> int:
        return self._level

    # -------------------------------------------------------------------------
    # Per-tick behavior
    # -------------------------------------------------------------------------

    @abstractmethod
    def tick(self, dt: float) -> Optional[Action]:
        """Fast reflex. Never touches inference."""

    @abstractmethod
    def needs_inference(self) -> bool:
        """Whether the orchestrator should start an inference call now."""

    @abstractmethod
    def build_inference_prompt(self, context: InferenceContext) -> list[Message]:
        """Ordered chat messages for the next inference call."""

    @abstractmethod
    def on_inference_result(self, raw: str) -> Optional[Action]:
        """Consume raw model output; optionally return an immediate action."""

    def inference_grammar(self) -> Optional[dict[str, Any]]:
        """JSON schema the engine may use for constrained decoding."""
        return None

    # -------------------------------------------------------------------------
    # Stimuli
    # -------------------------------------------------------------------------

    def on_user_message(self, text: str) -> None:
        pass

    def on_energy_state_change(self, state: EnergyState) -> None:
        pass

    def on_heartbeat_phase(self, phase: HeartbeatPhase) -> None:
        pass

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _allowed(self, name: str) -> bool:
        return name in actions_for_level(self._level)

    def _system_prompt(self, context: InferenceContext) -> str:
        return build_system_prompt(
            self._level,
            context.energy,
            context.traits,
            context.user_message,
            context.memory_context,
        )

    def _messages(
        self,
        context: InferenceContext,
        instruction: str,
        idle_prompt: str,
        examples: Sequence[Message] = (),
    ) -> list[Message]:
        system = self._system_prompt(context)
        user = (
            f"[The observer speaks]: {context.user_message}"
            if context.user_message
            else idle_prompt
        )
        return [
            {"role": "system", "content": f"{system}\n{instruction}"},
            *examples,
            *context.conversation_messages,
            {"role": "user", "content": user},
        ]
