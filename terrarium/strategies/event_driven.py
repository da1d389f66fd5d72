"""
Event-Driven strategy — a mood-shaped Markov chain with occasional thoughts.

The creature wanders between four behavioral states (idle, exploring, resting,
alert) on a fixed per-level tick. Transition probabilities start from a
trait-derived base table; a mood keyword from inference multiplies them for a
while, fading linearly back to the base table. Inference is requested only on
events: a user message, an energy-state change, or a long idle stretch.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from terrarium.actions import Action, mood_action_schema, rest_action
from terrarium.energy import EnergyState
from terrarium.repair import extract_json_object
from terrarium.strategies.base import BehaviorStrategy, InferenceContext, Message, level_interval

logger = structlog.get_logger(__name__)

TICK_SECONDS = (8.0, 6.0, 4.0, 3.0)
IDLE_TIMEOUT = 120.0
MOOD_DURATION = 60.0


class BehaviorState(str, Enum):
    IDLE = "idle"
    EXPLORING = "exploring"
    RESTING = "resting"
    ALERT = "alert"


STATES: tuple[BehaviorState, ...] = tuple(BehaviorState)

# Candidate actions per state, each with an intensity range.
STATE_ACTIONS: dict[BehaviorState, tuple[tuple[str, float, float], ...]] = {
    BehaviorState.IDLE: (("pulse", 0.2, 0.5), ("glow", 0.1, 0.4)),
    BehaviorState.EXPLORING: (("drift", 0.4, 0.8), ("reach", 0.3, 0.7)),
    BehaviorState.RESTING: (("rest", 0.3, 0.5), ("shrink", 0.2, 0.4)),
    BehaviorState.ALERT: (("pulse", 0.5, 0.9), ("shift_color", 0.4, 0.7), ("glow", 0.5, 0.8)),
}

# Mood keyword fragments and the per-target-state multipliers they imply.
MOOD_MODIFIERS: tuple[tuple[tuple[str, ...], dict[BehaviorState, float]], ...] = (
    (("curious", "explor"), {
        BehaviorState.EXPLORING: 1.5, BehaviorState.IDLE: 0.5, BehaviorState.RESTING: 0.5,
    }),
    (("calm", "peace", "rest"), {
        BehaviorState.RESTING: 1.5, BehaviorState.IDLE: 1.2, BehaviorState.EXPLORING: 0.3,
    }),
    (("alert", "excit", "fear"), {
        BehaviorState.ALERT: 2.0, BehaviorState.EXPLORING: 0.5, BehaviorState.RESTING: 0.3,
    }),
    (("happy", "joy", "warm"), {
        BehaviorState.EXPLORING: 1.3, BehaviorState.IDLE: 1.0, BehaviorState.ALERT: 0.5,
    }),
)

TransitionTable = dict[BehaviorState, dict[BehaviorState, float]]


def base_transitions(movement_bias: float, curiosity: float) -> TransitionTable:
    """Trait-derived transition weights (rows are not yet normalized)."""
    mb, c = movement_bias, curiosity
    s = BehaviorState
    return {
        s.IDLE: {s.EXPLORING: 0.2 * mb + 0.1 * c, s.RESTING: 0.3 * (1 - mb), s.ALERT: 0.15 * c, s.IDLE: 0.35},
        s.EXPLORING: {s.IDLE: 0.3, s.ALERT: 0.2 * c, s.EXPLORING: 0.5 * mb, s.RESTING: 0.0},
        s.RESTING: {s.IDLE: 0.4, s.EXPLORING: 0.2 * mb, s.RESTING: 0.4 * (1 - mb), s.ALERT: 0.0},
        s.ALERT: {s.IDLE: 0.3, s.EXPLORING: 0.3 * c, s.RESTING: 0.1, s.ALERT: 0.3},
    }


def mood_modifiers(mood: str) -> dict[BehaviorState, float]:
    """Multipliers for the first keyword family found in ``mood``."""
    lowered = mood.lower()
    for fragments, modifiers in MOOD_MODIFIERS:
        if any(f in lowered for f in fragments):
            return dict(modifiers)
    return {}


@dataclass
class ActiveMood:
    name: str
    modifiers: dict[BehaviorState, float]
    started_at: float
    duration: float = MOOD_DURATION

    def strength(self, now: float) -> float:
        """1.0 when fresh, falling linearly to 0.0 at expiry."""
        if self.duration <= 0:
            return 0.0
        return max(0.0, min(1.0, 1.0 - (now - self.started_at) / self.duration))


class MoodChain:
    """The four-state Markov chain and its fading mood."""

    def __init__(self, movement_bias: float, curiosity: float, rng, clock: Callable[[], float]):
        self._base = base_transitions(movement_bias, curiosity)
        self._rng = rng
        self._clock = clock
        self.state = BehaviorState.IDLE
        self.mood: Optional[ActiveMood] = None

    def apply_mood(self, mood: str, duration: float = MOOD_DURATION) -> bool:
        modifiers = mood_modifiers(mood)
        if not modifiers:
            return False
        self.mood = ActiveMood(mood, modifiers, self._clock(), duration)
        return True

    def force_alert(self) -> None:
        self.state = BehaviorState.ALERT

    def effective_transitions(self) -> TransitionTable:
        """Base table with the fading mood applied, each row summing to 1.0."""
        now = self._clock()
        strength = 0.0
        if self.mood is not None:
            strength = self.mood.strength(now)
            if strength <= 0.0:
                self.mood = None
        table: TransitionTable = {}
        for origin, row in self._base.items():
            weighted = {}
            for target, weight in row.items():
                factor = 1.0
                if self.mood is not None:
                    full = self.mood.modifiers.get(target, 1.0)
                    factor = 1.0 + (full - 1.0) * strength
                weighted[target] = weight * factor
            total = sum(weighted.values())
            if total > 0:
                table[origin] = {t: w / total for t, w in weighted.items()}
            else:
                table[origin] = {t: (1.0 if t is origin else 0.0) for t in weighted}
        return table

    def step(self) -> BehaviorState:
        row = self.effective_transitions()[self.state]
        roll = self._rng.random()
        cumulative = 0.0
        chosen = None
        for target, probability in row.items():
            if probability <= 0:
                continue
            chosen = target
            cumulative += probability
            if roll < cumulative:
                break
        if chosen is not None:
            self.state = chosen
        return self.state


class EventDrivenStrategy(BehaviorStrategy):
    name = "event-driven"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._chain: Optional[MoodChain] = None
        self._since_tick = 0.0
        self._last_inference = 0.0
        self._pending_event: Optional[str] = None
        self._alert_due = False

    def _on_init(self) -> None:
        self._chain = MoodChain(
            self._traits.movement_bias,
            self._traits.curiosity,
            self._rng,
            self._clock,
        )
        self._since_tick = 0.0
        self._last_inference = self._clock()
        self._pending_event = None
        self._alert_due = False

    @property
    def chain(self) -> MoodChain:
        return self._chain

    @property
    def state(self) -> BehaviorState:
        return self._chain.state

    # -------------------------------------------------------------------------
    # Reflex
    # -------------------------------------------------------------------------

    def tick(self, dt: float) -> Optional[Action]:
        if self._chain is None:
            return None
        self._since_tick += dt
        if self._since_tick < level_interval(TICK_SECONDS, self._level):
            return None
        self._since_tick = 0.0
        if self._alert_due:
            # Startled: act from the alert pool before the chain moves on.
            self._alert_due = False
            return self._pick_action(self._chain.state)
        state = self._chain.step()
        return self._pick_action(state)

    def _pick_action(self, state: BehaviorState) -> Action:
        pool = [entry for entry in STATE_ACTIONS[state] if self._allowed(entry[0])]
        if not pool:
            return rest_action(self._level)
        name, low, high = self._rng.choice(pool)
        intensity = round(low + self._rng.random() * (high - low), 2)
        return Action(name=name, intensity=intensity)

    # -------------------------------------------------------------------------
    # Inference
    # -------------------------------------------------------------------------

    def needs_inference(self) -> bool:
        if self._pending_event is not None:
            return True
        return self._clock() - self._last_inference >= IDLE_TIMEOUT

    def inference_grammar(self) -> Optional[dict[str, Any]]:
        return mood_action_schema(self._level)

    def build_inference_prompt(self, context: InferenceContext) -> list[Message]:
        event = self._pending_event
        self._pending_event = None
        self._last_inference = self._clock()
        idle = (
            f"You feel your energy change: you are now {event}."
            if event and event != "observer"
            else "Time passes quietly. How do you feel?"
        )
        return self._messages(
            context,
            instruction=(
                f"You are {self._chain.state.value}. Choose an action and name your mood "
                "(curious, calm, alert, or happy)."
            ),
            idle_prompt=idle,
        )

    def on_inference_result(self, raw: str) -> Optional[Action]:
        self._last_inference = self._clock()
        if not raw or not raw.strip():
            return None
        data = extract_json_object(raw)
        if data is not None:
            mood = data.get("mood")
            if isinstance(mood, str) and self._chain.apply_mood(mood):
                logger.debug("event_driven.mood_applied", mood=mood)
        return self._repair.repair(raw, self._level)

    # -------------------------------------------------------------------------
    # Stimuli
    # -------------------------------------------------------------------------

    def on_user_message(self, text: str) -> None:
        if self._chain is not None:
            self._chain.force_alert()
            self._alert_due = True
            self._since_tick = level_interval(TICK_SECONDS, self._level)
        self._pending_event = "observer"

    def on_energy_state_change(self, state: EnergyState) -> None:
        if state is EnergyState.DORMANT:
            return
        self._pending_event = state.value
