"""
Layered strategy — a fast weighted sampler steered by a slow disposition.

System 1 picks an action every tick from trait-derived base weights scaled by
per-action modifiers and the current energy band. System 2 is an occasional
inference call that answers with four disposition weights (move, rest,
express, caution) and sometimes an explicit action. Dispositions multiply the
System 1 modifiers, which then relax back toward neutral on every tick so an
old opinion fades out within about a minute.
"""

from __future__ import annotations

import math
from typing import Any, Optional

import structlog

from terrarium.actions import Action, actions_for_level, disposition_schema, rest_action
from terrarium.energy import EnergyState
from terrarium.repair import extract_json_object
from terrarium.strategies.base import BehaviorStrategy, InferenceContext, Message, level_interval

logger = structlog.get_logger(__name__)

SYSTEM1_TICK_SECONDS = (8.0, 6.0, 4.0, 3.0)
SYSTEM2_INTERVAL_SECONDS = (300.0, 120.0, 60.0, 45.0)

MODIFIER_MIN = 0.3
MODIFIER_MAX = 3.0
# Seconds for a modifier's distance from 1.0 to shrink by a factor of e.
DISPOSITION_TIME_CONSTANT = 20.0
OVERRIDE_INTENSITY = 0.7

ENERGY_MULTIPLIERS: dict[EnergyState, float] = {
    EnergyState.THRIVING: 1.0,
    EnergyState.NORMAL: 0.9,
    EnergyState.HUNGRY: 0.7,
    EnergyState.STARVING: 0.4,
    EnergyState.DORMANT: 0.0,
}

DISPOSITION_KEYS = ("move", "rest", "express", "caution")


def base_weights(traits) -> dict[str, float]:
    mb = traits.movement_bias
    expr = traits.expressiveness
    return {
        "drift": 0.15 + mb * 0.3,
        "pulse": 0.15,
        "absorb": 0.1 + traits.metabolism_rate * 0.1,
        "glow": 0.1 + expr * 0.15,
        "shrink": 0.05 + (1 - mb) * 0.1,
        "reach": 0.1 + traits.curiosity * 0.2,
        "shift_color": 0.05 + expr * 0.1,
        "spin": 0.05 + expr * 0.05,
        "rest": 0.15 + (1 - traits.metabolism_rate) * 0.1,
    }


def _clamp_modifier(value: float) -> float:
    return max(MODIFIER_MIN, min(MODIFIER_MAX, value))


def _weight(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


class WeightedSampler:
    """System 1: base weights × modifiers × energy multiplier."""

    def __init__(self, traits, rng):
        self._rng = rng
        self.base = base_weights(traits)
        self.modifiers: dict[str, float] = {name: 1.0 for name in self.base}
        self.energy_multiplier = 1.0

    def set_energy_state(self, state: EnergyState) -> None:
        self.energy_multiplier = ENERGY_MULTIPLIERS[state]

    def apply_disposition(self, weights: dict[str, float]) -> None:
        """Multiply modifiers by factors derived from a disposition vector."""
        move = weights.get("move", 0.0)
        rest = weights.get("rest", 0.0)
        express = weights.get("express", 0.0)
        caution = weights.get("caution", 0.0)

        factors: dict[str, float] = {}

        def scale(name: str, factor: float) -> None:
            factors[name] = factors.get(name, 1.0) * factor

        if move > 0.5:
            scale("drift", 1 + move)
            scale("reach", 0.8 + move * 0.5)
            scale("rest", max(0.3, 1 - move * 0.5))
        if rest > 0.5:
            scale("rest", 1 + rest)
            scale("drift", max(0.3, 1 - rest * 0.5))
            scale("reach", max(0.3, 1 - rest * 0.3))
        if express > 0.5:
            scale("glow", 1 + express * 0.5)
            scale("pulse", 0.8 + express * 0.5)
            scale("shift_color", 1 + express * 0.5)
            scale("spin", 0.8 + express * 0.5)
        if caution > 0.5:
            scale("shrink", 1 + caution * 0.5)
            scale("rest", 0.8 + caution * 0.5)
            scale("drift", max(0.3, 1 - caution * 0.4))

        for name, factor in factors.items():
            self.modifiers[name] = _clamp_modifier(self.modifiers[name] * factor)

    def boost_alert(self) -> None:
        for name, bump in (("pulse", 0.5), ("glow", 0.3), ("shift_color", 0.3)):
            self.modifiers[name] = _clamp_modifier(self.modifiers[name] + bump)

    def decay(self, dt: float) -> None:
        """Relax every modifier toward 1.0."""
        keep = math.exp(-dt / DISPOSITION_TIME_CONSTANT)
        for name, value in self.modifiers.items():
            self.modifiers[name] = _clamp_modifier(1.0 + (value - 1.0) * keep)

    def sample(self, allowed: tuple[str, ...]) -> Optional[str]:
        if self.energy_multiplier <= 0:
            return None
        candidates = [
            (name, self.base[name] * self.modifiers[name] * self.energy_multiplier)
            for name in allowed
            if name in self.base
        ]
        total = sum(w for _, w in candidates)
        if total <= 0:
            return None
        roll = self._rng.random() * total
        for name, weight in candidates:
            roll -= weight
            if roll <= 0:
                return name
        return candidates[-1][0]


class LayeredStrategy(BehaviorStrategy):
    name = "layered"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._sampler: Optional[WeightedSampler] = None
        self._since_tick = 0.0
        self._last_system2 = 0.0
        self._pending_reflex = False

    def _on_init(self) -> None:
        self._sampler = WeightedSampler(self._traits, self._rng)
        self._sampler.set_energy_state(self._energy.state)
        self._since_tick = 0.0
        self._last_system2 = self._clock()
        self._pending_reflex = False

    @property
    def sampler(self) -> WeightedSampler:
        return self._sampler

    # -------------------------------------------------------------------------
    # System 1
    # -------------------------------------------------------------------------

    def tick(self, dt: float) -> Optional[Action]:
        if self._sampler is None:
            return None
        interval = level_interval(SYSTEM1_TICK_SECONDS, self._level)
        self._since_tick += dt
        if self._since_tick < interval:
            return None
        self._since_tick = 0.0
        self._sampler.decay(interval)
        if self._sampler.energy_multiplier <= 0:
            return None
        name = self._sampler.sample(self._actions())
        if name is None:
            return rest_action(self._level)
        intensity = round(0.3 + self._rng.random() * 0.5, 2)
        return Action(name=name, intensity=intensity)

    def _actions(self) -> tuple[str, ...]:
        return actions_for_level(self._level)

    # -------------------------------------------------------------------------
    # System 2
    # -------------------------------------------------------------------------

    def needs_inference(self) -> bool:
        if self._pending_reflex:
            return True
        elapsed = self._clock() - self._last_system2
        return elapsed >= level_interval(SYSTEM2_INTERVAL_SECONDS, self._level)

    def inference_grammar(self) -> Optional[dict[str, Any]]:
        return disposition_schema(self._level)

    def build_inference_prompt(self, context: InferenceContext) -> list[Message]:
        self._pending_reflex = False
        self._last_system2 = self._clock()
        return self._messages(
            context,
            instruction=(
                "Say how you are inclined to behave: weights from 0 to 1 for "
                "move, rest, express and caution. You may also name one action."
            ),
            idle_prompt="How do you feel right now?",
        )

    def on_inference_result(self, raw: str) -> Optional[Action]:
        self._last_system2 = self._clock()
        data = extract_json_object(raw) if raw else None
        if data is None:
            return None
        weights = data.get("weights")
        if isinstance(weights, dict):
            vector = {k: _weight(weights.get(k)) for k in DISPOSITION_KEYS}
            self._sampler.apply_disposition(vector)
            logger.debug("layered.disposition_applied", **vector)
        if data.get("action"):
            override = dict(data)
            override["intensity"] = OVERRIDE_INTENSITY
            return self._repair.normalize(override, self._level)
        return None

    # -------------------------------------------------------------------------
    # Stimuli
    # -------------------------------------------------------------------------

    def on_user_message(self, text: str) -> None:
        if self._sampler is not None:
            self._sampler.boost_alert()
        self._pending_reflex = True

    def on_energy_state_change(self, state: EnergyState) -> None:
        if self._sampler is not None:
            self._sampler.set_energy_state(state)
        if state is not EnergyState.DORMANT:
            self._pending_reflex = True
