"""
Traits — the Creature's Heritable Parameters.

Eight numbers are drawn once, at birth, and never change afterwards. They do not
tell the creature what to do; they bias how everything else behaves: how fast
the heart beats, how quickly energy burns, how expensive actions are, how far
the colour can wander, how much the creature wants to move or to watch.

Like a birth certificate, a TraitVector is frozen. Rebirth produces a new one.
"""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass, fields
from types import MappingProxyType
from typing import Any, Mapping, Optional

# Inclusive [min, max] range for every trait.
TRAIT_RANGES: Mapping[str, tuple[float, float]] = MappingProxyType({
    "heartbeat_speed": (0.3, 1.0),
    "metabolism_rate": (0.3, 1.0),
    "hue_primary": (0.0, 1.0),
    "hue_shift_range": (0.05, 0.20),
    "movement_bias": (0.0, 1.0),
    "expressiveness": (0.3, 1.0),
    "energy_efficiency": (0.3, 1.0),
    "curiosity": (0.0, 1.0),
})


def _clamp_trait(name: str, value: float) -> float:
    low, high = TRAIT_RANGES[name]
    return max(low, min(high, float(value)))


@dataclass(frozen=True)
class TraitVector:
    """Immutable per-creature parameters generated once at birth."""

    heartbeat_speed: float = 0.65
    metabolism_rate: float = 0.65
    hue_primary: float = 0.5
    hue_shift_range: float = 0.1
    movement_bias: float = 0.5
    expressiveness: float = 0.65
    energy_efficiency: float = 0.65
    curiosity: float = 0.5

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _clamp_trait(f.name, getattr(self, f.name)))

    @classmethod
    def generate(cls, rng: Optional[random.Random] = None) -> TraitVector:
        """Draw every trait uniformly within its range."""
        rng = rng or random.Random()
        return cls(**{
            name: low + rng.random() * (high - low)
            for name, (low, high) in TRAIT_RANGES.items()
        })

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TraitVector:
        """Rebuild from persisted data; unknown keys are ignored, values clamped."""
        known = {k: float(v) for k, v in data.items() if k in TRAIT_RANGES}
        return cls(**known)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    # -- derived quantities ----------------------------------------------

    def heartbeat_period(self, base_period: float) -> float:
        """Slower hearts stretch every phase of the cycle."""
        return base_period / self.heartbeat_speed

    def action_cost(self, base_cost: float) -> float:
        return base_cost * (1.0 - self.energy_efficiency * 0.5)

    def scaled_intensity(self, raw_intensity: float) -> float:
        return min(1.0, raw_intensity * self.expressiveness)

    def prompt_hints(self) -> str:
        """Describe the strongest traits as personality hints for the prompt."""
        hints: list[str] = []

        if self.movement_bias > 0.7:
            hints.append("you tend to move and explore")
        elif self.movement_bias < 0.3:
            hints.append("you prefer stillness and observation")

        if self.curiosity > 0.7:
            hints.append("you are drawn to the observer")
        elif self.curiosity < 0.3:
            hints.append("you are wary of the observer")

        if self.expressiveness > 0.7:
            hints.append("you express yourself intensely")
        elif self.expressiveness < 0.4:
            hints.append("you are subtle and muted")

        if self.metabolism_rate > 0.7:
            hints.append("you burn energy quickly")
        elif self.metabolism_rate < 0.4:
            hints.append("you conserve energy naturally")

        if self.energy_efficiency > 0.7:
            hints.append("your actions cost little effort")

        return ". ".join(hints) + "." if hints else ""
