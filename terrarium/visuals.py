"""
Visual parameters handed to the renderer once per tick.

The core never draws anything. It publishes a small struct (size, glow, hue,
offset, dimming and the name of an action that just fired) and the renderer
does the rest. Actions leave an impulse that fades out over a second or two;
the heartbeat pulse rides on top of it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from terrarium.actions import Action
from terrarium.traits import TraitVector

IMPULSE_HALF_LIFE = 1.5
PULSE_RADIUS = 0.08

_DIRECTION_VECTORS: dict[str, tuple[float, float, float]] = {
    "up": (0.0, 1.0, 0.0),
    "down": (0.0, -1.0, 0.0),
    "left": (-1.0, 0.0, 0.0),
    "right": (1.0, 0.0, 0.0),
    "toward": (0.0, 0.0, 1.0),
    "away": (0.0, 0.0, -1.0),
}

# action → (radius impulse, emissive impulse) per unit intensity
_IMPULSES: dict[str, tuple[float, float]] = {
    "drift": (0.0, 0.0),
    "pulse": (0.25, 0.2),
    "absorb": (0.1, 0.2),
    "glow": (0.0, 0.8),
    "shrink": (-0.35, 0.0),
    "reach": (0.15, 0.1),
    "shift_color": (0.0, 0.3),
    "spin": (0.05, 0.3),
    "speak": (0.05, 0.5),
    "morph": (0.3, 0.3),
    "split": (0.4, 0.4),
    "rest": (-0.1, -0.2),
}


@dataclass
class VisualParams:
    radius_multiplier: float = 1.0
    emissive_boost: float = 0.0
    hue: float = 0.5
    hue_shift: float = 0.0
    position_offset: tuple[float, float, float] = (0.0, 0.0, 0.0)
    dimming: float = 1.0
    action_event: Optional[str] = None


@dataclass
class VisualState:
    """Accumulates action impulses and turns them into per-tick parameters."""

    traits: TraitVector
    radius: float = 0.0
    emissive: float = 0.0
    hue_shift: float = 0.0
    offset: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    _event: Optional[str] = None

    def on_action(self, action: Action) -> None:
        intensity = self.traits.scaled_intensity(action.intensity)
        radius, emissive = _IMPULSES.get(action.name, (0.0, 0.0))
        self.radius += radius * intensity
        self.emissive += emissive * intensity

        if action.name in ("drift", "reach"):
            direction = _DIRECTION_VECTORS.get(action.direction or "", None)
            if direction is None:
                direction = (1.0, 0.0, 0.0) if action.name == "drift" else (0.0, 0.0, 1.0)
            reach = 0.5 * intensity * (0.5 + self.traits.movement_bias)
            for i in range(3):
                self.offset[i] += direction[i] * reach
        if action.name == "shift_color":
            self.hue_shift += self.traits.hue_shift_range * intensity
        self._event = action.name

    def update(self, dt: float, pulse: float = 0.0, dimming: float = 1.0) -> VisualParams:
        keep = math.pow(0.5, dt / IMPULSE_HALF_LIFE) if dt > 0 else 1.0
        self.radius *= keep
        self.emissive *= keep
        self.hue_shift *= keep
        self.offset = [v * keep for v in self.offset]

        event, self._event = self._event, None
        radius = 1.0 + self.radius + pulse * PULSE_RADIUS * self.traits.expressiveness
        return VisualParams(
            radius_multiplier=max(0.2, radius),
            emissive_boost=max(0.0, self.emissive) * dimming,
            hue=self.traits.hue_primary,
            hue_shift=self.hue_shift,
            position_offset=(self.offset[0], self.offset[1], self.offset[2]),
            dimming=dimming,
            action_event=event,
        )
