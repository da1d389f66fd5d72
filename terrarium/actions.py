"""
Actions — the Creature's Physical Vocabulary.

Everything the creature can do is one of a small, closed set of named actions.
The set grows with the evolution level: a primordial cell can only drift, pulse
and absorb; a sentient creature can speak, morph, split and rest.

Each level also gets a JSON schema describing what a well-formed action looks
like at that level. Backends that support constrained decoding use it as a
grammar; everyone else gets it as a hint and the repair pipeline cleans up.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional

# Energy cost of each action before trait adjustment.
ACTION_COSTS: Mapping[str, float] = MappingProxyType({
    "drift": 0.5,
    "pulse": 0.5,
    "absorb": 1.0,
    "glow": 1.0,
    "shrink": 0.5,
    "reach": 1.5,
    "shift_color": 1.0,
    "spin": 1.0,
    "speak": 2.0,
    "morph": 3.0,
    "split": 4.0,
    "rest": 0.0,
})

L0_ACTIONS: tuple[str, ...] = ("drift", "pulse", "absorb")
L1_ACTIONS: tuple[str, ...] = L0_ACTIONS + ("glow", "shrink")
L2_ACTIONS: tuple[str, ...] = L1_ACTIONS + ("reach", "shift_color", "spin")
L3_ACTIONS: tuple[str, ...] = L2_ACTIONS + ("speak", "morph", "split", "rest")

DIRECTIONS: tuple[str, ...] = ("up", "down", "left", "right", "toward", "away")
COLORS: tuple[str, ...] = ("red", "blue", "green", "purple", "gold", "white")

MIN_INTENSITY = 0.1
MAX_INTENSITY = 1.0
DEFAULT_INTENSITY = 0.5
REST_INTENSITY = 0.3

# Invented verbs mapped onto real actions.
ACTION_SYNONYMS: Mapping[str, str] = MappingProxyType({
    "react": "pulse", "ripple": "pulse", "vibrate": "pulse", "throb": "pulse",
    "watch": "absorb", "observe": "absorb", "listen": "absorb", "sense": "absorb",
    "move": "drift", "float": "drift", "swim": "drift", "wander": "drift", "explore": "drift",
    "shine": "glow", "light": "glow", "bright": "glow", "radiate": "glow", "flash": "glow",
    "hide": "shrink", "retreat": "shrink", "contract": "shrink", "fear": "shrink",
    "extend": "reach", "stretch": "reach", "approach": "reach", "touch": "reach",
    "change": "shift_color", "shift": "shift_color", "color": "shift_color",
    "rotate": "spin", "twirl": "spin", "whirl": "spin",
    "say": "speak", "tell": "speak", "talk": "speak", "voice": "speak",
    "transform": "morph", "reshape": "morph", "evolve": "morph",
    "divide": "split", "clone": "split", "separate": "split",
    "sleep": "rest", "calm": "rest", "still": "rest", "wait": "rest", "stop": "rest",
})

# Preferred stand-ins for "rest" at levels where rest is not yet available.
_REST_EQUIVALENTS: tuple[str, ...] = ("rest", "absorb")


def actions_for_level(level: int) -> tuple[str, ...]:
    if level <= 0:
        return L0_ACTIONS
    if level == 1:
        return L1_ACTIONS
    if level == 2:
        return L2_ACTIONS
    return L3_ACTIONS


def clamp_intensity(value: float) -> float:
    return max(MIN_INTENSITY, min(MAX_INTENSITY, abs(float(value))))


@dataclass
class Action:
    """One physical action, already validated for some level."""

    name: str
    intensity: float = DEFAULT_INTENSITY
    direction: Optional[str] = None
    color: Optional[str] = None
    thought: Optional[str] = None

    def __post_init__(self) -> None:
        self.intensity = clamp_intensity(self.intensity)

    @property
    def cost(self) -> float:
        return ACTION_COSTS.get(self.name, 0.0)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.name, "intensity": round(self.intensity, 3)}
        if self.direction:
            data["direction"] = self.direction
        if self.color:
            data["color"] = self.color
        if self.thought:
            data["thought"] = self.thought
        return data


def rest_action(level: int) -> Action:
    """The fixed low-intensity fallback used when a sampler has nothing to pick."""
    allowed = actions_for_level(level)
    name = next((a for a in _REST_EQUIVALENTS if a in allowed), allowed[0])
    return Action(name=name, intensity=REST_INTENSITY)


def action_schema(level: int) -> dict[str, Any]:
    """JSON schema for one action at ``level``, usable for constrained decoding."""
    properties: dict[str, Any] = {
        "action": {"type": "string", "enum": list(actions_for_level(level))},
        "intensity": {"type": "number", "minimum": MIN_INTENSITY, "maximum": MAX_INTENSITY},
    }
    if level == 1:
        properties["thought"] = {"type": "string", "maxLength": 10}
    elif level == 2:
        properties["direction"] = {"type": "string", "enum": list(DIRECTIONS)}
        properties["thought"] = {"type": "string", "maxLength": 20}
    elif level >= 3:
        properties["direction"] = {"type": "string", "enum": list(DIRECTIONS)}
        properties["color"] = {"type": "string", "enum": list(COLORS)}
        properties["thought"] = {"type": "string", "maxLength": 200}
    return {
        "type": "object",
        "properties": properties,
        "required": ["action", "intensity"],
        "additionalProperties": False,
    }


def plan_schema(level: int) -> dict[str, Any]:
    """Schema for a 3-5 step action plan with an optional mood."""
    step = action_schema(level)
    step = {**step, "properties": {k: v for k, v in step["properties"].items() if k != "thought"}}
    return {
        "type": "object",
        "properties": {
            "plan": {"type": "array", "items": step, "minItems": 3, "maxItems": 5},
            "mood": {"type": "string"},
        },
        "required": ["plan"],
    }


def mood_action_schema(level: int) -> dict[str, Any]:
    """Schema for a single action that may carry a mood."""
    schema = action_schema(level)
    return {
        **schema,
        "properties": {**schema["properties"], "mood": {"type": "string"}},
    }


def disposition_schema(level: int) -> dict[str, Any]:
    """Schema for a System 2 disposition vector with optional action and thought."""
    weight = {"type": "number", "minimum": 0.0, "maximum": 1.0}
    return {
        "type": "object",
        "properties": {
            "weights": {
                "type": "object",
                "properties": {k: weight for k in ("move", "rest", "express", "caution")},
                "required": ["move", "rest", "express", "caution"],
            },
            "action": {"type": "string", "enum": list(actions_for_level(level))},
            "thought": {"type": "string"},
        },
        "required": ["weights"],
    }
