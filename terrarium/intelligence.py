"""
Intelligence Levels — how much mind the creature has grown.

Four stages: Primordial, Spark, Aware, Sentient. Each stage sets the sampling
parameters for inference, the XP needed to move on, and the framing of the
system prompt. Prompts are deliberately short and conversational; tiny models
tend to parrot format instructions back instead of following them, so format
guidance is kept to one line and the repair pipeline does the rest.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from terrarium.traits import TraitVector


@dataclass(frozen=True)
class LevelProfile:
    name: str
    temperature: float
    top_p: float
    max_tokens: int
    xp_to_next: float
    framing: str
    # Whether the observer's words and memories reach the system prompt.
    hears_observer: bool = True
    remembers: bool = True

    @property
    def inference_options(self) -> dict[str, float]:
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
        }


LEVELS: tuple[LevelProfile, ...] = (
    LevelProfile(
        name="Primordial",
        temperature=0.6,
        top_p=0.5,
        max_tokens=32,
        xp_to_next=15,
        framing="You are a cell.",
        hears_observer=False,
        remembers=False,
    ),
    LevelProfile(
        name="Spark",
        temperature=0.7,
        top_p=0.7,
        max_tokens=80,
        xp_to_next=40,
        framing="You are a spark of life.",
        remembers=False,
    ),
    LevelProfile(
        name="Aware",
        temperature=0.7,
        top_p=0.9,
        max_tokens=128,
        xp_to_next=100,
        framing="You are a creature becoming aware. Someone watches.",
    ),
    LevelProfile(
        name="Sentient",
        temperature=0.7,
        top_p=1.0,
        max_tokens=200,
        xp_to_next=math.inf,
        framing="You are a sentient creature in a glass terrarium. An observer watches you.",
    ),
)

MAX_LEVEL = len(LEVELS) - 1


def get_profile(level: int) -> LevelProfile:
    return LEVELS[max(0, min(level, MAX_LEVEL))]


def build_system_prompt(
    level: int,
    energy: float,
    traits: TraitVector,
    user_message: Optional[str] = None,
    memory_context: Optional[str] = None,
) -> str:
    """Compose the level's framing with energy, observer words, memory and traits."""
    profile = get_profile(level)
    parts = [profile.framing, f"Energy: {round(energy)}."]
    if user_message and profile.hears_observer:
        parts.append(f'The observer said: "{user_message}".')
    if memory_context and profile.remembers:
        parts.append(memory_context if memory_context.endswith(".") else f"{memory_context}.")
    hints = traits.prompt_hints()
    if hints:
        parts.append(hints)
    return " ".join(parts)


def check_level_up(xp: float, current_level: int) -> int:
    """The next level once XP crosses the current threshold, else unchanged."""
    profile = get_profile(current_level)
    if xp >= profile.xp_to_next and current_level < MAX_LEVEL:
        return current_level + 1
    return current_level
