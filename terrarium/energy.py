"""
Energy — the Creature's Metabolism.

Energy is the single resource that gates activity. Every heartbeat burns a
little; every action costs a little more; an observer's presence feeds a trickle
back. When energy reaches zero the creature goes dormant: the heartbeat stops,
no inference is requested, and nothing happens until it is woken.

Insufficient energy is not an error. ``spend_action`` answers yes or no and the
caller decides what to do about a no.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from terrarium.traits import TraitVector

logger = structlog.get_logger(__name__)

MAX_ENERGY = 100.0
WAKE_ENERGY = 15.0
PRESENCE_FEED = 1.0


class EnergyState(str, Enum):
    """Coarse bands of the energy scale."""

    THRIVING = "thriving"  # 70-100
    NORMAL = "normal"  # 40-69
    HUNGRY = "hungry"  # 15-39
    STARVING = "starving"  # 1-14
    DORMANT = "dormant"  # 0


def state_for(energy: float) -> EnergyState:
    """Pure mapping from an energy value to its band."""
    if energy <= 0:
        return EnergyState.DORMANT
    if energy < 15:
        return EnergyState.STARVING
    if energy < 40:
        return EnergyState.HUNGRY
    if energy < 70:
        return EnergyState.NORMAL
    return EnergyState.THRIVING


_DIMMING: dict[EnergyState, float] = {
    EnergyState.THRIVING: 1.0,
    EnergyState.NORMAL: 0.85,
    EnergyState.HUNGRY: 0.6,
    EnergyState.STARVING: 0.35,
    EnergyState.DORMANT: 0.15,
}


class EnergyLedger:
    """Resource pool gating which actions and inference attempts are allowed."""

    def __init__(self, energy: float = 50.0):
        self._energy = max(0.0, min(MAX_ENERGY, float(energy)))

    @property
    def energy(self) -> float:
        return self._energy

    @energy.setter
    def energy(self, value: float) -> None:
        # Direct override (UI slider, persistence restore) still respects bounds.
        self._energy = max(0.0, min(MAX_ENERGY, float(value)))

    @property
    def state(self) -> EnergyState:
        return state_for(self._energy)

    @property
    def is_dormant(self) -> bool:
        return self._energy <= 0

    @property
    def dimming(self) -> float:
        """Visual dimming factor: 1.0 is full brightness, 0.15 nearly off."""
        return _DIMMING[self.state]

    def feed(self, amount: float) -> None:
        self._energy = min(MAX_ENERGY, self._energy + max(0.0, float(amount)))

    def metabolize(self, traits: TraitVector, level: int) -> float:
        """Apply one heartbeat cycle of drain. Returns the amount drained."""
        drain = 2.0 * traits.metabolism_rate + 0.5 * level
        before = self._energy
        self._energy = max(0.0, self._energy - drain)
        if before > 0 and self._energy <= 0:
            logger.info("energy.dormant", level=level)
        return before - self._energy

    def spend_action(self, cost: float, traits: TraitVector) -> bool:
        """Deduct a trait-adjusted action cost. False (and no change) if unaffordable."""
        adjusted = traits.action_cost(cost)
        if self._energy < adjusted:
            logger.debug("energy.insufficient", energy=round(self._energy, 2), cost=round(adjusted, 2))
            return False
        self._energy = max(0.0, self._energy - adjusted)
        return True

    def wake(self) -> bool:
        """Revive a dormant creature to a low-but-alive level. No-op otherwise."""
        if not self.is_dormant:
            return False
        self._energy = WAKE_ENERGY
        logger.info("energy.woken", energy=self._energy)
        return True

    def presence_bonus(self) -> None:
        """Small trickle of energy while an observer is watching."""
        self.feed(PRESENCE_FEED)
