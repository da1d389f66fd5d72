"""
Heartbeat — the Creature's Internal Rhythm.

The heartbeat is a four-phase clock: SENSE → THINK → FEEL → REST, around and
around with no terminal state. It is advanced by the control loop once per frame
and paces how often the creature asks its language model what to do.

The THINK phase is special. Its timer is only an estimate of how long a thought
takes; the real end of a thought is signalled by the orchestrator through
``think_complete()`` when an inference result comes back. The phase clock never
waits on inference and inference never waits on the phase clock.

Cadence depends on the evolution level:
  - L0: erratic, jittery, sometimes skips phases
  - L1: steadier
  - L2: consistent
  - L3: calm and slow

Pulse is a pure animation signal. It jumps to 1.0 on every beat (SENSE entry)
and decays multiplicatively on every tick.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

import structlog

if TYPE_CHECKING:
    from terrarium.traits import TraitVector

logger = structlog.get_logger(__name__)


class HeartbeatPhase(str, Enum):
    """The phases of each heartbeat cycle."""

    SENSE = "sense"  # Beat: take in the surroundings
    THINK = "think"  # Awaiting inference (duration is an estimate)
    FEEL = "feel"  # React to what was thought
    REST = "rest"  # Quiet until the next beat


PHASES: tuple[HeartbeatPhase, ...] = (
    HeartbeatPhase.SENSE,
    HeartbeatPhase.THINK,
    HeartbeatPhase.FEEL,
    HeartbeatPhase.REST,
)


@dataclass(frozen=True)
class CadenceProfile:
    """Per-level timing of the heartbeat."""

    period: float
    jitter: float
    skip_chance: float


CADENCE_PROFILES: tuple[CadenceProfile, ...] = (
    CadenceProfile(period=2.0, jitter=1.5, skip_chance=0.3),
    CadenceProfile(period=2.5, jitter=0.5, skip_chance=0.1),
    CadenceProfile(period=2.5, jitter=0.2, skip_chance=0.0),
    CadenceProfile(period=3.0, jitter=0.1, skip_chance=0.0),
)

SENSE_DURATION = 0.3
FEEL_DURATION = 0.3
THINK_FRACTION = 0.5
REST_FRACTION = 0.3

PhaseListener = Callable[[HeartbeatPhase], None]


class HeartbeatClock:
    """
    Phase state machine pacing inference cadence.

    Listeners registered through ``on_phase_change`` and ``on_think_phase`` run
    synchronously, in registration order, inside the ``update()`` (or
    ``think_complete()``) call that caused the transition. A listener that raises
    is logged and skipped; the remaining listeners still run.
    """

    def __init__(
        self,
        traits: Optional[TraitVector] = None,
        level: int = 0,
        reflex_cooldown: float = 5.0,
        pulse_decay: float = 0.92,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._traits = traits
        self._level = max(0, min(level, len(CADENCE_PROFILES) - 1))
        self._reflex_cooldown = reflex_cooldown
        self._pulse_decay = pulse_decay
        self._rng = rng or random.Random()
        self._clock = clock

        # Start in REST with an expired timer so the first update enters SENSE.
        self._phase_index = PHASES.index(HeartbeatPhase.REST)
        self.elapsed = 0.0
        self.phase_duration = 0.0
        self.pulse = 0.0
        self.beat_count = 0
        self.bpm = 0
        self._last_beat_time: Optional[float] = None
        self._last_reflex_time: Optional[float] = None
        self._reflex_armed = False

        self._phase_listeners: list[PhaseListener] = []
        self._think_listeners: list[PhaseListener] = []

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> HeartbeatPhase:
        return PHASES[self._phase_index]

    @property
    def level(self) -> int:
        return self._level

    def is_think_phase(self) -> bool:
        return self.phase is HeartbeatPhase.THINK

    def set_level(self, level: int) -> None:
        self._level = max(0, min(level, len(CADENCE_PROFILES) - 1))

    def set_traits(self, traits: TraitVector) -> None:
        self._traits = traits

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def on_phase_change(self, listener: PhaseListener) -> None:
        self._phase_listeners.append(listener)

    def on_think_phase(self, listener: PhaseListener) -> None:
        self._think_listeners.append(listener)

    def _notify(self, listeners: list[PhaseListener], phase: HeartbeatPhase) -> None:
        for listener in list(listeners):
            try:
                listener(phase)
            except Exception:
                logger.error("heartbeat.listener_error", phase=phase.value, exc_info=True)

    # -------------------------------------------------------------------------
    # Ticking
    # -------------------------------------------------------------------------

    def period(self) -> float:
        """One jittered cycle length for the current level and traits."""
        cfg = CADENCE_PROFILES[self._level]
        base = cfg.period + (self._rng.random() - 0.5) * 2 * cfg.jitter
        base = max(0.2, base)
        if self._traits is not None:
            base = self._traits.heartbeat_period(base)
        return base

    def update(self, dt: float) -> None:
        """Advance the clock by ``dt`` seconds of frame time."""
        self.elapsed += dt
        self.pulse *= self._pulse_decay
        if self.elapsed >= self.phase_duration:
            self.elapsed = 0.0
            self._advance()

    def think_complete(self) -> bool:
        """End the THINK phase now; an inference result has arrived."""
        if self.phase is not HeartbeatPhase.THINK:
            return False
        self.elapsed = 0.0
        self._advance(allow_skip=False)
        return True

    def trigger_reflex(self) -> bool:
        """
        Fast-forward to just before THINK in response to an external stimulus.

        The next ``update()`` enters THINK. Rate-limited to one use per cooldown
        window; returns False when the cooldown has not elapsed.
        """
        now = self._clock()
        if (
            self._last_reflex_time is not None
            and now - self._last_reflex_time < self._reflex_cooldown
        ):
            return False
        self._last_reflex_time = now
        if self.phase is HeartbeatPhase.THINK:
            return True
        self._phase_index = PHASES.index(HeartbeatPhase.SENSE)
        self._reflex_armed = True
        self.phase_duration = 0.0
        self.elapsed = 0.0
        logger.debug("heartbeat.reflex_triggered", beat_count=self.beat_count)
        return True

    def _advance(self, allow_skip: bool = True) -> None:
        cfg = CADENCE_PROFILES[self._level]

        next_index = (self._phase_index + 1) % len(PHASES)
        if self._reflex_armed:
            allow_skip = False
            self._reflex_armed = False
        # Erratic hearts sometimes skip a phase, but never skip the beat itself.
        if (
            allow_skip
            and cfg.skip_chance > 0
            and PHASES[next_index] is not HeartbeatPhase.SENSE
            and self._rng.random() < cfg.skip_chance
        ):
            next_index = (next_index + 1) % len(PHASES)

        self._phase_index = next_index
        phase = self.phase

        if phase is HeartbeatPhase.SENSE:
            self.phase_duration = SENSE_DURATION
        elif phase is HeartbeatPhase.THINK:
            self.phase_duration = self.period() * THINK_FRACTION
        elif phase is HeartbeatPhase.FEEL:
            self.phase_duration = FEEL_DURATION
        else:
            self.phase_duration = self.period() * REST_FRACTION

        if phase is HeartbeatPhase.SENSE:
            self.pulse = 1.0
            self.beat_count += 1
            now = self._clock()
            if self._last_beat_time is not None and now > self._last_beat_time:
                self.bpm = round(60.0 / (now - self._last_beat_time))
            self._last_beat_time = now

        logger.debug(
            "heartbeat.phase_changed",
            phase=phase.value,
            beat_count=self.beat_count,
            duration=round(self.phase_duration, 2),
        )

        self._notify(self._phase_listeners, phase)
        if phase is HeartbeatPhase.THINK:
            self._notify(self._think_listeners, phase)

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "elapsed": round(self.elapsed, 3),
            "phase_duration": round(self.phase_duration, 3),
            "pulse": round(self.pulse, 3),
            "beat_count": self.beat_count,
            "bpm": self.bpm,
            "level": self._level,
        }
