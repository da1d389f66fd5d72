"""Tests for terrarium.heartbeat — the four-phase clock."""

from __future__ import annotations

import random

from terrarium.heartbeat import CADENCE_PROFILES, HeartbeatClock, HeartbeatPhase
from terrarium.traits import TraitVector


def _clock(level: int = 2, fake_time=None, seed: int = 3) -> HeartbeatClock:
    kwargs = {"clock": fake_time} if fake_time is not None else {}
    return HeartbeatClock(
        traits=TraitVector(heartbeat_speed=1.0),
        level=level,
        rng=random.Random(seed),
        **kwargs,
    )


def _advance_to(hb: HeartbeatClock, phase: HeartbeatPhase, limit: int = 50) -> None:
    for _ in range(limit):
        if hb.phase is phase:
            return
        hb.update(hb.phase_duration + 0.01)
    raise AssertionError(f"never reached {phase}")


# ---------------------------------------------------------------------------
# Cycle
# ---------------------------------------------------------------------------

class TestCycle:
    def test_starts_in_rest(self):
        hb = _clock()
        assert hb.phase is HeartbeatPhase.REST
        assert hb.beat_count == 0

    def test_first_update_enters_sense_with_full_pulse(self):
        hb = _clock()
        hb.update(0.016)
        assert hb.phase is HeartbeatPhase.SENSE
        assert hb.pulse == 1.0
        assert hb.beat_count == 1

    def test_phases_cycle_in_order_at_steady_levels(self):
        hb = _clock(level=3)
        seen = []
        hb.on_phase_change(seen.append)
        for _ in range(8):
            hb.update(hb.phase_duration + 0.01)
        assert seen == [
            HeartbeatPhase.SENSE, HeartbeatPhase.THINK, HeartbeatPhase.FEEL, HeartbeatPhase.REST,
        ] * 2

    def test_pulse_decays_every_tick(self):
        hb = _clock()
        hb.update(0.0)
        hb.update(0.01)
        assert hb.pulse < 1.0

    def test_erratic_level_never_skips_the_beat(self):
        hb = _clock(level=0, seed=11)
        assert CADENCE_PROFILES[0].skip_chance > 0
        beats_before = 0
        for _ in range(200):
            previous = hb.phase
            hb.update(hb.phase_duration + 0.01)
            if previous is HeartbeatPhase.REST:
                assert hb.phase is HeartbeatPhase.SENSE
        assert hb.beat_count > beats_before


# ---------------------------------------------------------------------------
# Think completion and reflex
# ---------------------------------------------------------------------------

class TestThinkComplete:
    def test_ends_think_phase_immediately(self):
        hb = _clock()
        _advance_to(hb, HeartbeatPhase.THINK)
        assert hb.think_complete() is True
        assert hb.phase is HeartbeatPhase.FEEL

    def test_ignored_outside_think(self):
        hb = _clock()
        hb.update(0.0)
        assert hb.think_complete() is False
        assert hb.phase is HeartbeatPhase.SENSE


class TestReflex:
    def test_reflex_leads_straight_into_think(self, clock):
        hb = _clock(level=0, fake_time=clock)
        _advance_to(hb, HeartbeatPhase.REST)
        assert hb.trigger_reflex() is True
        hb.update(0.0)
        assert hb.phase is HeartbeatPhase.THINK

    def test_reflex_is_rate_limited(self, clock):
        hb = _clock(fake_time=clock)
        assert hb.trigger_reflex() is True
        clock.advance(1.0)
        assert hb.trigger_reflex() is False
        clock.advance(5.0)
        assert hb.trigger_reflex() is True


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------

def test_listeners_fire_in_registration_order():
    hb = _clock()
    calls: list[str] = []
    hb.on_phase_change(lambda p: calls.append(f"a:{p.value}"))
    hb.on_phase_change(lambda p: calls.append(f"b:{p.value}"))
    hb.update(0.0)
    assert calls == ["a:sense", "b:sense"]


def test_think_listener_only_fires_on_think():
    hb = _clock(level=3)
    thinks: list[HeartbeatPhase] = []
    hb.on_think_phase(thinks.append)
    for _ in range(4):
        hb.update(hb.phase_duration + 0.01)
    assert thinks == [HeartbeatPhase.THINK]


def test_failing_listener_does_not_stop_the_others():
    hb = _clock()
    calls: list[HeartbeatPhase] = []

    def _boom(phase):
        raise RuntimeError("listener exploded")

    hb.on_phase_change(_boom)
    hb.on_phase_change(calls.append)
    hb.update(0.0)
    assert calls == [HeartbeatPhase.SENSE]


def test_bpm_estimated_from_beat_spacing(clock):
    hb = _clock(level=3, fake_time=clock)
    hb.update(0.0)
    clock.advance(2.0)
    _advance_to(hb, HeartbeatPhase.REST)
    hb.update(hb.phase_duration + 0.01)
    assert hb.beat_count == 2
    assert hb.bpm == 30
