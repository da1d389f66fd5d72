"""Tests for the layered strategy: System 1 sampler and System 2 dispositions."""

from __future__ import annotations

import json
import random

import pytest

from terrarium.actions import L0_ACTIONS, L2_ACTIONS
from terrarium.energy import EnergyLedger, EnergyState
from terrarium.strategies import InferenceContext, LayeredStrategy
from terrarium.strategies.layered import (
    MODIFIER_MAX,
    MODIFIER_MIN,
    OVERRIDE_INTENSITY,
    SYSTEM1_TICK_SECONDS,
    SYSTEM2_INTERVAL_SECONDS,
    WeightedSampler,
)


@pytest.fixture()
def sampler(traits):
    return WeightedSampler(traits, random.Random(3))


@pytest.fixture()
def strategy(rng, clock, traits, ledger):
    s = LayeredStrategy(rng=rng, clock=clock)
    s.init(traits, 2, ledger)
    return s


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------

class TestWeightedSampler:
    def test_modifiers_start_neutral(self, sampler):
        assert set(sampler.modifiers.values()) == {1.0}

    def test_move_disposition_favours_drift(self, sampler):
        sampler.apply_disposition({"move": 1.0, "rest": 0.0, "express": 0.0, "caution": 0.0})
        assert sampler.modifiers["drift"] == pytest.approx(2.0)
        assert sampler.modifiers["rest"] == pytest.approx(0.5)

    def test_weak_dispositions_change_nothing(self, sampler):
        sampler.apply_disposition({"move": 0.5, "rest": 0.2, "express": 0.4, "caution": 0.1})
        assert set(sampler.modifiers.values()) == {1.0}

    def test_modifiers_stay_within_bounds_under_repetition(self, sampler):
        extreme = {"move": 1.0, "rest": 1.0, "express": 1.0, "caution": 1.0}
        for _ in range(50):
            sampler.apply_disposition(extreme)
            sampler.boost_alert()
        for value in sampler.modifiers.values():
            assert MODIFIER_MIN <= value <= MODIFIER_MAX

    def test_decay_relaxes_toward_neutral(self, sampler):
        sampler.apply_disposition({"move": 1.0})
        sampler.decay(20.0)
        assert 1.0 < sampler.modifiers["drift"] < 2.0
        sampler.decay(10_000.0)
        assert sampler.modifiers["drift"] == pytest.approx(1.0)

    def test_dormant_energy_samples_nothing(self, sampler):
        sampler.set_energy_state(EnergyState.DORMANT)
        assert sampler.sample(L2_ACTIONS) is None

    def test_sample_respects_allowed_set(self, sampler):
        for _ in range(100):
            assert sampler.sample(L0_ACTIONS) in L0_ACTIONS

    def test_sample_ignores_unweighted_actions(self, sampler):
        assert sampler.sample(("speak", "morph")) is None


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

class TestLayeredStrategy:
    def test_system1_acts_every_tick_interval(self, strategy):
        assert strategy.tick(SYSTEM1_TICK_SECONDS[2] - 1) is None
        action = strategy.tick(1.0)
        assert action.name in L2_ACTIONS
        assert 0.3 <= action.intensity <= 0.8

    def test_sampler_tracks_energy_band(self, rng, clock, traits):
        s = LayeredStrategy(rng=rng, clock=clock)
        s.init(traits, 2, EnergyLedger(20))
        assert s.sampler.energy_multiplier == pytest.approx(0.7)
        s.on_energy_state_change(EnergyState.DORMANT)
        assert s.tick(SYSTEM1_TICK_SECONDS[2]) is None

    def test_energy_change_requests_system2(self, rng, clock, traits):
        s = LayeredStrategy(rng=rng, clock=clock)
        s.init(traits, 3, EnergyLedger(60))
        assert s.needs_inference() is False
        s.on_energy_state_change(EnergyState.HUNGRY)
        assert s.needs_inference() is True

    def test_dormancy_does_not_request_system2(self, strategy):
        strategy.on_energy_state_change(EnergyState.DORMANT)
        assert strategy.needs_inference() is False

    def test_system2_on_interval(self, strategy, clock):
        assert strategy.needs_inference() is False
        clock.advance(SYSTEM2_INTERVAL_SECONDS[2])
        assert strategy.needs_inference() is True

    def test_user_message_boosts_alert_and_requests_inference(self, strategy, traits):
        strategy.on_user_message("hey")
        assert strategy.sampler.modifiers["pulse"] == pytest.approx(1.5)
        assert strategy.needs_inference() is True
        strategy.build_inference_prompt(InferenceContext(energy=50, traits=traits, user_message="hey"))
        assert strategy.needs_inference() is False

    def test_disposition_applied_without_override(self, strategy):
        raw = json.dumps({"weights": {"move": 0.1, "rest": 0.9, "express": 0.2, "caution": 0.0}})
        assert strategy.on_inference_result(raw) is None
        assert strategy.sampler.modifiers["rest"] == pytest.approx(1.9)

    def test_explicit_action_overrides_at_fixed_intensity(self, strategy):
        raw = json.dumps({
            "weights": {"move": 0, "rest": 0, "express": 0, "caution": 0},
            "action": "spin",
            "intensity": 0.1,
            "thought": "round and round",
        })
        action = strategy.on_inference_result(raw)
        assert action.name == "spin"
        assert action.intensity == pytest.approx(OVERRIDE_INTENSITY)
        assert action.thought == "round and round"

    def test_malformed_weights_sanitized(self, strategy):
        raw = '{"weights": {"move": "lots", "rest": 7, "express": null}}'
        strategy.on_inference_result(raw)
        for value in strategy.sampler.modifiers.values():
            assert MODIFIER_MIN <= value <= MODIFIER_MAX
        assert strategy.sampler.modifiers["rest"] == pytest.approx(2.0)

    def test_unparseable_result_ignored(self, strategy):
        assert strategy.on_inference_result("no idea") is None
        assert strategy.on_inference_result("") is None
        assert set(strategy.sampler.modifiers.values()) == {1.0}
