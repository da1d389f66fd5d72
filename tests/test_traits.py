from __future__ import annotations

import dataclasses
import random

import pytest

from terrarium.traits import TRAIT_RANGES, TraitVector


def test_generated_traits_stay_within_declared_ranges():
    rng = random.Random(7)
    for _ in range(500):
        traits = TraitVector.generate(rng)
        for name, (low, high) in TRAIT_RANGES.items():
            value = getattr(traits, name)
            assert low <= value <= high, name


def test_traits_are_immutable(traits):
    with pytest.raises(dataclasses.FrozenInstanceError):
        traits.curiosity = 0.9


def test_out_of_range_values_are_clamped():
    traits = TraitVector(heartbeat_speed=5.0, hue_shift_range=0.0, curiosity=-1.0)
    assert traits.heartbeat_speed == 1.0
    assert traits.hue_shift_range == 0.05
    assert traits.curiosity == 0.0


def test_round_trip_ignores_unknown_keys(traits):
    data = traits.to_dict()
    data["wings"] = 3
    assert TraitVector.from_dict(data) == traits


def test_heartbeat_period_stretches_for_slow_hearts():
    slow = TraitVector(heartbeat_speed=0.5)
    assert slow.heartbeat_period(2.0) == pytest.approx(4.0)


def test_action_cost_discounted_by_efficiency():
    efficient = TraitVector(energy_efficiency=1.0)
    assert efficient.action_cost(2.0) == pytest.approx(1.0)


def test_scaled_intensity_capped_at_one():
    loud = TraitVector(expressiveness=1.0)
    assert loud.scaled_intensity(1.5) == 1.0


class TestPromptHints:
    def test_strong_traits_produce_hints(self):
        traits = TraitVector(movement_bias=0.9, curiosity=0.9, metabolism_rate=0.9)
        hints = traits.prompt_hints()
        assert "you tend to move and explore" in hints
        assert "you are drawn to the observer" in hints
        assert "you burn energy quickly" in hints
        assert hints.endswith(".")

    def test_unremarkable_traits_produce_no_hints(self):
        traits = TraitVector(
            movement_bias=0.5,
            curiosity=0.5,
            expressiveness=0.5,
            metabolism_rate=0.5,
            energy_efficiency=0.5,
        )
        assert traits.prompt_hints() == ""
