from __future__ import annotations

import math

import pytest

from terrarium.intelligence import (
    LEVELS,
    MAX_LEVEL,
    build_system_prompt,
    check_level_up,
    get_profile,
)
from terrarium.traits import TraitVector

_QUIET = TraitVector(
    movement_bias=0.5, curiosity=0.5, expressiveness=0.5, metabolism_rate=0.5, energy_efficiency=0.5,
)


def test_four_named_levels():
    assert [p.name for p in LEVELS] == ["Primordial", "Spark", "Aware", "Sentient"]
    assert MAX_LEVEL == 3
    assert math.isinf(LEVELS[-1].xp_to_next)


def test_get_profile_clamps():
    assert get_profile(-2).name == "Primordial"
    assert get_profile(9).name == "Sentient"


def test_inference_options_follow_profile():
    opts = get_profile(0).inference_options
    assert opts == {"temperature": 0.6, "max_tokens": 32, "top_p": 0.5}


@pytest.mark.parametrize(
    ("xp", "level", "expected"),
    [(14, 0, 0), (15, 0, 1), (39, 1, 1), (40, 1, 2), (100, 2, 3), (10_000, 3, 3)],
)
def test_check_level_up(xp, level, expected):
    assert check_level_up(xp, level) == expected


class TestSystemPrompt:
    def test_primordial_ignores_observer_and_memory(self):
        prompt = build_system_prompt(0, 42.4, _QUIET, user_message="hi", memory_context="Recent: drift")
        assert prompt == "You are a cell. Energy: 42."

    def test_spark_hears_observer_but_not_memory(self):
        prompt = build_system_prompt(1, 80, _QUIET, user_message="hi", memory_context="Recent: drift")
        assert 'The observer said: "hi".' in prompt
        assert "Recent" not in prompt

    def test_sentient_includes_memory_and_traits(self):
        traits = TraitVector(curiosity=0.9)
        prompt = build_system_prompt(3, 60, traits, memory_context="Recent memories: spin")
        assert prompt.startswith("You are a sentient creature")
        assert "Recent memories: spin." in prompt
        assert "you are drawn to the observer" in prompt
