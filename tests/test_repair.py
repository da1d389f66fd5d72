"""Tests for terrarium.repair — every model output becomes exactly one action."""

from __future__ import annotations

import random

import pytest

from terrarium.actions import (
    L0_ACTIONS,
    L1_ACTIONS,
    L2_ACTIONS,
    L3_ACTIONS,
    Action,
    actions_for_level,
    action_schema,
    rest_action,
)
from terrarium.repair import ActionRepairPipeline, extract_json_object, gate_thought


@pytest.fixture()
def pipeline():
    return ActionRepairPipeline(rng=random.Random(5))


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

class TestVocabulary:
    def test_sets_grow_with_level(self):
        assert set(L0_ACTIONS) < set(L1_ACTIONS) < set(L2_ACTIONS) < set(L3_ACTIONS)
        assert L0_ACTIONS == ("drift", "pulse", "absorb")
        assert "rest" in L3_ACTIONS and "rest" not in L2_ACTIONS

    def test_levels_above_three_use_the_top_set(self):
        assert actions_for_level(7) == L3_ACTIONS

    def test_rest_action_falls_back_below_sentience(self):
        assert rest_action(3).name == "rest"
        assert rest_action(0).name == "absorb"

    def test_intensity_uses_magnitude(self):
        assert Action("drift", intensity=-0.4).intensity == pytest.approx(0.4)
        assert Action("drift", intensity=0.0).intensity == pytest.approx(0.1)

    def test_schema_lists_only_level_actions(self):
        schema = action_schema(1)
        assert schema["properties"]["action"]["enum"] == list(L1_ACTIONS)
        assert schema["properties"]["thought"]["maxLength"] == 10
        assert "color" not in schema["properties"]


# ---------------------------------------------------------------------------
# repair()
# ---------------------------------------------------------------------------

class TestRepair:
    def test_clean_json(self, pipeline):
        action = pipeline.repair('{"action": "glow", "intensity": 0.8, "thought": "warm"}', 1)
        assert action.name == "glow"
        assert action.intensity == pytest.approx(0.8)
        assert action.thought == "warm"

    def test_unknown_action_replaced_from_level_set(self, pipeline):
        action = pipeline.repair('{"action": "dance"}', 0)
        assert action.name in L0_ACTIONS

    def test_synonym_mapped(self, pipeline):
        assert pipeline.repair('{"action": "float"}', 0).name == "drift"

    def test_synonym_outside_level_is_replaced(self, pipeline):
        action = pipeline.repair('{"action": "talk"}', 1)
        assert action.name in L1_ACTIONS

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(-5, 1.0), (0.05, 0.1), (0.7, 0.7), (3, 1.0)],
    )
    def test_intensity_clamped(self, pipeline, raw, expected):
        action = pipeline.repair(f'{{"action": "pulse", "intensity": {raw}}}', 0)
        assert action.intensity == pytest.approx(expected)

    def test_missing_intensity_defaults(self, pipeline):
        assert pipeline.repair('{"action": "pulse"}', 0).intensity == pytest.approx(0.5)

    def test_non_numeric_intensity_defaults(self, pipeline):
        action = pipeline.repair('{"action": "pulse", "intensity": "loud"}', 0)
        assert action.intensity == pytest.approx(0.5)

    def test_fenced_block(self, pipeline):
        raw = 'Sure!\n```json\n{"action": "spin", "intensity": 0.4}\n```'
        assert pipeline.repair(raw, 2).name == "spin"

    def test_json_wrapped_in_prose(self, pipeline):
        raw = 'Here you go: {"action": "reach", "intensity": 0.6} hope that helps'
        action = pipeline.repair(raw, 2)
        assert action.name == "reach"
        assert action.intensity == pytest.approx(0.6)

    def test_truncated_json_recovered_by_regex(self, pipeline):
        action = pipeline.repair('{"action": "absorb", "intensity": 0.9, "thought": "so qu', 2)
        assert action.name == "absorb"
        assert action.intensity == pytest.approx(0.9)
        assert action.thought == "so qu"

    def test_prose_keyword(self, pipeline):
        action = pipeline.repair("I think I will drift around slowly", 2)
        assert action.name == "drift"
        assert action.thought == "I think I will drift"

    def test_prose_synonym(self, pipeline):
        assert pipeline.repair("i want to hide from it", 1).name == "shrink"

    @pytest.mark.parametrize("raw", ["", "   ", None, "qwerty zxcvb", "{{{{"])
    def test_garbage_falls_back_to_random(self, pipeline, raw):
        action = pipeline.repair(raw, 0)
        assert action.name in L0_ACTIONS
        assert action.intensity == pytest.approx(0.5)

    def test_never_raises_on_odd_types(self, pipeline):
        action = pipeline.repair('{"action": ["drift"], "intensity": true}', 0)
        assert action.name in L0_ACTIONS
        assert action.intensity == pytest.approx(0.5)

    def test_attributes_gated_by_level(self, pipeline):
        raw = '{"action": "drift", "direction": "up", "color": "gold", "thought": "hello"}'
        l0 = pipeline.repair(raw, 0)
        assert (l0.direction, l0.color, l0.thought) == (None, None, None)
        l2 = pipeline.repair(raw, 2)
        assert (l2.direction, l2.color) == ("up", None)
        l3 = pipeline.repair(raw, 3)
        assert (l3.direction, l3.color, l3.thought) == ("up", "gold", "hello")

    def test_invalid_direction_dropped(self, pipeline):
        assert pipeline.repair('{"action": "drift", "direction": "sideways"}', 3).direction is None

    def test_thought_scavenged_from_unexpected_key(self, pipeline):
        action = pipeline.repair('{"action": "glow", "feeling": "curious about you"}', 3)
        assert action.thought == "curious about you"

    def test_uppercase_keys_accepted(self, pipeline):
        assert pipeline.repair('{"ACTION": "Pulse"}', 0).name == "pulse"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestGateThought:
    def test_primordial_has_no_thoughts(self):
        assert gate_thought("anything", 0) is None

    def test_level_one_keeps_two_short_words(self):
        assert gate_thought("bright light everywhere", 1) == "bright lig"

    def test_level_two_caps_at_twenty(self):
        assert len(gate_thought("x" * 50, 2)) == 20

    def test_level_three_caps_at_two_hundred(self):
        assert len(gate_thought("y" * 500, 3)) == 200

    def test_whitespace_collapsed(self):
        assert gate_thought("  so   many\n\nspaces ", 3) == "so many spaces"


class TestExtractJsonObject:
    def test_required_key_filters(self):
        assert extract_json_object('{"mood": "calm"}', required_key="plan") is None
        assert extract_json_object('{"plan": []}', required_key="plan") == {"plan": []}

    def test_nested_braces_inside_strings(self):
        text = 'noise {"thought": "a } inside", "weights": {"move": 1}} tail'
        assert extract_json_object(text, required_key="weights")["weights"] == {"move": 1}

    def test_empty_text(self):
        assert extract_json_object("") is None
