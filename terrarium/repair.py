"""
Action Repair — Turning Untrusted Text into One Valid Action.

Small language models are bad at following output formats. They wrap JSON in
prose, fence it in markdown, stop halfway through an object, invent verbs that
are not in the vocabulary, or ignore the format entirely and just write a
sentence. This module absorbs all of that.

``ActionRepairPipeline.repair`` tries, in order, and the first success wins:
  1. The whole string as a JSON object with an ``action`` field
  2. The contents of a fenced code block
  3. A regex pull of ``"action": "..."`` (plus intensity/thought) from garbled text
  4. The first ``{...}``-shaped substring, recursed through the steps above
  5. A keyword scan of the prose against the vocabulary and its synonyms
  6. A uniformly random action from the level's vocabulary

Whatever path matched, the result is normalised against the active level. This
call never raises: any exception inside degrades to the random fallback.
"""

from __future__ import annotations

import json
import math
import random
import re
from typing import Any, Optional

import structlog

from terrarium.actions import (
    ACTION_SYNONYMS,
    COLORS,
    DEFAULT_INTENSITY,
    DIRECTIONS,
    Action,
    actions_for_level,
    clamp_intensity,
)

logger = structlog.get_logger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z]*\s*(.*?)```", re.DOTALL)
_ACTION_FIELD_RE = re.compile(r'"action"\s*:\s*"([^"]*)"', re.IGNORECASE)
_INTENSITY_FIELD_RE = re.compile(r'"intensity"\s*:\s*"?(-?\d+(?:\.\d+)?)', re.IGNORECASE)
_THOUGHT_FIELD_RE = re.compile(r'"thought"\s*:\s*"([^"]*)', re.IGNORECASE)
_NON_WORD_RE = re.compile(r"[^a-z_\s]")

_MAX_DEPTH = 3
_MIN_SCAVENGED_LEN = 4
# Keys whose string values are never mistaken for a thought.
_NON_THOUGHT_KEYS = frozenset({"action", "direction", "color", "mood"})


def _lower_keys(obj: dict[str, Any]) -> dict[str, Any]:
    return {str(k).lower(): v for k, v in obj.items()}


def _loads_object(text: str) -> Optional[dict[str, Any]]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError, TypeError):
        return None
    return _lower_keys(value) if isinstance(value, dict) else None


def _first_brace_block(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring, string-literal aware."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    # Unbalanced (truncated output): fall back to the widest brace span.
    end = text.rfind("}")
    return text[start:end + 1] if end > start else None


def extract_json_object(
    text: str,
    required_key: Optional[str] = None,
    _depth: int = 0,
) -> Optional[dict[str, Any]]:
    """
    Find a JSON object in arbitrary model output.

    Tries the whole string, then fenced code blocks, then the first brace
    block. When ``required_key`` is given, only objects carrying that key count.
    Keys of the returned dict are lower-cased.
    """
    if not text or _depth > _MAX_DEPTH:
        return None

    def _accept(obj: Optional[dict[str, Any]]) -> bool:
        return obj is not None and (required_key is None or required_key in obj)

    obj = _loads_object(text.strip())
    if _accept(obj):
        return obj

    for block in _FENCE_RE.findall(text):
        obj = extract_json_object(block, required_key, _depth + 1)
        if _accept(obj):
            return obj

    block = _first_brace_block(text)
    if block is not None and block.strip() != text.strip():
        obj = extract_json_object(block, required_key, _depth + 1)
        if _accept(obj):
            return obj
    return None


def gate_thought(thought: Optional[str], level: int) -> Optional[str]:
    """Trim a thought to what the creature can express at ``level``."""
    if not thought or level <= 0:
        return None
    thought = " ".join(str(thought).split())
    if level == 1:
        thought = " ".join(thought.split()[:2])[:10].strip()
    elif level == 2:
        thought = thought[:20].strip()
    else:
        thought = thought[:200].strip()
    return thought or None


class ActionRepairPipeline:
    """Normalizes untrusted generated text into one valid Action."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def repair(self, raw: Optional[str], level: int) -> Action:
        """Return exactly one valid Action for ``level``. Never raises."""
        try:
            text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
            obj = self._extract(text, level, 0)
            if obj is not None:
                return self.normalize(obj, level)

            action = self._keyword_scan(text, level)
            if action is not None:
                logger.debug("repair.keyword_match", action=action.name)
                return action
        except Exception:
            logger.warning("repair.unexpected_error", level=level, exc_info=True)

        action = self.random_action(level)
        logger.debug("repair.fallback_random", action=action.name, level=level)
        return action

    def normalize(self, obj: dict[str, Any], level: int) -> Action:
        """Validate a parsed object against ``level``'s vocabulary and limits."""
        try:
            obj = _lower_keys(obj)
            name = self.resolve_name(obj.get("action"), level)

            raw_intensity = obj.get("intensity")
            if (
                isinstance(raw_intensity, (int, float))
                and not isinstance(raw_intensity, bool)
                and math.isfinite(raw_intensity)
            ):
                intensity = clamp_intensity(raw_intensity)
            else:
                intensity = DEFAULT_INTENSITY

            direction = None
            if level >= 2 and isinstance(obj.get("direction"), str):
                candidate = obj["direction"].lower().strip()
                direction = candidate if candidate in DIRECTIONS else None

            color = None
            if level >= 3 and isinstance(obj.get("color"), str):
                candidate = obj["color"].lower().strip()
                color = candidate if candidate in COLORS else None

            thought = obj.get("thought") if isinstance(obj.get("thought"), str) else None
            if not (thought and thought.strip()):
                thought = self._scavenge_thought(obj, name)

            return Action(
                name=name,
                intensity=intensity,
                direction=direction,
                color=color,
                thought=gate_thought(thought, level),
            )
        except Exception:
            logger.warning("repair.normalize_failed", level=level, exc_info=True)
            return self.random_action(level)

    def resolve_name(self, raw_name: Any, level: int) -> str:
        """Exact match, then synonym, then a random pick from the level's set."""
        allowed = actions_for_level(level)
        name = str(raw_name or "").lower().strip()
        if name in allowed:
            return name
        synonym = ACTION_SYNONYMS.get(name)
        if synonym in allowed:
            return synonym
        return self._rng.choice(allowed)

    def random_action(self, level: int) -> Action:
        return Action(name=self._rng.choice(actions_for_level(level)), intensity=DEFAULT_INTENSITY)

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def _extract(self, text: str, level: int, depth: int) -> Optional[dict[str, Any]]:
        if not text or not text.strip() or depth > _MAX_DEPTH:
            return None

        # 1. Whole string
        obj = _loads_object(text.strip())
        if obj is not None and "action" in obj:
            return obj

        # 2. Fenced code block
        for block in _FENCE_RE.findall(text):
            obj = self._extract(block, level, depth + 1)
            if obj is not None:
                return obj

        # 3. Regex pull from garbled JSON
        match = _ACTION_FIELD_RE.search(text)
        if match:
            obj = {"action": match.group(1)}
            intensity = _INTENSITY_FIELD_RE.search(text)
            if intensity:
                try:
                    obj["intensity"] = float(intensity.group(1))
                except ValueError:
                    pass
            thought = _THOUGHT_FIELD_RE.search(text)
            if thought and thought.group(1).strip():
                obj["thought"] = thought.group(1)
            return obj

        # 4. First brace block, recursed
        block = _first_brace_block(text)
        if block is not None and block.strip() != text.strip():
            return self._extract(block, level, depth + 1)
        return None

    def _keyword_scan(self, text: str, level: int) -> Optional[Action]:
        if not text or not text.strip():
            return None
        allowed = actions_for_level(level)
        words = _NON_WORD_RE.sub(" ", text.lower()).split()
        for word in words:
            name = word if word in allowed else ACTION_SYNONYMS.get(word)
            if name in allowed:
                return Action(
                    name=name,
                    intensity=DEFAULT_INTENSITY,
                    thought=gate_thought(text.strip(), level),
                )
        return None

    @staticmethod
    def _scavenge_thought(obj: dict[str, Any], action_name: str) -> Optional[str]:
        for key, value in obj.items():
            if key in _NON_THOUGHT_KEYS or not isinstance(value, str):
                continue
            value = value.strip()
            if len(value) >= _MIN_SCAVENGED_LEN and value.lower() != action_name:
                return value
        return None
