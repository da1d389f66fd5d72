"""
Episodic Memory — the Creature's Record of What Happened.

Every action, every word from the observer, every level-up and every fall into
dormancy becomes a memory entry. Entries are scored for importance the moment
they are formed, and that score never changes afterwards: novelty, richness and
emotion make a memory matter; monotonous repetition makes it matter less.

Two views are kept:
  - Short-term: the last 10 entries, in insertion order
  - Long-term: the most important entries older than the short-term window

Retrieval for a query blends keyword overlap, a substring bonus, importance and
a recency factor that decays linearly over one hour (floored at 0.1):

    score = (overlap × 0.4 + substring_bonus) × importance × recency

How much memory reaches the prompt depends on the evolution level. A primordial
cell remembers nothing; a sentient creature recalls recent events and whatever
relates to what the observer just said.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import structlog

logger = structlog.get_logger(__name__)

SHORT_TERM_LIMIT = 10
LONG_TERM_LIMIT = 20
RELEVANT_LIMIT = 3
REPEAT_WINDOW = 10
REPEAT_ALLOWANCE = 3

STOPWORDS = frozenset({
    "the", "a", "an", "is", "are", "was", "were", "be", "been",
    "to", "of", "in", "for", "on", "at", "by", "it", "its",
    "and", "or", "but", "not", "no", "do", "did", "has", "had",
    "this", "that", "with", "from", "you", "your", "my", "me",
})

_NON_LETTER_RE = re.compile(r"[^a-z\s]")

_CURIOSITY_WORDS = ("?", "what", "why", "how", "wonder", "curious")
_DISTRESS_WORDS = ("pain", "hurt", "dark", "cold", "afraid", "lost", "alone", "nothing")
_JOY_WORDS = ("warm", "light", "good", "happy", "safe", "beautiful", "love")


class MemoryType(str, Enum):
    """Kinds of episodes the creature remembers."""

    ACTION = "action"
    USER_INTERACTION = "user_interaction"
    LEVEL_UP = "level_up"
    OBSERVATION = "observation"
    DORMANCY = "dormancy"


BASE_IMPORTANCE: dict[MemoryType, float] = {
    MemoryType.LEVEL_UP: 1.0,
    MemoryType.USER_INTERACTION: 0.8,
    MemoryType.DORMANCY: 0.6,
    MemoryType.OBSERVATION: 0.5,
    MemoryType.ACTION: 0.3,
}


def extract_keywords(text: str) -> list[str]:
    """Lower-case, strip non-letters, split, drop short words and stopwords."""
    return [
        w for w in _NON_LETTER_RE.sub("", text.lower()).split()
        if len(w) >= 3 and w not in STOPWORDS
    ]


def classify_emotion(text: Optional[str]) -> Optional[str]:
    """Tag a thought as curiosity, distress, joy or neutral by its words."""
    if not text:
        return None
    lowered = text.lower()
    if any(w in lowered for w in _CURIOSITY_WORDS):
        return "curiosity"
    if any(w in lowered for w in _DISTRESS_WORDS):
        return "distress"
    if any(w in lowered for w in _JOY_WORDS):
        return "joy"
    return "neutral"


@dataclass
class MemoryEntry:
    """A single remembered event with its importance fixed at formation."""

    type: MemoryType
    content: str
    emotion: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    importance: float = 0.3
    keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "content": self.content,
            "emotion": self.emotion,
            "timestamp": self.timestamp,
            "importance": self.importance,
            "keywords": list(self.keywords),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryEntry:
        content = str(data.get("content", ""))
        keywords = data.get("keywords")
        return cls(
            type=MemoryType(data.get("type", MemoryType.OBSERVATION.value)),
            content=content,
            emotion=data.get("emotion"),
            timestamp=float(data.get("timestamp", time.time())),
            importance=max(0.0, min(1.0, float(data.get("importance", 0.3)))),
            keywords=list(keywords) if isinstance(keywords, list) else extract_keywords(content),
        )


class EpisodicMemory:
    """Scored, decaying event log feeding prompt context."""

    def __init__(
        self,
        entries: Optional[Iterable[MemoryEntry]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._entries: list[MemoryEntry] = list(entries or [])
        self._clock = clock
        # Exact action contents ever seen, for the first-occurrence bonus.
        self._seen_actions: set[str] = {
            e.content for e in self._entries if e.type is MemoryType.ACTION
        }

    @property
    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._seen_actions.clear()
        logger.info("episodic_memory.cleared")

    # -------------------------------------------------------------------------
    # Formation
    # -------------------------------------------------------------------------

    def add_memory(
        self,
        type: MemoryType | str,
        content: str,
        emotion: Optional[str] = None,
    ) -> MemoryEntry:
        """Record an event, scoring its importance at insertion time."""
        mem_type = MemoryType(type)
        importance = BASE_IMPORTANCE.get(mem_type, 0.3)

        if mem_type is MemoryType.ACTION:
            if content not in self._seen_actions:
                importance += 0.2
                self._seen_actions.add(content)

            # Keyed on exact content, so "drift" and "drift: warm" are distinct.
            recent = self._entries[-REPEAT_WINDOW:]
            repeats = sum(
                1 for e in recent
                if e.type is MemoryType.ACTION and e.content == content
            )
            if repeats > REPEAT_ALLOWANCE:
                importance -= 0.1 * (repeats - REPEAT_ALLOWANCE)

        if len(content) > 20:
            importance += 0.1

        if emotion and emotion != "neutral":
            importance += 0.05

        entry = MemoryEntry(
            type=mem_type,
            content=content,
            emotion=emotion,
            timestamp=self._clock(),
            importance=max(0.0, min(1.0, importance)),
            keywords=extract_keywords(content),
        )
        self._entries.append(entry)

        logger.debug(
            "episodic_memory.added",
            type=mem_type.value,
            importance=round(entry.importance, 3),
            size=len(self._entries),
        )
        return entry

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def get_short_term(self) -> list[MemoryEntry]:
        """Last entries by insertion order."""
        return self._entries[-SHORT_TERM_LIMIT:]

    def get_long_term(self) -> list[MemoryEntry]:
        """Most important entries older than the short-term window."""
        cutoff = max(0, len(self._entries) - SHORT_TERM_LIMIT)
        candidates = sorted(self._entries[:cutoff], key=lambda e: e.importance, reverse=True)
        return candidates[:LONG_TERM_LIMIT]

    def retrieve_relevant(self, query: str) -> list[MemoryEntry]:
        """Top entries whose keywords or content relate to ``query``."""
        if not query:
            return []
        query_keywords = extract_keywords(query)
        if not query_keywords:
            return []

        now = self._clock()
        scored: list[tuple[MemoryEntry, float]] = []
        for entry in self._entries:
            overlap = sum(1 for k in entry.keywords if k in query_keywords)
            lowered = entry.content.lower()
            substring = 0.3 if any(k in lowered for k in query_keywords) else 0.0
            age_hours = (now - entry.timestamp) / 3600.0
            recency = max(0.1, 1.0 - age_hours)
            score = (overlap * 0.4 + substring) * entry.importance * recency
            if score > 0:
                scored.append((entry, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [entry for entry, _ in scored[:RELEVANT_LIMIT]]

    def build_memory_prompt(self, user_message: Optional[str], level: int) -> str:
        """Memory context for the system prompt, scaled by evolution level."""
        if level <= 0:
            return ""

        short_term = self.get_short_term()

        if level == 1:
            recent = ", ".join(
                e.content.split(":")[0] if e.type is MemoryType.ACTION else e.type.value
                for e in short_term[-3:]
            )
            return f"Recent: {recent}" if recent else ""

        recent_count = 5 if level >= 3 else 3
        max_len = 60 if level >= 3 else 40
        related_label = "Related memories" if level >= 3 else "Related"

        recent = "; ".join(e.content[:max_len] for e in short_term[-recent_count:])
        result = f"Recent memories: {recent}." if recent else ""

        if user_message:
            relevant = self.retrieve_relevant(user_message)
            if relevant:
                related = "; ".join(e.content[:max_len] for e in relevant)
                result = f"{result} {related_label}: {related}.".strip()
        return result

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_list(self) -> list[dict[str, Any]]:
        """Short-term plus pruned long-term, deduplicated, oldest first."""
        kept = {id(e) for e in self.get_short_term()} | {id(e) for e in self.get_long_term()}
        return [e.to_dict() for e in self._entries if id(e) in kept]

    @classmethod
    def from_list(
        cls,
        data: Iterable[dict[str, Any]],
        clock: Callable[[], float] = time.time,
    ) -> EpisodicMemory:
        entries: list[MemoryEntry] = []
        for item in data:
            try:
                entries.append(MemoryEntry.from_dict(item))
            except (ValueError, TypeError, KeyError):
                logger.warning("episodic_memory.invalid_entry_skipped", raw=str(item)[:100])
        return cls(entries, clock=clock)
