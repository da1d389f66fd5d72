"""
Inference Engine — the contract between the creature and whatever thinks for it.

An engine turns an ordered list of chat messages into a single string. It may
honor a JSON schema for constrained decoding and per-call sampling options, but
nothing downstream trusts that it did: every result goes through the repair
pipeline. Engines are loaded once, can report readiness, and are torn down
explicitly when the backend is switched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

ProgressCallback = Callable[[float, str], None]


class InferenceEngineInitError(RuntimeError):
    """Raised when an inference engine cannot be initialized."""


class InferenceEngine(ABC):
    """Pluggable text generation backend."""

    @abstractmethod
    async def init(
        self,
        model_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Load the model. Raises InferenceEngineInitError on failure."""

    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        grammar: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        """One completion for ``messages``. May raise on transport failure."""

    @abstractmethod
    async def destroy(self) -> None:
        ...

    def clear_cache(self) -> None:
        """Drop any cached model state so the next ``init`` starts clean."""


def split_system(messages: list[dict[str, str]]) -> tuple[str, list[dict[str, str]]]:
    """Separate system messages from the chat turns that follow them."""
    system = "\n".join(m["content"] for m in messages if m.get("role") == "system")
    turns = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") in ("user", "assistant")
    ]
    return system, turns
