"""
Conversation History — what the observer said and how the creature answered.

Only the last few exchanges are kept. A user message is held as *pending*
until the creature's next inference result answers it; only then does it become
an exchange. Exchanges are replayed to the model as alternating user/assistant
turns at the higher evolution levels.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional

MAX_EXCHANGES = 5


@dataclass
class Exchange:
    user_message: str
    creature_action: str
    creature_response: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ConversationHistory:
    """Bounded record of observer/creature exchanges."""

    def __init__(self, exchanges: Optional[Iterable[Exchange]] = None):
        self._exchanges: list[Exchange] = list(exchanges or [])[-MAX_EXCHANGES:]
        self._pending: Optional[str] = None

    def __len__(self) -> int:
        return len(self._exchanges)

    @property
    def pending(self) -> Optional[str]:
        return self._pending

    def record_user_message(self, message: str) -> None:
        self._pending = message

    def record_response(self, thought: Optional[str], action: str) -> None:
        """Close the pending exchange with the creature's answer."""
        if not self._pending:
            return
        self._exchanges.append(
            Exchange(
                user_message=self._pending,
                creature_action=action,
                creature_response=thought or None,
            )
        )
        if len(self._exchanges) > MAX_EXCHANGES:
            self._exchanges.pop(0)
        self._pending = None

    def build_conversation_messages(self, level: int) -> list[dict[str, str]]:
        """Replay recent exchanges as chat turns; nothing below level 2."""
        if level <= 1:
            return []
        count = MAX_EXCHANGES if level >= 3 else 3
        messages: list[dict[str, str]] = []
        for ex in self._exchanges[-count:]:
            messages.append({
                "role": "user",
                "content": f"[The observer said]: {ex.user_message}",
            })
            response: dict[str, str] = {"action": ex.creature_action}
            if ex.creature_response:
                response["thought"] = ex.creature_response
            messages.append({"role": "assistant", "content": json.dumps(response)})
        return messages

    def to_list(self) -> list[dict[str, Any]]:
        return [ex.to_dict() for ex in self._exchanges]

    @classmethod
    def from_list(cls, data: Iterable[dict[str, Any]]) -> ConversationHistory:
        """Rebuild from persisted data, dropping incomplete exchanges."""
        exchanges = [
            Exchange(
                user_message=str(item["user_message"]),
                creature_action=str(item["creature_action"]),
                creature_response=item.get("creature_response"),
                timestamp=float(item.get("timestamp", time.time())),
            )
            for item in data
            if isinstance(item, dict) and item.get("user_message") and item.get("creature_action")
        ]
        return cls(exchanges)
