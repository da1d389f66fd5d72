from __future__ import annotations

import json

from terrarium.memory.conversation import MAX_EXCHANGES, ConversationHistory


def test_pending_until_answered():
    history = ConversationHistory()
    history.record_user_message("hello there")
    assert history.pending == "hello there"
    assert len(history) == 0

    history.record_response("hi", "glow")
    assert history.pending is None
    assert len(history) == 1


def test_response_without_pending_is_ignored():
    history = ConversationHistory()
    history.record_response("talking to myself", "drift")
    assert len(history) == 0


def test_newer_message_replaces_pending():
    history = ConversationHistory()
    history.record_user_message("first")
    history.record_user_message("second")
    history.record_response(None, "pulse")
    assert history.to_list()[0]["user_message"] == "second"


def test_bounded_to_last_exchanges():
    history = ConversationHistory()
    for i in range(MAX_EXCHANGES + 3):
        history.record_user_message(f"msg {i}")
        history.record_response(None, "drift")
    assert len(history) == MAX_EXCHANGES
    assert history.to_list()[0]["user_message"] == "msg 3"


class TestConversationMessages:
    def _history(self, count: int) -> ConversationHistory:
        history = ConversationHistory()
        for i in range(count):
            history.record_user_message(f"msg {i}")
            history.record_response("thinking" if i % 2 else None, "spin")
        return history

    def test_nothing_below_level_two(self):
        assert self._history(3).build_conversation_messages(1) == []

    def test_aware_replays_three_exchanges(self):
        messages = self._history(5).build_conversation_messages(2)
        assert len(messages) == 6
        assert messages[0] == {"role": "user", "content": "[The observer said]: msg 2"}
        assert json.loads(messages[1]["content"]) == {"action": "spin"}
        assert json.loads(messages[3]["content"]) == {"action": "spin", "thought": "thinking"}

    def test_sentient_replays_all_five(self):
        messages = self._history(5).build_conversation_messages(3)
        assert [m["role"] for m in messages] == ["user", "assistant"] * 5


def test_from_list_drops_incomplete_exchanges():
    history = ConversationHistory.from_list([
        {"user_message": "hi", "creature_action": "glow"},
        {"user_message": "", "creature_action": "glow"},
        {"user_message": "no answer"},
        "garbage",
    ])
    assert len(history) == 1
    assert history.pending is None
