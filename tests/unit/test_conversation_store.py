"""
Unit Tests for the Conversation Store

Tests ordering, streaming mutation rules and snapshot isolation.
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "agentic_assessment_client", "src"))

from agentic_assessment_client.conversation_store import ConversationStore
from agentic_assessment_client.errors import InvalidStateError
from agentic_assessment_client.session_state import MessageRole


class TestConversationStore:
    """Test suite for ConversationStore."""

    @pytest.fixture
    def store(self):
        """Create a strict store."""
        return ConversationStore(strict=True)

    def test_ids_increase_in_insertion_order(self, store):
        first = store.append(MessageRole.USER, "hi")
        second = store.append(MessageRole.BOT, "hello")
        third = store.append(MessageRole.USER, "how are you")

        assert first.id < second.id < third.id
        assert [m.content for m in store] == ["hi", "hello", "how are you"]

    def test_ids_keep_increasing_after_clear(self, store):
        store.append(MessageRole.USER, "hi")
        store.clear()
        message = store.append(MessageRole.USER, "again")

        assert len(store) == 1
        assert message.id == 2

    def test_fragments_extend_streaming_message(self, store):
        bot = store.append(MessageRole.BOT, "", streaming=True)

        assert store.append_fragment(bot.id, "Hel") is True
        assert store.append_fragment(bot.id, "lo") is True

        assert store.streaming_message.content == "Hello"
        assert store.is_streaming

    def test_freeze_latest_stops_streaming(self, store):
        bot = store.append(MessageRole.BOT, "", streaming=True)
        store.append_fragment(bot.id, "done")

        frozen = store.freeze_latest()

        assert frozen.content == "done"
        assert not frozen.is_streaming
        assert not store.is_streaming
        assert store.freeze_latest() is None

    def test_fragment_after_freeze_is_rejected(self, store):
        bot = store.append(MessageRole.BOT, "", streaming=True)
        store.freeze_latest()

        with pytest.raises(InvalidStateError):
            store.append_fragment(bot.id, "late")

    def test_fragment_for_wrong_message_is_rejected(self, store):
        store.append(MessageRole.USER, "hi")
        bot = store.append(MessageRole.BOT, "", streaming=True)

        with pytest.raises(InvalidStateError):
            store.append_fragment(bot.id - 1, "nope")

    def test_user_messages_cannot_stream(self, store):
        with pytest.raises(InvalidStateError):
            store.append(MessageRole.USER, "", streaming=True)

    def test_only_one_message_streams(self, store):
        store.append(MessageRole.BOT, "", streaming=True)

        with pytest.raises(InvalidStateError):
            store.append(MessageRole.BOT, "", streaming=True)
        with pytest.raises(InvalidStateError):
            store.append(MessageRole.USER, "interrupt")

        assert len(store) == 1

    def test_non_strict_store_ignores_violations(self):
        store = ConversationStore(strict=False)
        bot = store.append(MessageRole.BOT, "", streaming=True)

        assert store.append(MessageRole.USER, "interrupt") is None
        assert store.append_fragment(bot.id + 5, "stray") is False
        assert len(store) == 1
        assert store.streaming_message.content == ""

    def test_snapshot_is_isolated_from_store(self, store):
        bot = store.append(MessageRole.BOT, "", streaming=True)
        snapshot = store.snapshot()

        snapshot[0].content = "tampered"
        store.append_fragment(bot.id, "real")

        assert snapshot[0].content == "tampered"
        assert store.latest().content == "real"

    def test_iteration_is_restartable(self, store):
        store.append(MessageRole.USER, "a")
        store.append(MessageRole.BOT, "b")

        assert [m.content for m in store] == [m.content for m in store]

    def test_latest_of_empty_store(self, store):
        assert store.latest() is None
        assert store.streaming_message is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
