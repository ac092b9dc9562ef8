"""
Unit Tests for the Resume/Cooldown Resolver

Tests lookup classification: fresh, resumed, cooldown and malformed input.
"""

import pytest
import sys
import os
from datetime import datetime, timezone

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "agentic_assessment_client", "src"))

from agentic_assessment_client.resume_resolver import LookupOutcome, resolve_lookup
from agentic_assessment_client.session_state import MessageRole


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def clock():
    return NOW


class TestResolveLookup:
    """Test suite for resolve_lookup."""

    def test_fresh_session(self):
        resolution = resolve_lookup({"session_id": 42, "thread_id": "t-42"}, now=clock)

        assert resolution.outcome is LookupOutcome.FRESH
        assert resolution.session_id == 42
        assert resolution.thread_id == "t-42"
        assert resolution.prior_messages == []

    def test_resumed_session_keeps_order(self):
        resolution = resolve_lookup({
            "session_id": 42,
            "resumed": True,
            "prior_messages": [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
                {"role": "user", "content": "next"},
            ],
        }, now=clock)

        assert resolution.outcome is LookupOutcome.RESUMED
        assert resolution.session_id == 42
        assert resolution.prior_messages == [
            (MessageRole.USER, "hi"),
            (MessageRole.BOT, "hello"),
            (MessageRole.USER, "next"),
        ]

    def test_future_cooldown_blocks(self):
        resolution = resolve_lookup({"cooldown_ends_at": "2030-01-01T00:00:00Z"}, now=clock)

        assert resolution.outcome is LookupOutcome.COOLDOWN
        assert resolution.cooldown_ends_at == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_cooldown_wins_over_prior_messages(self):
        resolution = resolve_lookup({
            "session_id": 42,
            "cooldown_ends_at": "2030-01-01T00:00:00Z",
            "prior_messages": [{"role": "user", "content": "hi"}],
        }, now=clock)

        assert resolution.outcome is LookupOutcome.COOLDOWN
        assert resolution.prior_messages == []

    def test_expired_cooldown_is_ignored(self):
        resolution = resolve_lookup({
            "session_id": 43,
            "cooldown_ends_at": "2026-10-18T12:00:00Z",
        }, now=clock)

        assert resolution.outcome is LookupOutcome.FRESH
        assert resolution.session_id == 43

    def test_naive_cooldown_is_treated_as_utc(self):
        resolution = resolve_lookup({"cooldown_ends_at": "2026-10-19T13:00:00"}, now=clock)

        assert resolution.outcome is LookupOutcome.COOLDOWN
        assert resolution.cooldown_ends_at.tzinfo is not None

    def test_missing_session_id_is_errored(self):
        resolution = resolve_lookup({"thread_id": "t-1"}, now=clock)

        assert resolution.outcome is LookupOutcome.ERRORED
        assert resolution.error

    def test_lookup_message_becomes_error(self):
        resolution = resolve_lookup({"message": "Profile incomplete"}, now=clock)

        assert resolution.outcome is LookupOutcome.ERRORED
        assert resolution.error == "Profile incomplete"

    def test_unknown_prior_role_is_errored(self):
        resolution = resolve_lookup({
            "session_id": 42,
            "prior_messages": [{"role": "system", "content": "secret"}],
        }, now=clock)

        assert resolution.outcome is LookupOutcome.ERRORED

    @pytest.mark.parametrize("payload", [None, "oops", [1, 2], {"cooldown_ends_at": "not a date"}])
    def test_malformed_payload_is_errored(self, payload):
        resolution = resolve_lookup(payload, now=clock)

        assert resolution.outcome is LookupOutcome.ERRORED
        assert resolution.error == "Malformed session lookup response"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
