"""Tests for request-scoped log context."""

import pytest

from murmur.logging import (
    add_request_context,
    bind_conversation,
    clear_request_context,
    conversation_id_var,
    set_request_context,
)
from murmur.services import messaging
from tests.helpers import create_conversation


@pytest.fixture(autouse=True)
def clean_context():
    clear_request_context()
    yield
    clear_request_context()


class TestAddRequestContext:
    def test_bound_fields_merged(self):
        set_request_context("req-1", user_id="alice", path="/conversations", method="GET")
        bind_conversation("c-1")

        event = add_request_context(None, "info", {"event": "x"})

        assert event == {
            "event": "x",
            "request_id": "req-1",
            "user_id": "alice",
            "path": "/conversations",
            "method": "GET",
            "conversation_id": "c-1",
        }

    def test_explicit_field_wins(self):
        bind_conversation("c-1")
        event = add_request_context(None, "info", {"event": "x", "conversation_id": "c-2"})
        assert event["conversation_id"] == "c-2"

    def test_unset_fields_omitted(self):
        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_clear_drops_conversation(self):
        bind_conversation("c-1")
        clear_request_context()
        assert conversation_id_var.get() is None


class TestServicesBindConversation:
    def test_send_binds_conversation_id(self, db_session, profiles, alice, bob):
        conversation = create_conversation(db_session, alice, bob)
        conversation_id = conversation.id

        messaging.send_message(db_session, conversation_id, alice, "hi", profiles=profiles)

        assert conversation_id_var.get() == str(conversation_id)
