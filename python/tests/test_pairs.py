"""Tests for canonical participant pairs."""

import pytest

from murmur.db.models import Conversation
from murmur.errors import ApiErrorCode, InvalidRequestError
from murmur.services.pairs import (
    canonical_pair,
    is_participant,
    other_participant,
    side_of,
    unread_for,
)


class TestCanonicalPair:
    def test_orders_lexicographically(self):
        assert canonical_pair("u2", "u1") == ("u1", "u2")
        assert canonical_pair("u1", "u2") == ("u1", "u2")

    @pytest.mark.parametrize(
        "x,y",
        [
            ("alice", "bob"),
            ("B", "a"),  # uppercase sorts before lowercase
            ("user_10", "user_9"),  # string order, not numeric
            ("ü", "z"),
        ],
    )
    def test_commutative(self, x, y):
        assert canonical_pair(x, y) == canonical_pair(y, x)
        low, high = canonical_pair(x, y)
        assert low < high

    def test_self_pair_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            canonical_pair("u1", "u1")
        assert exc_info.value.code == ApiErrorCode.E_SELF_CONVERSATION
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("x,y", [("", "u1"), ("u1", ""), ("", "")])
    def test_empty_id_rejected(self, x, y):
        with pytest.raises(InvalidRequestError) as exc_info:
            canonical_pair(x, y)
        assert exc_info.value.code == ApiErrorCode.E_INVALID_REQUEST


class TestSides:
    @pytest.fixture
    def conversation(self) -> Conversation:
        return Conversation(
            user_a_id="u1", user_b_id="u2", unread_count_a=3, unread_count_b=7
        )

    def test_side_of(self, conversation):
        assert side_of(conversation, "u1") == "a"
        assert side_of(conversation, "u2") == "b"

    def test_side_of_outsider_is_programming_error(self, conversation):
        with pytest.raises(ValueError):
            side_of(conversation, "u3")

    def test_other_participant(self, conversation):
        assert other_participant(conversation, "u1") == "u2"
        assert other_participant(conversation, "u2") == "u1"

    def test_unread_for_reads_own_side(self, conversation):
        assert unread_for(conversation, "u1") == 3
        assert unread_for(conversation, "u2") == 7

    def test_is_participant(self, conversation):
        assert is_participant(conversation, "u1")
        assert is_participant(conversation, "u2")
        assert not is_participant(conversation, "u3")
