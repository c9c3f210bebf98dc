"""Canonical participant pairs.

A conversation row stores its two participants in a fixed order
(user_a_id < user_b_id under plain string ordering). Every lookup and insert
goes through canonical_pair() first, so there is never a need to query both
(x, y) and (y, x).
"""

from typing import Literal

from murmur.db.models import Conversation
from murmur.errors import ApiErrorCode, InvalidRequestError

Side = Literal["a", "b"]


def canonical_pair(user_x: str, user_y: str) -> tuple[str, str]:
    """Return the two ids as (lower, higher).

    Commutative: canonical_pair(x, y) == canonical_pair(y, x).

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): Either id is empty.
        InvalidRequestError(E_SELF_CONVERSATION): Both ids are the same user.
    """
    if not user_x or not user_y:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "User id is required")
    if user_x == user_y:
        raise InvalidRequestError(
            ApiErrorCode.E_SELF_CONVERSATION, "Cannot create conversation with yourself"
        )
    if user_x < user_y:
        return user_x, user_y
    return user_y, user_x


def is_participant(conversation: Conversation, user_id: str) -> bool:
    return user_id in (conversation.user_a_id, conversation.user_b_id)


def side_of(conversation: Conversation, user_id: str) -> Side:
    """Return which stored side ("a" or "b") the user occupies.

    Raises:
        ValueError: If the user is not a participant. Callers check
            membership first; reaching this is a programming error.
    """
    if user_id == conversation.user_a_id:
        return "a"
    if user_id == conversation.user_b_id:
        return "b"
    raise ValueError(f"User {user_id} is not a participant in conversation {conversation.id}")


def other_participant(conversation: Conversation, user_id: str) -> str:
    """Return the id of the participant who is not user_id."""
    if side_of(conversation, user_id) == "a":
        return conversation.user_b_id
    return conversation.user_a_id


def unread_for(conversation: Conversation, user_id: str) -> int:
    """Return the unread counter belonging to user_id's side."""
    if side_of(conversation, user_id) == "a":
        return conversation.unread_count_a
    return conversation.unread_count_b
