"""Conversation store.

Owns the Conversation row: race-safe get-or-create on the canonical pair,
per-user listing, the denormalized last-message cache, the two per-side
unread counters, and deletion.

None of these functions commit. The messaging service composes them inside
run_in_transaction() so that counter updates and message writes land
together.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import case, func, or_, select, update
from sqlalchemy import delete as sql_delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from murmur.db.models import Conversation
from murmur.errors import ApiErrorCode, NotFoundError
from murmur.logging import get_logger
from murmur.services.pairs import Side, canonical_pair, is_participant

logger = get_logger(__name__)


def _insert_for(db: Session):
    """Dialect-specific INSERT construct (both support ON CONFLICT)."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert(Conversation)
    return sqlite.insert(Conversation)


def _counter_column(side: Side):
    return Conversation.unread_count_a if side == "a" else Conversation.unread_count_b


def get_or_create(db: Session, user_x: str, user_y: str) -> tuple[Conversation, bool]:
    """Find or create the conversation between two users.

    Argument order is irrelevant. Concurrent first contact from both sides
    converges on a single row: the insert is ON CONFLICT DO NOTHING against
    the unique canonical pair, and the row is then read back.

    Returns:
        Tuple of (conversation, created).

    Raises:
        InvalidRequestError: Empty ids or a self-conversation.
    """
    user_a_id, user_b_id = canonical_pair(user_x, user_y)

    stmt = (
        _insert_for(db)
        .values(
            id=uuid4(),
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            unread_count_a=0,
            unread_count_b=0,
            next_seq=1,
        )
        .on_conflict_do_nothing(index_elements=["user_a_id", "user_b_id"])
        .returning(Conversation.id)
    )
    created_id = db.execute(stmt).scalar_one_or_none()

    conversation = db.execute(
        select(Conversation)
        .where(Conversation.user_a_id == user_a_id, Conversation.user_b_id == user_b_id)
        .execution_options(populate_existing=True)
    ).scalar_one()

    if created_id is not None:
        logger.info("conversation_created", conversation_id=str(conversation.id))

    return conversation, created_id is not None


def get_for_participant_or_404(db: Session, conversation_id: UUID, user_id: str) -> Conversation:
    """Load a conversation and verify the user takes part in it.

    A missing conversation and a non-participant produce the same error so
    that conversation ids cannot be probed. The reason is kept in debug logs.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND)
    """
    conversation = db.execute(
        select(Conversation)
        .where(Conversation.id == conversation_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()

    if conversation is None or not is_participant(conversation, user_id):
        logger.debug(
            "conversation_access_denied",
            conversation_id=str(conversation_id),
            reason="missing" if conversation is None else "not_participant",
        )
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")

    return conversation


def list_for_user(db: Session, user_id: str) -> list[Conversation]:
    """Every conversation the user takes part in, most recently active first.

    Conversations that never had a message sort last.
    """
    result = db.execute(
        select(Conversation)
        .where(or_(Conversation.user_a_id == user_id, Conversation.user_b_id == user_id))
        .order_by(
            Conversation.last_message_at.desc().nulls_last(),
            Conversation.created_at.desc(),
            Conversation.id.desc(),
        )
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def record_new_message(
    db: Session,
    conversation_id: UUID,
    recipient_side: Side,
    preview: str,
    sent_at: datetime,
) -> tuple[int, datetime]:
    """Account for one new message on the conversation row.

    A single UPDATE that:
    1. increments the recipient side's unread counter by exactly 1
    2. bumps next_seq and returns the seq to give the new message
    3. refreshes last_message_at / last_message_preview / updated_at

    last_message_at never moves backwards: a sender whose clock reading
    predates the previous message inherits that message's timestamp, so
    (created_at, seq) order always agrees with seq order.

    The UPDATE takes the row lock, so concurrent sends into the same
    conversation serialize here until commit, and each increment is applied
    by the database rather than read-modify-written by the caller.

    Must be called inside an open transaction; does not commit.

    Returns:
        Tuple of (seq, created_at) for the new message.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): The row is gone (deleted
            concurrently).
    """
    counter = _counter_column(recipient_side)
    stamped_at = case(
        (Conversation.last_message_at.is_(None), sent_at),
        (Conversation.last_message_at < sent_at, sent_at),
        else_=Conversation.last_message_at,
    )
    result = db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(
            {
                counter: counter + 1,
                Conversation.next_seq: Conversation.next_seq + 1,
                Conversation.last_message_at: stamped_at,
                Conversation.last_message_preview: preview,
                Conversation.updated_at: stamped_at,
            }
        )
        .returning(Conversation.next_seq, Conversation.last_message_at)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")

    next_seq, created_at = row
    return next_seq - 1, created_at


def reset_unread(db: Session, conversation_id: UUID, side: Side) -> None:
    """Hard-reset one side's unread counter to zero.

    A reset rather than a decrement, so any earlier drift heals itself.
    """
    counter = _counter_column(side)
    db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values({counter: 0})
        .execution_options(synchronize_session=False)
    )


def unread_total(db: Session, user_id: str) -> int:
    """Sum of the user's own-side unread counters across conversations.

    Reads only conversation rows; never scans messages.
    """
    own_counter = case(
        (Conversation.user_a_id == user_id, Conversation.unread_count_a),
        else_=Conversation.unread_count_b,
    )
    total = db.scalar(
        select(func.coalesce(func.sum(own_counter), 0)).where(
            or_(Conversation.user_a_id == user_id, Conversation.user_b_id == user_id)
        )
    )
    return int(total or 0)


def delete(db: Session, conversation_id: UUID) -> bool:
    """Delete a conversation. Messages go with it via FK CASCADE.

    Returns:
        True if a row was deleted.
    """
    result = db.execute(
        sql_delete(Conversation)
        .where(Conversation.id == conversation_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0
