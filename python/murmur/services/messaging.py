"""Direct-messaging service layer.

The only place multi-entity invariants are enforced and the only place
transactions are opened. Service functions correspond 1:1 with route
handlers; routes are transport-only and call exactly one of them.

Invariants maintained here:
- unread_count_X always equals the number of unread messages addressed to
  side X. Send increments by exactly 1 in the same transaction as the
  insert; mark-read flips rows and resets to 0 in one transaction.
- last_message_at / last_message_preview are written in the same
  transaction as the message they mirror.
- A non-participant gets the same E_CONVERSATION_NOT_FOUND as a
  nonexistent conversation.

Lock ordering: every mutating transaction touches the conversation row
before any message rows, so sends, mark-reads and deletes on one
conversation serialize on that row without deadlocking each other.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.orm import Session

from murmur.config import get_settings
from murmur.db.models import Conversation, Message
from murmur.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from murmur.logging import bind_conversation, get_logger
from murmur.schemas.conversation import (
    ConversationOut,
    MarkReadOut,
    MessageListResponse,
    MessageOut,
    PaginationOut,
    UnreadCountOut,
    UserSummary,
)
from murmur.services import conversations as conversations_store
from murmur.services import messages as messages_store
from murmur.services.pairs import canonical_pair, other_participant, side_of, unread_for
from murmur.services.presence import PresenceProvider
from murmur.services.profiles import ProfileDirectory
from murmur.services.tx import Deadline, run_in_transaction, store_errors

logger = get_logger(__name__)


# =============================================================================
# Helper Functions
# =============================================================================


def validate_content(content: str | None) -> str:
    """Trim content and enforce the non-empty / max-length rules.

    Raises:
        InvalidRequestError(E_INVALID_CONTENT)
    """
    max_length = get_settings().message_max_length
    trimmed = (content or "").strip()
    if not trimmed:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_CONTENT, "Message content is required")
    if len(trimmed) > max_length:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_CONTENT,
            f"Message content exceeds {max_length} characters",
        )
    return trimmed


def make_preview(content: str) -> str:
    """Truncate content to the display length used on conversation lists."""
    return content[: get_settings().message_preview_length]


def validate_page_params(page: int, page_size: int) -> None:
    if page < 1:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "page must be >= 1")
    if not 1 <= page_size <= messages_store.MAX_PAGE_SIZE:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"page_size must be between 1 and {messages_store.MAX_PAGE_SIZE}",
        )


def conversation_to_out(
    conversation: Conversation,
    viewer_id: str,
    profiles_by_id: dict[str, UserSummary],
    presence: PresenceProvider,
    created: bool = False,
) -> ConversationOut:
    """Convert a Conversation row to the caller-relative ConversationOut."""
    other_id = other_participant(conversation, viewer_id)
    other_user = profiles_by_id.get(other_id) or UserSummary(id=other_id)
    other_user = other_user.model_copy(update={"is_online": presence.is_online(other_id)})

    return ConversationOut(
        id=conversation.id,
        other_user=other_user,
        unread_count=unread_for(conversation, viewer_id),
        last_message_at=conversation.last_message_at,
        last_message_preview=conversation.last_message_preview,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        created=created,
    )


def message_to_out(message: Message, sender: UserSummary | None = None) -> MessageOut:
    """Convert Message ORM model to MessageOut schema."""
    return MessageOut(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        content=message.content,
        is_read=message.is_read,
        created_at=message.created_at,
        sender=sender,
    )


# =============================================================================
# Service Functions
# =============================================================================


def get_or_create_conversation_view(
    db: Session,
    caller_id: str,
    other_user_id: str,
    *,
    presence: PresenceProvider,
    profiles: ProfileDirectory,
    deadline: Deadline | None = None,
) -> ConversationOut:
    """Resolve (creating on first contact) the caller's conversation with a peer.

    Raises:
        InvalidRequestError(E_SELF_CONVERSATION): caller_id == other_user_id.
    """
    # Validate before opening a transaction
    canonical_pair(caller_id, other_user_id)

    conversation, created = run_in_transaction(
        db,
        lambda: conversations_store.get_or_create(db, caller_id, other_user_id),
        operation="get_or_create_conversation",
        deadline=deadline,
    )

    bind_conversation(conversation.id)
    return conversation_to_out(
        conversation,
        caller_id,
        profiles.lookup([other_user_id]),
        presence,
        created=created,
    )


def list_conversations(
    db: Session,
    caller_id: str,
    *,
    presence: PresenceProvider,
    profiles: ProfileDirectory,
) -> list[ConversationOut]:
    """List the caller's conversations, most recently active first."""
    with store_errors("list_conversations"):
        conversations = conversations_store.list_for_user(db, caller_id)

    profiles_by_id = profiles.lookup(other_participant(c, caller_id) for c in conversations)
    return [conversation_to_out(c, caller_id, profiles_by_id, presence) for c in conversations]


def list_messages(
    db: Session,
    caller_id: str,
    conversation_id: UUID,
    page: int = 1,
    page_size: int = messages_store.DEFAULT_PAGE_SIZE,
    *,
    profiles: ProfileDirectory,
) -> MessageListResponse:
    """List one page of messages, counted back from the newest.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): page < 1 or page_size out of range.
        NotFoundError(E_CONVERSATION_NOT_FOUND): Missing conversation or non-participant.
    """
    validate_page_params(page, page_size)
    bind_conversation(conversation_id)

    with store_errors("list_messages"):
        conversations_store.get_for_participant_or_404(db, conversation_id, caller_id)
        result = messages_store.page(db, conversation_id, page, page_size)

    senders = profiles.lookup(m.sender_id for m in result.items)
    return MessageListResponse(
        data=[message_to_out(m, senders.get(m.sender_id)) for m in result.items],
        pagination=PaginationOut(
            current_page=result.page,
            page_size=result.page_size,
            total_pages=result.total_pages,
            total_messages=result.total,
            has_more=result.has_more,
        ),
    )


def send_message(
    db: Session,
    conversation_id: UUID,
    sender_id: str,
    content: str,
    *,
    profiles: ProfileDirectory,
    deadline: Deadline | None = None,
) -> MessageOut:
    """Append a message and account for it on the conversation row.

    Content is validated before anything is read or written. The counter
    increment, cache refresh and insert commit together or not at all, and
    the whole unit is retried on contention.

    Raises:
        InvalidRequestError(E_INVALID_CONTENT): Empty or oversized content.
        NotFoundError(E_CONVERSATION_NOT_FOUND): Missing conversation,
            non-participant sender, or conversation deleted mid-send.
        ConflictError / DeadlineExceededError / StoreUnavailableError
    """
    content = validate_content(content)
    bind_conversation(conversation_id)

    with store_errors("send_message"):
        conversation = conversations_store.get_for_participant_or_404(
            db, conversation_id, sender_id
        )
    recipient_id = other_participant(conversation, sender_id)
    recipient_side = side_of(conversation, recipient_id)
    preview = make_preview(content)

    def work() -> Message:
        seq, created_at = conversations_store.record_new_message(
            db, conversation_id, recipient_side, preview, datetime.now(UTC)
        )
        return messages_store.append(
            db, conversation_id, seq, sender_id, recipient_id, content, created_at
        )

    message = run_in_transaction(db, work, operation="send_message", deadline=deadline)

    logger.info("message_sent", message_id=str(message.id), seq=message.seq)

    sender = profiles.lookup([sender_id]).get(sender_id)
    return message_to_out(message, sender)


def mark_messages_read(
    db: Session,
    conversation_id: UUID,
    reader_id: str,
    *,
    deadline: Deadline | None = None,
) -> MarkReadOut:
    """Mark everything addressed to the reader as read and zero their counter.

    Idempotent: a repeat call changes no rows and leaves the counter at 0.
    The counter reset runs first so the conversation row is locked before
    messages are flipped; a send racing with this call either lands before
    (and gets flipped) or waits and lands after (and stays unread, counted).

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND)
    """
    bind_conversation(conversation_id)
    with store_errors("mark_messages_read"):
        conversation = conversations_store.get_for_participant_or_404(
            db, conversation_id, reader_id
        )
    reader_side = side_of(conversation, reader_id)

    def work() -> int:
        conversations_store.reset_unread(db, conversation_id, reader_side)
        return messages_store.mark_read(db, conversation_id, reader_id)

    marked = run_in_transaction(db, work, operation="mark_messages_read", deadline=deadline)

    if marked:
        logger.info("messages_marked_read", marked_count=marked)

    return MarkReadOut(conversation_id=conversation_id, marked_count=marked)


def unread_summary(db: Session, caller_id: str) -> UnreadCountOut:
    """Total unread messages addressed to the caller across all conversations."""
    with store_errors("unread_summary"):
        total = conversations_store.unread_total(db, caller_id)
    return UnreadCountOut(unread_count=total)


def delete_conversation(
    db: Session,
    conversation_id: UUID,
    requester_id: str,
    *,
    deadline: Deadline | None = None,
) -> None:
    """Hard-delete a conversation and, via FK CASCADE, all its messages.

    Either participant may delete. A repeat call reports not found.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND)
    """
    bind_conversation(conversation_id)
    with store_errors("delete_conversation"):
        conversations_store.get_for_participant_or_404(db, conversation_id, requester_id)

    def work() -> None:
        if not conversations_store.delete(db, conversation_id):
            raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")

    run_in_transaction(db, work, operation="delete_conversation", deadline=deadline)
    logger.info("conversation_deleted")
