"""Message store.

Owns the Message row: append, page retrieval, and the bulk unread -> read
transition. Nothing here touches the conversation row; the messaging service
pairs these calls with the conversation store inside one transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from math import ceil
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from murmur.db.models import Message

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@dataclass
class MessagePage:
    """One page of a conversation, oldest message first."""

    items: list[Message]
    total: int
    page: int
    page_size: int
    has_more: bool

    @property
    def total_pages(self) -> int:
        return ceil(self.total / self.page_size) if self.page_size else 0


def append(
    db: Session,
    conversation_id: UUID,
    seq: int,
    sender_id: str,
    recipient_id: str,
    content: str,
    created_at: datetime,
) -> Message:
    """Insert an unread message. Does not commit."""
    message = Message(
        id=uuid4(),
        conversation_id=conversation_id,
        seq=seq,
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=content,
        is_read=False,
        created_at=created_at,
    )
    db.add(message)
    db.flush()
    return message


def page(
    db: Session, conversation_id: UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
) -> MessagePage:
    """Fetch one page counted back from the newest message.

    Page 1 holds the most recent `page_size` messages. Rows are read newest
    first and handed back oldest first for display.
    """
    total = (
        db.scalar(
            select(func.count())
            .select_from(Message)
            .where(Message.conversation_id == conversation_id)
        )
        or 0
    )

    skip = (page - 1) * page_size
    rows = db.scalars(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.seq.desc())
        .offset(skip)
        .limit(page_size)
    ).all()

    items = list(reversed(rows))
    return MessagePage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        has_more=skip + len(items) < total,
    )


def mark_read(db: Session, conversation_id: UUID, recipient_id: str) -> int:
    """Flip every unread message addressed to recipient_id to read.

    Only false -> true; read messages are never touched.

    Returns:
        Number of rows changed.
    """
    result = db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.recipient_id == recipient_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def count_unread(db: Session, conversation_id: UUID, recipient_id: str) -> int:
    """Unread messages addressed to recipient_id, counted from the message table."""
    result = db.scalar(
        select(func.count())
        .select_from(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.recipient_id == recipient_id,
            Message.is_read.is_(False),
        )
    )
    return result or 0
