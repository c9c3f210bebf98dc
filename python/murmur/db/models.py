"""SQLAlchemy ORM models for Murmur.

Defines the two tables owned by the messaging core using SQLAlchemy 2.x
declarative patterns. Users are external: they appear only as opaque
text identifiers, never as a foreign key.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy import Uuid as SA_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Participant ids compare bytewise on PostgreSQL so the pair-order check
# agrees with Python string ordering regardless of database collation.
UserIdText = Text().with_variant(Text(collation="C"), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Conversation(Base):
    """Conversation model - the single 1:1 channel between two users.

    Participants are stored in canonical order (user_a_id < user_b_id), so a
    pair of users maps to exactly one row whichever of them initiates.
    unread_count_a / unread_count_b cache the number of unread messages
    addressed to each side.
    """

    __tablename__ = "conversations"

    id: Mapped[UUID] = mapped_column(SA_UUID(), primary_key=True, default=uuid4)
    user_a_id: Mapped[str] = mapped_column(UserIdText, nullable=False)
    user_b_id: Mapped[str] = mapped_column(UserIdText, nullable=False)
    unread_count_a: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    unread_count_b: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_message_preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_seq: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uix_conversations_pair"),
        CheckConstraint("user_a_id < user_b_id", name="ck_conversations_pair_ordered"),
        CheckConstraint("unread_count_a >= 0", name="ck_conversations_unread_a_nonneg"),
        CheckConstraint("unread_count_b >= 0", name="ck_conversations_unread_b_nonneg"),
        CheckConstraint("next_seq >= 1", name="ck_conversations_next_seq_positive"),
        Index("idx_conversations_user_a", "user_a_id"),
        Index("idx_conversations_user_b", "user_b_id"),
    )

    # Relationships
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Message(Base):
    """Message model - a single message in a conversation.

    is_read starts false and only ever flips to true.
    """

    __tablename__ = "messages"

    id: Mapped[UUID] = mapped_column(SA_UUID(), primary_key=True, default=uuid4)
    conversation_id: Mapped[UUID] = mapped_column(
        SA_UUID(),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    sender_id: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_id: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("seq >= 1", name="ck_messages_seq_positive"),
        CheckConstraint("sender_id <> recipient_id", name="ck_messages_distinct_parties"),
        CheckConstraint("length(content) > 0", name="ck_messages_content_nonempty"),
        UniqueConstraint("conversation_id", "seq", name="uix_messages_conversation_seq"),
        Index("idx_messages_conversation_created_at", "conversation_id", "created_at"),
        Index("idx_messages_unread", "conversation_id", "recipient_id", "is_read"),
    )

    # Relationships
    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="messages")
