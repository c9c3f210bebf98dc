"""Conversation and Message Pydantic schemas.

Contains request and response models for the direct-messaging endpoints.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

# =============================================================================
# Response Schemas
# =============================================================================


class UserSummary(BaseModel):
    """Participant summary attached to conversations and messages.

    Display fields come from the profile directory and may be absent.
    is_online is only filled in on conversation views.
    """

    id: str
    name: str | None = None
    username: str | None = None
    avatar: str | None = None
    is_verified: bool = False
    is_online: bool | None = None


class ConversationOut(BaseModel):
    """Response schema for a conversation, as seen by one participant.

    other_user is the participant who is not the caller; unread_count is the
    counter belonging to the caller's side.
    """

    id: UUID
    other_user: UserSummary
    unread_count: int
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    created_at: datetime
    updated_at: datetime
    created: bool = False

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    """Response schema for a message."""

    id: UUID
    conversation_id: UUID
    sender_id: str
    recipient_id: str
    content: str
    is_read: bool
    created_at: datetime
    sender: UserSummary | None = None

    model_config = ConfigDict(from_attributes=True)


class PaginationOut(BaseModel):
    """Page-number pagination metadata for message lists."""

    current_page: int
    page_size: int
    total_pages: int
    total_messages: int
    has_more: bool


class MessageListResponse(BaseModel):
    """Response for listing messages, oldest first within the page."""

    data: list[MessageOut]
    pagination: PaginationOut


class MarkReadOut(BaseModel):
    """Result of a mark-read call; marked_count is 0 on a repeat call."""

    conversation_id: UUID
    marked_count: int


class UnreadCountOut(BaseModel):
    """Total unread messages addressed to the caller."""

    unread_count: int


# =============================================================================
# Request Schemas
# =============================================================================


class SendMessageRequest(BaseModel):
    """Request schema for sending a message.

    Length and emptiness are checked by the service after trimming so the
    configured limit applies to every caller, not just HTTP.
    """

    content: str
