"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from murmur.schemas.conversation import (
    ConversationOut,
    MarkReadOut,
    MessageListResponse,
    MessageOut,
    PaginationOut,
    SendMessageRequest,
    UnreadCountOut,
    UserSummary,
)

__all__ = [
    "ConversationOut",
    "MarkReadOut",
    "MessageListResponse",
    "MessageOut",
    "PaginationOut",
    "SendMessageRequest",
    "UnreadCountOut",
    "UserSummary",
]
