"""Conversation and message API routes.

Routes are transport-only: each calls exactly one service function.
All routes require authentication; the caller is always the viewer.

Response envelope: {"data": ...} or {"data": [...], "pagination": {...}}
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from murmur.api.deps import get_db, get_deadline, get_presence, get_profiles
from murmur.auth.middleware import Viewer, get_viewer
from murmur.responses import success_response
from murmur.schemas.conversation import SendMessageRequest
from murmur.services import messaging
from murmur.services.messages import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from murmur.services.presence import PresenceProvider
from murmur.services.profiles import ProfileDirectory
from murmur.services.tx import Deadline

router = APIRouter(tags=["conversations"])


# =============================================================================
# Conversation Endpoints
# =============================================================================


@router.get("/conversations")
def list_conversations(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    presence: Annotated[PresenceProvider, Depends(get_presence)],
    profiles: Annotated[ProfileDirectory, Depends(get_profiles)],
) -> dict:
    """List the viewer's conversations, most recently active first.

    Conversations that never received a message sort after all others.
    """
    conversations = messaging.list_conversations(
        db, viewer.user_id, presence=presence, profiles=profiles
    )
    return success_response([c.model_dump(mode="json") for c in conversations])


@router.get("/unread-count")
def get_unread_count(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Total unread messages addressed to the viewer across all conversations."""
    result = messaging.unread_summary(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations/user/{other_user_id}")
def get_or_create_conversation(
    other_user_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    presence: Annotated[PresenceProvider, Depends(get_presence)],
    profiles: Annotated[ProfileDirectory, Depends(get_profiles)],
    deadline: Annotated[Deadline, Depends(get_deadline)],
) -> dict:
    """Get the viewer's conversation with another user, creating it on first contact.

    Errors:
        E_SELF_CONVERSATION (400): other_user_id is the viewer.
    """
    result = messaging.get_or_create_conversation_view(
        db,
        viewer.user_id,
        other_user_id,
        presence=presence,
        profiles=profiles,
        deadline=deadline,
    )
    return success_response(result.model_dump(mode="json"))


@router.delete("/conversations/{conversation_id}", status_code=204)
def delete_conversation(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    deadline: Annotated[Deadline, Depends(get_deadline)],
) -> Response:
    """Delete a conversation and all of its messages, for both participants.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Conversation doesn't exist or viewer is not a participant.
    """
    messaging.delete_conversation(db, conversation_id, viewer.user_id, deadline=deadline)
    return Response(status_code=204)


# =============================================================================
# Message Endpoints
# =============================================================================


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    profiles: Annotated[ProfileDirectory, Depends(get_profiles)],
    page: int = Query(default=1, ge=1, description="Page number, 1 = newest"),
    page_size: int = Query(
        default=DEFAULT_PAGE_SIZE,
        ge=1,
        le=MAX_PAGE_SIZE,
        description=f"Messages per page (1-{MAX_PAGE_SIZE})",
    ),
) -> dict:
    """List one page of messages.

    Page 1 holds the newest messages; within a page messages are oldest first.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Conversation doesn't exist or viewer is not a participant.
    """
    result = messaging.list_messages(
        db, viewer.user_id, conversation_id, page, page_size, profiles=profiles
    )
    return result.model_dump(mode="json")


@router.post("/conversations/{conversation_id}/messages", status_code=201)
def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    profiles: Annotated[ProfileDirectory, Depends(get_profiles)],
    deadline: Annotated[Deadline, Depends(get_deadline)],
) -> dict:
    """Send a message to the other participant.

    Errors:
        E_INVALID_CONTENT (400): Content is empty after trimming or too long.
        E_CONVERSATION_NOT_FOUND (404): Conversation doesn't exist or viewer is not a participant.
        E_CONFLICT (409): Contention persisted through every retry.
        E_TIMEOUT (504): Deadline passed before commit.
    """
    result = messaging.send_message(
        db,
        conversation_id,
        viewer.user_id,
        body.content,
        profiles=profiles,
        deadline=deadline,
    )
    return success_response(result.model_dump(mode="json"))


@router.patch("/conversations/{conversation_id}/read")
def mark_read(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    deadline: Annotated[Deadline, Depends(get_deadline)],
) -> dict:
    """Mark every message addressed to the viewer as read.

    Idempotent; a repeat call reports marked_count 0.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Conversation doesn't exist or viewer is not a participant.
    """
    result = messaging.mark_messages_read(
        db, conversation_id, viewer.user_id, deadline=deadline
    )
    return success_response(result.model_dump(mode="json"))
