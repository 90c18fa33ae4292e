"""
Conversation list and unread badge endpoints.
"""
from fastapi import APIRouter

from marketplace_chat.api.deps import ChatServiceDep
from marketplace_chat.core.logging import get_logger
from marketplace_chat.core.security import CurrentUserId
from marketplace_chat.schemas.chat import (
    ConversationResponse,
    ConversationsListResponse,
    ErrorResponse,
    UnreadCountResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Conversations"])


@router.get(
    "/conversations",
    response_model=ConversationsListResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    },
    summary="List conversations",
    description="One entry per listing and counterpart, most recently active first.",
)
async def list_conversations(
    user_id: CurrentUserId,
    service: ChatServiceDep,
) -> ConversationsListResponse:
    """
    List the viewer's conversations.

    - **last_message** previews the newest message of each conversation
    - **is_read** is false only when that message is addressed to the viewer and unread
    - **unread_count** counts unread messages from the other user
    """
    conversations = service.list_conversations(user_id)
    return ConversationsListResponse(
        conversations=[ConversationResponse.model_validate(c) for c in conversations]
    )


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Total unread messages",
)
async def unread_count(
    user_id: CurrentUserId,
    service: ChatServiceDep,
) -> UnreadCountResponse:
    """Unread messages addressed to the viewer across all conversations."""
    return UnreadCountResponse(unread_count=service.unread_count(user_id))
