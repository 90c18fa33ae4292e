"""
Message endpoints: fetch a conversation, send, mark read, typing.
"""
from typing import Annotated

from fastapi import APIRouter, Query

from marketplace_chat.api.deps import ChannelDep, ChatServiceDep
from marketplace_chat.core.logging import get_logger
from marketplace_chat.core.security import CurrentUserId
from marketplace_chat.schemas.chat import (
    ErrorResponse,
    MarkReadRequest,
    MarkReadResponse,
    MessageResponse,
    MessagesListResponse,
    SendMessageRequest,
    SendMessageResponse,
    StatusResponse,
    TypingRequest,
    parse_id,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Messages"])


@router.get(
    "/messages",
    response_model=MessagesListResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="Fetch a conversation",
    description="Messages between the viewer and another user about a listing, oldest first.",
)
async def get_messages(
    user_id: CurrentUserId,
    service: ChatServiceDep,
    listing_id: Annotated[str, Query(min_length=1, description="Listing of the conversation")],
    other_user_id: Annotated[str, Query(min_length=1, description="The other participant")],
) -> MessagesListResponse:
    """
    Fetch the conversation and mark the other user's messages as read.

    The returned messages carry their read flags as they were before this
    fetch. A failed read update is logged and does not fail the request.
    """
    listing_id = parse_id(listing_id)
    other_user_id = parse_id(other_user_id)
    messages = service.get_messages(user_id, listing_id, other_user_id)

    logger.debug(
        "Fetched conversation",
        extra={"extra_data": {"listing_id": listing_id, "returned": len(messages)}},
    )

    return MessagesListResponse(
        messages=[MessageResponse.model_validate(message) for message in messages]
    )


@router.post(
    "/messages",
    status_code=201,
    response_model=SendMessageResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        404: {"model": ErrorResponse, "description": "Listing or recipient not found"},
        422: {"model": ErrorResponse, "description": "Validation error"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    },
    summary="Send a message",
)
async def send_message(
    payload: SendMessageRequest,
    user_id: CurrentUserId,
    service: ChatServiceDep,
) -> SendMessageResponse:
    """
    Send a message from the viewer.

    - Content is trimmed and must be non-empty and within the length limit
    - The listing and the recipient must exist
    - Messaging yourself is rejected
    """
    message = service.send_message(
        sender_id=user_id,
        listing_id=payload.listing_id,
        receiver_id=payload.receiver_id,
        content=payload.content,
    )
    return SendMessageResponse(message=MessageResponse.model_validate(message))


@router.post(
    "/read",
    response_model=MarkReadResponse,
    summary="Mark messages as read",
)
async def mark_read(
    payload: MarkReadRequest,
    user_id: CurrentUserId,
    service: ChatServiceDep,
) -> MarkReadResponse:
    """Mark the viewer's inbound messages on a listing as read, optionally from one sender only."""
    updated = service.mark_read(user_id, payload.listing_id, payload.other_user_id)
    return MarkReadResponse(updated=updated)


@router.post(
    "/typing",
    response_model=StatusResponse,
    summary="Broadcast typing state",
)
async def typing(
    payload: TypingRequest,
    user_id: CurrentUserId,
    channel: ChannelDep,
) -> StatusResponse:
    """Tell the other participant's open views whether the viewer is typing."""
    channel.broadcast_typing(payload.listing_id, user_id, payload.other_user_id, payload.is_typing)
    return StatusResponse()
