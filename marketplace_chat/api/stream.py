"""
Server-sent event streams carrying live message delivery to browsers.

Events: ``status`` (subscription state), ``message`` (a new message),
``typing`` (the other user's typing state) and ``resync`` (delivery resumed
after a gap; the client should re-fetch the conversation).
"""
import asyncio
import json
from typing import Annotated, AsyncGenerator, Callable

from fastapi import APIRouter, Depends, Query, Request

from marketplace_chat.api.deps import ChannelDep
from marketplace_chat.core.config import Settings, get_settings
from marketplace_chat.core.errors import ChannelError
from marketplace_chat.core.logging import get_logger
from marketplace_chat.core.security import CurrentUserId
from marketplace_chat.core.sse import KEEPALIVE, format_sse, stream
from marketplace_chat.schemas.chat import parse_id
from marketplace_chat.services import delivery
from marketplace_chat.services.delivery import Subscription

logger = get_logger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Live"])

Push = Callable[[str, dict], None]


def _event(name: str, data: dict) -> str:
    return format_sse(json.dumps(data, default=str), event=name)


async def _event_stream(
    request: Request,
    open_subscription: Callable[[Push], Subscription],
    keepalive: float,
) -> AsyncGenerator[str, None]:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(name: str, data: dict) -> None:
        # Callbacks fire on whichever thread published the change
        loop.call_soon_threadsafe(queue.put_nowait, (name, data))

    try:
        subscription = open_subscription(push)
    except ChannelError:
        logger.warning("Live stream opened while the change feed is down")
        yield _event("status", {"status": delivery.FAILED})
        return

    try:
        yield _event("status", {"status": subscription.status})
        while not await request.is_disconnected():
            try:
                name, data = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                if subscription.status in (delivery.RECONNECTING, delivery.FAILED) and subscription.reconnect():
                    yield _event("resync", {"subscription": subscription.name})
                    continue
                yield KEEPALIVE
                continue
            yield _event(name, data)
    finally:
        subscription.close()


@router.get(
    "/stream",
    summary="Live conversation stream",
    description="Server-sent events for new messages and typing in one conversation.",
)
async def stream_conversation(
    request: Request,
    user_id: CurrentUserId,
    channel: ChannelDep,
    settings: Annotated[Settings, Depends(get_settings)],
    listing_id: Annotated[str, Query(min_length=1)],
    other_user_id: Annotated[str, Query(min_length=1)],
):
    """Stream the conversation between the viewer and another user about a listing."""
    listing_id = parse_id(listing_id)
    other_user_id = parse_id(other_user_id)

    def open_subscription(push: Push) -> Subscription:
        def on_typing(typing_user_id: str, is_typing: bool) -> None:
            if typing_user_id != user_id:
                push("typing", {"user_id": typing_user_id, "is_typing": is_typing})

        return channel.subscribe(
            listing_id,
            user_id,
            other_user_id,
            on_message=lambda record: push("message", record.to_dict()),
            on_typing=on_typing,
            on_status=lambda status: push("status", {"status": status}),
        )

    return stream(_event_stream(request, open_subscription, settings.stream_keepalive_seconds))


@router.get(
    "/inbox/stream",
    summary="Live inbox stream",
    description="Server-sent events for every message addressed to the viewer.",
)
async def stream_inbox(
    request: Request,
    user_id: CurrentUserId,
    channel: ChannelDep,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Notification stream: new inbound messages on any listing."""

    def open_subscription(push: Push) -> Subscription:
        return channel.subscribe_inbox(
            user_id,
            on_message=lambda record: push("message", record.to_dict()),
            on_status=lambda status: push("status", {"status": status}),
        )

    return stream(_event_stream(request, open_subscription, settings.stream_keepalive_seconds))
