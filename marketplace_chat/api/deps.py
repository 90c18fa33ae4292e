"""
Shared FastAPI dependencies for the chat routes.
"""
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from marketplace_chat.core.config import Settings, get_settings
from marketplace_chat.core.database import get_db
from marketplace_chat.services.changefeed import ChangeFeed
from marketplace_chat.services.chat import ChatService
from marketplace_chat.services.delivery import LiveDeliveryChannel


def get_change_feed(request: Request) -> ChangeFeed:
    """The application's change feed, created at startup."""
    return request.app.state.change_feed


def get_channel(
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LiveDeliveryChannel:
    return LiveDeliveryChannel(feed, max_reconnect_attempts=settings.channel_reconnect_attempts)


def get_chat_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> ChatService:
    return ChatService.for_session(db, settings, feed)


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
ChannelDep = Annotated[LiveDeliveryChannel, Depends(get_channel)]
