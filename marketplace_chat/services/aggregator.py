"""
Derive a viewer's conversation list from the flat message log.
"""
from collections import Counter
from typing import Dict, List, Tuple

from marketplace_chat.core.logging import get_logger
from marketplace_chat.services.directory import Directory
from marketplace_chat.services.store import MessageStore
from marketplace_chat.services.types import ConversationSummary, MessageRecord

logger = get_logger(__name__)

DEFAULT_PLACEHOLDER_TITLE = "Deleted Listing"


class ConversationAggregator:
    """
    Build one summary per (listing, counterpart) pair the viewer has messages in.

    The log is scanned newest first, so the first message seen for a pair is its
    latest and seeds the preview; later messages for the same pair only feed the
    unread count. Summaries come back most recently active first. Store errors
    propagate, so a caller never receives a partial list.
    """

    def __init__(
        self,
        store: MessageStore,
        directory: Directory,
        placeholder_title: str = DEFAULT_PLACEHOLDER_TITLE,
    ):
        self.store = store
        self.directory = directory
        self.placeholder_title = placeholder_title

    def conversations_for(self, viewer_id: str) -> List[ConversationSummary]:
        messages = self.store.query_messages_for_user(viewer_id)

        latest: Dict[Tuple[str, str], MessageRecord] = {}
        unread: Counter = Counter()
        for message in messages:
            counterpart = message.counterpart_of(viewer_id)
            key = (message.listing_id, counterpart)
            if key not in latest:
                latest[key] = message
            if message.receiver_id == viewer_id and message.sender_id == counterpart and not message.read:
                unread[key] += 1

        listings = self.directory.get_listings(listing_id for listing_id, _ in latest)
        users = self.directory.get_users(counterpart for _, counterpart in latest)

        summaries = []
        for (listing_id, counterpart), message in latest.items():
            listing = listings.get(listing_id)
            user = users.get(counterpart)
            summaries.append(
                ConversationSummary(
                    id=f"{listing_id}_{counterpart}",
                    listing_id=listing_id,
                    listing_title=listing.title if listing else self.placeholder_title,
                    listing_image=listing.image_url if listing else None,
                    listing_status=listing.status if listing else None,
                    other_user_id=counterpart,
                    other_user_name=user.full_name if user else None,
                    other_user_picture=user.profile_picture_url if user else None,
                    last_message=message.content,
                    last_message_time=message.created_at,
                    last_message_sender_id=message.sender_id,
                    # Your own latest message never reads as unread to you
                    is_read=message.read if message.receiver_id == viewer_id else True,
                    unread_count=unread[(listing_id, counterpart)],
                )
            )

        logger.debug(
            "Aggregated conversations",
            extra={"extra_data": {"messages": len(messages), "conversations": len(summaries)}},
        )
        return summaries
