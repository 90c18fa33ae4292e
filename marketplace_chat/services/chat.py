"""
Chat operations as exposed to request handlers and chat sessions.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace_chat.core.config import Settings
from marketplace_chat.core.errors import NotFoundError, ValidationError
from marketplace_chat.core.logging import get_logger
from marketplace_chat.core.metrics import metrics
from marketplace_chat.services.aggregator import ConversationAggregator
from marketplace_chat.services.changefeed import ChangeFeed
from marketplace_chat.services.directory import Directory
from marketplace_chat.services.read_state import ReadStateTracker
from marketplace_chat.services.store import MessageStore
from marketplace_chat.services.types import ConversationSummary, MessageRecord

logger = get_logger(__name__)


def clean_content(content: str, max_length: int) -> str:
    """Trim message text and enforce the length bounds."""
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > max_length:
        raise ValidationError(f"Message must be at most {max_length} characters")
    return text


class ChatService:
    """Send, fetch and summarise messages for one viewer request."""

    def __init__(
        self,
        store: MessageStore,
        directory: Directory,
        settings: Settings,
    ):
        self.store = store
        self.directory = directory
        self.settings = settings
        self.read_state = ReadStateTracker(store, on_failure=metrics.read_state_failed)
        self.aggregator = ConversationAggregator(
            store,
            directory,
            placeholder_title=settings.deleted_listing_title,
        )

    @classmethod
    def for_session(cls, db: Session, settings: Settings, feed: Optional[ChangeFeed] = None) -> "ChatService":
        return cls(MessageStore(db, feed), Directory(db), settings)

    def send_message(self, sender_id: str, listing_id: str, receiver_id: str, content: str) -> MessageRecord:
        """
        Persist a new message from the viewer.

        Raises:
            ValidationError: empty or oversized content, or a self-addressed send
            NotFoundError: the listing or the receiver does not exist
            TransientStoreError: the store rejected the write
        """
        text = clean_content(content, self.settings.message_max_length)
        if sender_id == receiver_id:
            raise ValidationError("You cannot message yourself")

        if self.directory.get_listing(listing_id) is None:
            raise NotFoundError("Listing not found")
        if self.directory.get_user(receiver_id) is None:
            raise NotFoundError("Recipient not found")

        record = self.store.insert_message(listing_id, sender_id, receiver_id, text)
        metrics.message_sent()
        return record

    def get_messages(self, viewer_id: str, listing_id: str, counterpart_id: str) -> List[MessageRecord]:
        """Fetch a conversation oldest first, then mark its inbound messages read."""
        messages = self.store.query_messages(listing_id, viewer_id, counterpart_id)
        self.read_state.mark_read(listing_id, viewer_id, counterpart_id)
        return messages

    def mark_read(self, viewer_id: str, listing_id: str, counterpart_id: Optional[str] = None) -> int:
        return self.read_state.mark_read(listing_id, viewer_id, counterpart_id)

    def list_conversations(self, viewer_id: str) -> List[ConversationSummary]:
        return self.aggregator.conversations_for(viewer_id)

    def unread_count(self, viewer_id: str) -> int:
        return self.store.count_unread(viewer_id)
