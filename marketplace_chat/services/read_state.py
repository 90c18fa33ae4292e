"""
Read-state tracking for inbound messages.
"""
from typing import Optional

from marketplace_chat.core.errors import TransientStoreError
from marketplace_chat.core.logging import get_logger
from marketplace_chat.services.store import MessageStore

logger = get_logger(__name__)


class ReadStateTracker:
    """
    Mark a viewer's inbound messages on a listing as read.

    The update is a filtered bulk set of ``read=true`` over rows still unread,
    so repeated or concurrent calls converge and a call matching nothing is a
    no-op. Only messages received by the viewer are touched. Failures are
    logged and reported as zero updates rather than raised, because marking
    read must never block showing the messages.
    """

    def __init__(self, store: MessageStore, on_failure=None):
        self.store = store
        self.on_failure = on_failure

    def mark_read(self, listing_id: str, viewer_id: str, counterpart_id: Optional[str] = None) -> int:
        try:
            updated = self.store.bulk_update_read(
                listing_id=listing_id,
                receiver_id=viewer_id,
                sender_id=counterpart_id,
            )
        except TransientStoreError as exc:
            logger.warning(
                "Failed to mark messages as read",
                extra={"extra_data": {"listing_id": listing_id, "error": exc.detail}},
            )
            if self.on_failure is not None:
                self.on_failure()
            return 0

        if updated:
            logger.debug(
                "Marked messages as read",
                extra={"extra_data": {"listing_id": listing_id, "updated": updated}},
            )
        return updated
