"""
Live delivery of new messages to open chat views.

Delivery is at-least-once and unordered: consumers de-duplicate by message id
and sort by creation time themselves. A transport outage leaves a gap; the
subscription moves to ``reconnecting`` and the owner recovers by reconnecting
and re-fetching the conversation. Nothing is replayed.
"""
import threading
from typing import Callable, Optional

from marketplace_chat.core.errors import ChannelError
from marketplace_chat.core.logging import get_logger
from marketplace_chat.core.metrics import metrics
from marketplace_chat.services.changefeed import INSERT, TYPING, ChangeEvent, ChangeFeed
from marketplace_chat.services.types import MessageRecord, conversation_key

logger = get_logger(__name__)

ACTIVE = "active"
RECONNECTING = "reconnecting"
FAILED = "failed"
CLOSED = "closed"

OnMessage = Callable[[MessageRecord], None]
OnTyping = Callable[[str, bool], None]
OnStatus = Callable[[str], None]

DEFAULT_RECONNECT_ATTEMPTS = 5


class Subscription:
    """
    A live binding between one consumer and the change feed.

    Callbacks run while holding the subscription lock, and :meth:`close` takes
    the same lock, so once ``close()`` returns no callback is running or will
    run again, including events the feed had already picked up for delivery.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        name: str,
        predicate: Callable[[ChangeEvent], bool],
        on_event: Callable[[ChangeEvent], None],
        on_status: Optional[OnStatus] = None,
        max_reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS,
    ):
        self.name = name
        self.reconnect_attempts = 0
        self.max_reconnect_attempts = max_reconnect_attempts
        self._feed = feed
        self._predicate = predicate
        self._on_event = on_event
        self._on_status = on_status
        self._lock = threading.RLock()
        self.status = ACTIVE
        # Raises ChannelError when the transport is down; nothing to clean up then
        self._handle = feed.subscribe(predicate, self._deliver, on_error=self._on_transport_error)
        metrics.subscription_opened()

    @property
    def is_closed(self) -> bool:
        return self.status == CLOSED

    def _set_status(self, status: str) -> None:
        self.status = status
        if self._on_status is not None:
            self._on_status(status)

    def _deliver(self, event: ChangeEvent) -> None:
        with self._lock:
            if self.status == CLOSED:
                return
            self._on_event(event)

    def _on_transport_error(self, error: ChannelError) -> None:
        with self._lock:
            if self.status == CLOSED:
                return
            self._handle = None
            logger.warning(
                "Live subscription lost its transport",
                extra={"extra_data": {"subscription": self.name, "error": error.detail}},
            )
            self._set_status(RECONNECTING)

    def reconnect(self) -> bool:
        """Try once to re-attach to the feed; True when the subscription is live."""
        with self._lock:
            if self.status == CLOSED:
                return False
            if self.status == ACTIVE:
                return True

            self.reconnect_attempts += 1
            try:
                self._handle = self._feed.subscribe(
                    self._predicate, self._deliver, on_error=self._on_transport_error
                )
            except ChannelError:
                logger.info(
                    "Reconnect attempt failed",
                    extra={"extra_data": {"subscription": self.name, "attempt": self.reconnect_attempts}},
                )
                if self.reconnect_attempts >= self.max_reconnect_attempts and self.status != FAILED:
                    self._set_status(FAILED)
                return False

            logger.info(
                "Live subscription reconnected",
                extra={"extra_data": {"subscription": self.name, "attempts": self.reconnect_attempts}},
            )
            self.reconnect_attempts = 0
            self._set_status(ACTIVE)
            return True

    def close(self) -> None:
        """Stop delivery. Safe to call more than once."""
        with self._lock:
            if self.status == CLOSED:
                return
            self.status = CLOSED
            if self._handle is not None:
                self._feed.unsubscribe(self._handle)
                self._handle = None
        metrics.subscription_closed()


class LiveDeliveryChannel:
    """Per-conversation and per-inbox subscriptions over a change feed."""

    def __init__(self, feed: ChangeFeed, max_reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS):
        self.feed = feed
        self.max_reconnect_attempts = max_reconnect_attempts

    def subscribe(
        self,
        listing_id: str,
        user_a: str,
        user_b: str,
        on_message: OnMessage,
        on_typing: Optional[OnTyping] = None,
        on_status: Optional[OnStatus] = None,
    ) -> Subscription:
        """Deliver inserts on the listing between the two users, either direction."""

        def predicate(event: ChangeEvent) -> bool:
            if event.kind == INSERT:
                record = event.record
                return record.listing_id == listing_id and record.is_between(user_a, user_b)
            if event.kind == TYPING and on_typing is not None:
                payload = event.payload
                return payload["listing_id"] == listing_id and (
                    (payload["user_id"], payload["counterpart_id"]) in ((user_a, user_b), (user_b, user_a))
                )
            return False

        def on_event(event: ChangeEvent) -> None:
            if event.kind == INSERT:
                on_message(event.record)
            else:
                on_typing(event.payload["user_id"], event.payload["is_typing"])

        return Subscription(
            self.feed,
            name=conversation_key(listing_id, user_a, user_b),
            predicate=predicate,
            on_event=on_event,
            on_status=on_status,
            max_reconnect_attempts=self.max_reconnect_attempts,
        )

    def subscribe_inbox(
        self,
        user_id: str,
        on_message: OnMessage,
        on_status: Optional[OnStatus] = None,
    ) -> Subscription:
        """Deliver every insert addressed to the user, on any listing."""

        def predicate(event: ChangeEvent) -> bool:
            return event.kind == INSERT and event.record.receiver_id == user_id

        return Subscription(
            self.feed,
            name=f"inbox_{user_id}",
            predicate=predicate,
            on_event=lambda event: on_message(event.record),
            on_status=on_status,
            max_reconnect_attempts=self.max_reconnect_attempts,
        )

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()

    def broadcast_typing(self, listing_id: str, user_id: str, counterpart_id: str, is_typing: bool) -> int:
        return self.feed.publish(ChangeEvent.typing(listing_id, user_id, counterpart_id, is_typing))
