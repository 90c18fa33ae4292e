"""
Client-side chat session: the ordered, de-duplicated message list of one open
conversation, kept current by the live delivery channel.

States move ``empty -> loaded -> live`` and end in ``closed``. Messages can reach
the list from the initial fetch, a later refresh, the send confirmation and the
live channel, in any order and any number of times; every path goes through
:meth:`ChatSession.merge`, which keeps one entry per message id and orders the
list by ``(created_at, id)``.
"""
import dataclasses
import threading
import time
from datetime import tzinfo
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from marketplace_chat.core.errors import ChannelError, SessionClosedError
from marketplace_chat.core.logging import get_logger
from marketplace_chat.services import delivery
from marketplace_chat.services.chat import ChatService
from marketplace_chat.services.delivery import LiveDeliveryChannel, Subscription
from marketplace_chat.services.types import DateGroup, MessageRecord

logger = get_logger(__name__)

DEFAULT_TYPING_TIMEOUT = 5.0


class SessionState(str, Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    LIVE = "live"
    CLOSED = "closed"


class ConnectionStatus(str, Enum):
    OFFLINE = "offline"
    LIVE = "live"
    RECONNECTING = "reconnecting"


_STATUS_FROM_SUBSCRIPTION = {
    delivery.ACTIVE: ConnectionStatus.LIVE,
    delivery.RECONNECTING: ConnectionStatus.RECONNECTING,
    delivery.FAILED: ConnectionStatus.OFFLINE,
}


class ChatSession:
    """One viewer's open conversation about a listing with one counterpart."""

    def __init__(
        self,
        service: ChatService,
        channel: LiveDeliveryChannel,
        viewer_id: str,
        listing_id: str,
        counterpart_id: str,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.channel = channel
        self.viewer_id = viewer_id
        self.listing_id = listing_id
        self.counterpart_id = counterpart_id
        self.typing_timeout = typing_timeout
        self.clock = clock

        self.state = SessionState.EMPTY
        self.connection_status = ConnectionStatus.OFFLINE
        self.subscription: Optional[Subscription] = None

        self._lock = threading.RLock()
        self._by_id: Dict[str, MessageRecord] = {}
        self._ordered: List[MessageRecord] = []
        self._unacknowledged: List[MessageRecord] = []
        self._typing_until: Optional[float] = None
        self._local_typing = False

    @property
    def closed(self) -> bool:
        return self.state == SessionState.CLOSED

    @property
    def messages(self) -> List[MessageRecord]:
        with self._lock:
            return list(self._ordered)

    def _ensure_open(self) -> None:
        if self.closed:
            raise SessionClosedError("Chat session is closed")

    # Loading

    def load(self) -> List[MessageRecord]:
        """Initial fetch; marks the counterpart's messages read."""
        self._ensure_open()
        if self.state != SessionState.EMPTY:
            raise RuntimeError(f"Cannot load a chat session in state {self.state.value}")

        records = self.service.get_messages(self.viewer_id, self.listing_id, self.counterpart_id)
        with self._lock:
            if self.closed:
                return []
            self.merge(records)
            self.state = SessionState.LOADED
        return self.messages

    def go_live(self) -> bool:
        """Subscribe to live delivery; False if the channel is unavailable."""
        self._ensure_open()
        if self.state != SessionState.LOADED:
            raise RuntimeError(f"Cannot go live from state {self.state.value}")

        try:
            subscription = self.channel.subscribe(
                self.listing_id,
                self.viewer_id,
                self.counterpart_id,
                on_message=self._on_delivered,
                on_typing=self._on_typing,
                on_status=self._on_status,
            )
        except ChannelError as exc:
            logger.warning(
                "Live delivery unavailable, falling back to refresh",
                extra={"extra_data": {"listing_id": self.listing_id, "error": exc.detail}},
            )
            self.connection_status = ConnectionStatus.OFFLINE
            return False

        with self._lock:
            closed_meanwhile = self.closed
            if not closed_meanwhile:
                self.subscription = subscription
                self.state = SessionState.LIVE
                self.connection_status = ConnectionStatus.LIVE
        if closed_meanwhile:
            # Same lock order as close(): never hold ours while taking the subscription's
            subscription.close()
            return False
        return True

    def open(self) -> List[MessageRecord]:
        """
        Load, go live, then fetch once more.

        The second fetch covers messages inserted between the first fetch and
        the subscription; duplicates are dropped by merge.
        """
        self.load()
        if self.go_live():
            self.refresh()
        return self.messages

    def refresh(self) -> List[MessageRecord]:
        """Full re-fetch, the recovery path after a gap in live delivery."""
        self._ensure_open()
        records = self.service.get_messages(self.viewer_id, self.listing_id, self.counterpart_id)
        with self._lock:
            if self.closed:
                return []
            self.merge(records)
            if self.state == SessionState.EMPTY:
                self.state = SessionState.LOADED
        return self.messages

    def reconnect(self) -> bool:
        """Re-attach a dropped subscription and backfill the gap."""
        self._ensure_open()
        subscription = self.subscription
        if subscription is None or not subscription.reconnect():
            return False
        self.refresh()
        return True

    # Sending

    def send(self, content: str) -> MessageRecord:
        """Send and append the persisted message once the store confirms it."""
        self._ensure_open()
        record = self.service.send_message(self.viewer_id, self.listing_id, self.counterpart_id, content)
        self.merge([record])
        return record

    # Merging

    def merge(self, records: Iterable[MessageRecord]) -> int:
        """
        Fold records into the list; returns how many were new.

        A record already present is only replaced to flip its read flag from
        False to True, never the other way.
        """
        with self._lock:
            if self.closed:
                return 0
            added = 0
            changed = False
            for record in records:
                existing = self._by_id.get(record.id)
                if existing is None:
                    self._by_id[record.id] = record
                    added += 1
                    changed = True
                elif record.read and not existing.read:
                    self._by_id[record.id] = record
                    changed = True
            if changed:
                self._ordered = sorted(self._by_id.values(), key=MessageRecord.sort_key)
            return added

    def _on_delivered(self, record: MessageRecord) -> None:
        # Runs on the publisher's thread: no store access here
        with self._lock:
            if self.merge([record]) and record.receiver_id == self.viewer_id and not record.read:
                self._unacknowledged.append(record)

    @property
    def unacknowledged(self) -> int:
        """Inbound messages delivered live and not yet marked read."""
        with self._lock:
            return len(self._unacknowledged)

    def acknowledge(self) -> int:
        """
        Mark messages that arrived live as read; returns the rows updated.

        Call from the thread that owns the session. The local copies are only
        upgraded once the store confirms the update.
        """
        self._ensure_open()
        with self._lock:
            pending, self._unacknowledged = self._unacknowledged, []
        if not pending:
            return 0

        updated = self.service.mark_read(self.viewer_id, self.listing_id, self.counterpart_id)
        if updated:
            self.merge([dataclasses.replace(record, read=True) for record in pending])
        return updated

    def _on_status(self, status: str) -> None:
        with self._lock:
            if self.closed:
                return
            self.connection_status = _STATUS_FROM_SUBSCRIPTION.get(status, ConnectionStatus.OFFLINE)

    # Display

    def grouped_by_date(self, tz: Optional[tzinfo] = None) -> List[DateGroup]:
        """Partition the list into calendar days, oldest day first."""
        groups: List[DateGroup] = []
        for message in self.messages:
            moment = message.created_at.astimezone(tz) if tz is not None else message.created_at
            day = moment.date()
            if groups and groups[-1].day == day:
                groups[-1].messages.append(message)
            else:
                groups.append(DateGroup(day=day, messages=[message]))
        return groups

    # Typing indicators

    def _on_typing(self, user_id: str, is_typing: bool) -> None:
        if user_id != self.counterpart_id:
            return
        with self._lock:
            if self.closed:
                return
            self._typing_until = self.clock() + self.typing_timeout if is_typing else None

    @property
    def counterpart_typing(self) -> bool:
        until = self._typing_until
        return until is not None and self.clock() < until

    def notify_typing(self, is_typing: bool) -> bool:
        """Broadcast the viewer's typing state; repeats of the same state are skipped."""
        self._ensure_open()
        with self._lock:
            if is_typing == self._local_typing:
                return False
            self._local_typing = is_typing
        self.channel.broadcast_typing(self.listing_id, self.viewer_id, self.counterpart_id, is_typing)
        return True

    # Teardown

    def close(self) -> None:
        """Unsubscribe; no state changes after this returns."""
        with self._lock:
            if self.closed:
                return
            self.state = SessionState.CLOSED
            self.connection_status = ConnectionStatus.OFFLINE
            subscription = self.subscription
            self.subscription = None
        # Outside our lock: delivery holds the subscription lock while taking ours
        if subscription is not None:
            subscription.close()
