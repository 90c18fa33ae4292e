"""
In-process change feed for message inserts and typing broadcasts.

Stands in for the managed changefeed of the hosted database: subscribers register
a predicate and a callback and receive every published event the predicate
accepts. It promises neither ordering nor exactly-once delivery, and events
published while the transport is disconnected are lost.
"""
import itertools
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from marketplace_chat.core.errors import ChannelError
from marketplace_chat.core.logging import get_logger
from marketplace_chat.services.types import MessageRecord

logger = get_logger(__name__)

INSERT = "INSERT"
TYPING = "TYPING"


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    record: Optional[MessageRecord] = None
    payload: dict = field(default_factory=dict)

    @classmethod
    def insert(cls, record: MessageRecord) -> "ChangeEvent":
        return cls(kind=INSERT, record=record)

    @classmethod
    def typing(cls, listing_id: str, user_id: str, counterpart_id: str, is_typing: bool) -> "ChangeEvent":
        return cls(
            kind=TYPING,
            payload={
                "listing_id": listing_id,
                "user_id": user_id,
                "counterpart_id": counterpart_id,
                "is_typing": is_typing,
            },
        )


Predicate = Callable[[ChangeEvent], bool]
Callback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[ChannelError], None]


@dataclass(frozen=True)
class FeedHandle:
    id: int
    predicate: Predicate
    callback: Callback
    on_error: Optional[ErrorCallback] = None


class ChangeFeed:
    """Fan published events out to matching subscribers."""

    def __init__(self):
        self._lock = threading.RLock()
        self._handles: Dict[int, FeedHandle] = {}
        self._ids = itertools.count(1)
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._handles)

    def subscribe(
        self,
        predicate: Predicate,
        callback: Callback,
        on_error: Optional[ErrorCallback] = None,
    ) -> FeedHandle:
        with self._lock:
            if not self._connected:
                raise ChannelError("Change feed transport is disconnected")
            handle = FeedHandle(next(self._ids), predicate, callback, on_error)
            self._handles[handle.id] = handle
            return handle

    def unsubscribe(self, handle: FeedHandle) -> None:
        with self._lock:
            self._handles.pop(handle.id, None)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event; returns how many subscribers accepted it."""
        with self._lock:
            if not self._connected:
                logger.debug("Dropping event while disconnected", extra={"extra_data": {"kind": event.kind}})
                return 0
            handles = list(self._handles.values())

        # Callbacks run outside the feed lock so they may publish or unsubscribe
        delivered = 0
        for handle in handles:
            try:
                if not handle.predicate(event):
                    continue
                handle.callback(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Change feed subscriber failed",
                    extra={"extra_data": {"handle": handle.id, "kind": event.kind}},
                )
        return delivered

    def disconnect(self) -> None:
        """Drop the transport; every subscriber is told and forgotten."""
        with self._lock:
            if not self._connected:
                return
            self._connected = False
            handles = list(self._handles.values())
            self._handles.clear()

        logger.warning("Change feed disconnected", extra={"extra_data": {"subscribers": len(handles)}})
        error = ChannelError("Change feed transport disconnected")
        for handle in handles:
            if handle.on_error is None:
                continue
            try:
                handle.on_error(error)
            except Exception:
                logger.exception("Change feed error callback failed", extra={"extra_data": {"handle": handle.id}})

    def connect(self) -> None:
        with self._lock:
            self._connected = True
        logger.info("Change feed connected")
