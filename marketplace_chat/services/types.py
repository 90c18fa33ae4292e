"""
Detached value types shared by the chat core.
"""
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class MessageRecord:
    """Immutable snapshot of a persisted message."""

    id: str
    listing_id: str
    sender_id: str
    receiver_id: str
    content: str
    read: bool
    created_at: datetime

    @classmethod
    def from_model(cls, message) -> "MessageRecord":
        return cls(
            id=message.id,
            listing_id=message.listing_id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            content=message.content,
            read=bool(message.read),
            created_at=as_utc(message.created_at),
        )

    def sort_key(self) -> Tuple[datetime, str]:
        # Identifier breaks ties between equal timestamps
        return (self.created_at, self.id)

    def counterpart_of(self, viewer_id: str) -> str:
        return self.receiver_id if self.sender_id == viewer_id else self.sender_id

    def is_between(self, user_a: str, user_b: str) -> bool:
        return (self.sender_id, self.receiver_id) in ((user_a, user_b), (user_b, user_a))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class ListingSnapshot:
    id: str
    title: str
    image_url: Optional[str]
    status: Optional[str]


@dataclass(frozen=True)
class UserSnapshot:
    id: str
    full_name: Optional[str]
    profile_picture_url: Optional[str]


@dataclass
class ConversationSummary:
    """Derived view of one (listing, counterpart) conversation for a viewer."""

    id: str
    listing_id: str
    listing_title: str
    listing_image: Optional[str]
    listing_status: Optional[str]
    other_user_id: str
    other_user_name: Optional[str]
    other_user_picture: Optional[str]
    last_message: str
    last_message_time: datetime
    last_message_sender_id: str
    is_read: bool
    unread_count: int = 0


@dataclass
class DateGroup:
    """Messages of one calendar day, in display order."""

    day: date
    messages: List[MessageRecord]


def conversation_key(listing_id: str, user_a: str, user_b: str) -> str:
    """Identify a conversation the same way regardless of who is asking."""
    low, high = sorted((user_a, user_b))
    return f"{low}_{high}_{listing_id}"
