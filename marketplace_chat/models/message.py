"""
Message database model.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, String, Text

from marketplace_chat.core.database import Base


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(Base):
    """A single chat message between two users about a listing."""

    __tablename__ = "messages"

    # Server-assigned, never reused
    id = Column(String(36), primary_key=True, default=generate_id)

    # Not a foreign key: history outlives a removed listing
    listing_id = Column(String(36), nullable=False, index=True)

    sender_id = Column(String(36), nullable=False, index=True)
    receiver_id = Column(String(36), nullable=False, index=True)

    content = Column(Text, nullable=False)

    # Only ever transitions False -> True
    read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("sender_id != receiver_id", name="ck_messages_not_self"),
        Index("ix_messages_unread", "listing_id", "sender_id", "receiver_id", "read"),
        Index("ix_messages_created_at_id", "created_at", "id"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, listing_id={self.listing_id}, sender_id={self.sender_id})>"
