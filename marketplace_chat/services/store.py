"""
Message store gateway over SQLAlchemy.

Every database failure surfaces as TransientStoreError after the session has
been rolled back. Inserts are announced on the change feed once committed.
"""
from typing import List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace_chat.core.errors import TransientStoreError
from marketplace_chat.core.logging import get_logger
from marketplace_chat.models.message import Message
from marketplace_chat.services.changefeed import ChangeEvent, ChangeFeed
from marketplace_chat.services.types import MessageRecord

logger = get_logger(__name__)


class MessageStore:
    """Read, append and read-flag operations on the message log."""

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed

    def _fail(self, operation: str, exc: SQLAlchemyError) -> TransientStoreError:
        self.db.rollback()
        logger.error(
            f"Message store {operation} failed: {exc}",
            extra={"extra_data": {"operation": operation}},
        )
        return TransientStoreError(f"Message store {operation} failed")

    def insert_message(
        self,
        listing_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
    ) -> MessageRecord:
        """Append a message; id and timestamp are assigned here."""
        message = Message(
            listing_id=listing_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            read=False,
        )
        try:
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)
        except SQLAlchemyError as exc:
            raise self._fail("insert", exc) from exc

        record = MessageRecord.from_model(message)
        logger.info(
            "Message stored",
            extra={
                "extra_data": {
                    "message_id": record.id,
                    "listing_id": listing_id,
                    "sender_id": sender_id,
                }
            },
        )

        if self.feed is not None:
            self.feed.publish(ChangeEvent.insert(record))
        return record

    def query_messages(self, listing_id: str, user_a: str, user_b: str) -> List[MessageRecord]:
        """Messages exchanged between two users on a listing, oldest first."""
        try:
            rows = (
                self.db.query(Message)
                .filter(
                    Message.listing_id == listing_id,
                    or_(
                        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
                        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
                    ),
                )
                .order_by(Message.created_at.asc(), Message.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise self._fail("query", exc) from exc
        return [MessageRecord.from_model(row) for row in rows]

    def query_messages_for_user(self, user_id: str) -> List[MessageRecord]:
        """Every message the user sent or received, newest first."""
        try:
            rows = (
                self.db.query(Message)
                .filter(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
                .order_by(Message.created_at.desc(), Message.id.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise self._fail("query", exc) from exc
        return [MessageRecord.from_model(row) for row in rows]

    def bulk_update_read(
        self,
        listing_id: str,
        receiver_id: str,
        sender_id: Optional[str] = None,
    ) -> int:
        """Flip unread inbound messages to read; returns the number updated."""
        query = self.db.query(Message).filter(
            Message.listing_id == listing_id,
            Message.receiver_id == receiver_id,
            Message.read.is_(False),
        )
        if sender_id is not None:
            query = query.filter(Message.sender_id == sender_id)

        try:
            updated = query.update({Message.read: True}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("read update", exc) from exc
        return updated or 0

    def count_unread(
        self,
        receiver_id: str,
        listing_id: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> int:
        query = self.db.query(func.count(Message.id)).filter(
            Message.receiver_id == receiver_id,
            Message.read.is_(False),
        )
        if listing_id is not None:
            query = query.filter(Message.listing_id == listing_id)
        if sender_id is not None:
            query = query.filter(Message.sender_id == sender_id)

        try:
            return query.scalar() or 0
        except SQLAlchemyError as exc:
            raise self._fail("count", exc) from exc
