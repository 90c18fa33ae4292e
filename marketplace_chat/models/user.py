"""
User database model, read by the chat core for counterpart display info.
"""
from sqlalchemy import Column, DateTime, String

from marketplace_chat.core.database import Base
from marketplace_chat.models.message import generate_id, utcnow


class User(Base):
    """Public profile of a marketplace user."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    full_name = Column(String(100), nullable=True)
    profile_picture_url = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id})>"
