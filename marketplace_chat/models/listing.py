"""
Listing database model, read by the chat core for conversation previews.
"""
from sqlalchemy import JSON, Column, DateTime, String

from marketplace_chat.core.database import Base
from marketplace_chat.models.message import generate_id, utcnow


class Listing(Base):
    """Marketplace listing owned by the listings service."""

    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=generate_id)
    seller_id = Column(String(36), nullable=False, index=True)
    title = Column(String(100), nullable=False)
    image_urls = Column(JSON, nullable=False, default=list)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, status={self.status})>"
