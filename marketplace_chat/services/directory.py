"""
Lookups against the listings and users owned by other services.
"""
from typing import Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace_chat.core.errors import TransientStoreError
from marketplace_chat.models.listing import Listing
from marketplace_chat.models.user import User
from marketplace_chat.services.types import ListingSnapshot, UserSnapshot


class Directory:
    """Batch lookups for conversation enrichment and send checks."""

    def __init__(self, db: Session):
        self.db = db

    def get_listings(self, listing_ids: Iterable[str]) -> Dict[str, ListingSnapshot]:
        ids = set(listing_ids)
        if not ids:
            return {}
        try:
            rows = self.db.query(Listing).filter(Listing.id.in_(ids)).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TransientStoreError("Listing lookup failed") from exc
        return {
            row.id: ListingSnapshot(
                id=row.id,
                title=row.title,
                image_url=row.image_urls[0] if row.image_urls else None,
                status=row.status,
            )
            for row in rows
        }

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserSnapshot]:
        ids = set(user_ids)
        if not ids:
            return {}
        try:
            rows = self.db.query(User).filter(User.id.in_(ids)).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise TransientStoreError("User lookup failed") from exc
        return {
            row.id: UserSnapshot(
                id=row.id,
                full_name=row.full_name,
                profile_picture_url=row.profile_picture_url,
            )
            for row in rows
        }

    def get_listing(self, listing_id: str) -> Optional[ListingSnapshot]:
        return self.get_listings([listing_id]).get(listing_id)

    def get_user(self, user_id: str) -> Optional[UserSnapshot]:
        return self.get_users([user_id]).get(user_id)
