"""
Pydantic schemas for request/response validation.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from marketplace_chat.core.errors import ValidationError


def _validate_uuid(value: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise ValueError("Invalid ID format")


def parse_id(value: str) -> str:
    """Validate an identifier taken from the query string."""
    try:
        return _validate_uuid(value)
    except ValueError:
        raise ValidationError("Invalid ID format")


class SendMessageRequest(BaseModel):
    """Request schema for POST /api/chat/messages."""

    listing_id: str = Field(..., description="Listing the conversation is about")
    receiver_id: str = Field(..., description="User the message is addressed to")
    content: str = Field(..., description="Message text, trimmed before storage")

    model_config = {
        "json_schema_extra": {
            "example": {
                "listing_id": "6f1c2b7e-2f3a-4c55-9a0e-1b2c3d4e5f60",
                "receiver_id": "0a9b8c7d-6e5f-4a3b-2c1d-0e9f8a7b6c5d",
                "content": "Hi! Is this still available?",
            }
        }
    }

    @field_validator("listing_id", "receiver_id")
    @classmethod
    def validate_ids(cls, v: str) -> str:
        return _validate_uuid(v)


class MarkReadRequest(BaseModel):
    """Request schema for POST /api/chat/read."""

    listing_id: str
    other_user_id: Optional[str] = None

    @field_validator("listing_id")
    @classmethod
    def validate_listing_id(cls, v: str) -> str:
        return _validate_uuid(v)

    @field_validator("other_user_id")
    @classmethod
    def validate_other_user_id(cls, v: Optional[str]) -> Optional[str]:
        return _validate_uuid(v) if v is not None else None


class TypingRequest(BaseModel):
    """Request schema for POST /api/chat/typing."""

    listing_id: str
    other_user_id: str
    is_typing: bool

    @field_validator("listing_id", "other_user_id")
    @classmethod
    def validate_ids(cls, v: str) -> str:
        return _validate_uuid(v)


class MessageResponse(BaseModel):
    """A message as exchanged with the UI."""

    id: str
    listing_id: str
    sender_id: str
    receiver_id: str
    content: str
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class MessagesListResponse(BaseModel):
    """Response schema for GET /api/chat/messages."""

    messages: List[MessageResponse]


class SendMessageResponse(BaseModel):
    """Response schema for POST /api/chat/messages."""

    message: MessageResponse


class ConversationResponse(BaseModel):
    """Summary of one conversation in the viewer's inbox."""

    id: str
    listing_id: str
    listing_title: str
    listing_image: Optional[str] = None
    listing_status: Optional[str] = None
    other_user_id: str
    other_user_name: Optional[str] = None
    other_user_picture: Optional[str] = None
    last_message: str
    last_message_time: datetime
    last_message_sender_id: str
    is_read: bool
    unread_count: int

    model_config = {"from_attributes": True}


class ConversationsListResponse(BaseModel):
    """Response schema for GET /api/chat/conversations."""

    conversations: List[ConversationResponse]


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResponse(BaseModel):
    updated: int


class StatusResponse(BaseModel):
    status: str = Field(default="ok")


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""

    status: str
    checks: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    detail: str
