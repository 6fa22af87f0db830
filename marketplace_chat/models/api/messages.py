from datetime import datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator

from .base import CamelModel

AttachmentKind = Literal["image", "video", "file", "other"]


class Attachment(CamelModel):
    """A file reference attached to a message."""

    url: str
    type: AttachmentKind = "other"


class SendMessageRequest(CamelModel):
    """Request model for sending a message into a conversation."""

    conversation_id: UUID
    sender_id: UUID
    text: Optional[str] = Field(default="", description="Plaintext message content")
    attachments: List[Attachment] = Field(
        default_factory=list, description="Attachment URLs with their kind"
    )
    product_ref: Optional[UUID] = Field(
        default=None, description="Product the message is about"
    )

    @field_validator("attachments", mode="before")
    @classmethod
    def coerce_attachments(cls, value: Any) -> Any:
        """Accept a missing value or a single attachment in place of a list."""
        if value is None:
            return []
        if isinstance(value, str):
            return [{"url": value}]
        if not isinstance(value, (list, tuple)):
            return [value]
        return [{"url": item} if isinstance(item, str) else item for item in value]

    @field_validator("product_ref", mode="before")
    @classmethod
    def drop_invalid_product_ref(cls, value: Any) -> Any:
        """Product references that do not parse are dropped rather than rejected."""
        if value is None or isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            return None


class MessageResponse(CamelModel):
    """Response model for message data."""

    id: UUID
    conversation_id: UUID
    sender_id: UUID
    text: str
    attachments: List[Attachment]
    product_ref: Optional[UUID]
    read_by: List[UUID]
    delivered_at: Optional[datetime] = None
    seen_at: Optional[datetime] = None
    created_at: datetime


class ReadStatusResponse(CamelModel):
    """Reader set of a single message after a read receipt."""

    message_id: UUID
    read_by: List[UUID]
    # Routing only, not part of the update_read_status payload
    conversation_id: Optional[UUID] = Field(default=None, exclude=True)
