from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from .base import CamelModel


class ParticipantResponse(CamelModel):
    """A conversation participant with its resolved display name."""

    user_id: UUID
    username: Optional[str] = None


class ConversationResponse(CamelModel):
    """Response model for conversation data."""

    id: UUID
    participants: List[ParticipantResponse]
    created_at: datetime
    last_message_at: Optional[datetime]
    last_message_id: Optional[UUID] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class CreateConversationRequest(CamelModel):
    """Request model for opening a conversation between users."""

    participants: List[UUID] = Field(
        ..., description="Participant user ids (at least 2 distinct users)"
    )

    @field_validator("participants")
    @classmethod
    def require_two_distinct(cls, value: List[UUID]) -> List[UUID]:
        if len(set(value)) < 2:
            raise ValueError("Participants required (2 users).")
        return value


class CreateConversationResponse(CamelModel):
    """Find-or-create result. ``existing`` is true when no row was created."""

    data: ConversationResponse
    existing: bool = False
