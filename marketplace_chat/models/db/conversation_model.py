import uuid

from sqlalchemy import JSON, Column, DateTime, String, Uuid, func
from sqlalchemy.orm import relationship

from marketplace_chat.database import Base


class ConversationModel(Base):
    """SQLAlchemy model for conversations table."""

    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Sorted, comma-joined participant ids. Indexed for lookup but not unique.
    participant_key = Column(String(1024), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=func.now())
    last_message_at = Column(DateTime(timezone=True), default=func.now())
    last_message_id = Column(Uuid, nullable=True)
    meta = Column(JSON, default=dict)

    # Relationships
    messages = relationship(
        "MessageModel", back_populates="conversation", cascade="all, delete-orphan"
    )
    participants = relationship(
        "ParticipantModel",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ParticipantModel.position",
    )
