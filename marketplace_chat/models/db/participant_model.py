import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Uuid, func
from sqlalchemy.orm import relationship

from marketplace_chat.database import Base


class ParticipantModel(Base):
    """SQLAlchemy model for participants table."""

    __tablename__ = "participants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False)
    # References users.id, owned by the account service
    user_id = Column(Uuid, nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=func.now())

    # Relationships
    conversation = relationship("ConversationModel", back_populates="participants")
