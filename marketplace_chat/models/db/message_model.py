import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Text, Uuid, func
from sqlalchemy.orm import relationship

from marketplace_chat.database import Base


class MessageModel(Base):
    """SQLAlchemy model for messages table."""

    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_conversation_created", "conversation_id", "created_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False)
    sender_id = Column(Uuid, nullable=False, index=True)
    # Ciphertext envelope, or "" for attachment-only messages
    text = Column(Text, nullable=False, default="")
    attachments = Column(JSON, default=list)
    product_ref = Column(Uuid, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    seen_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    # Relationships
    conversation = relationship("ConversationModel", back_populates="messages")
    reads = relationship(
        "MessageReadModel",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageReadModel.read_at",
    )

    # attachments[].type IN ('image', 'video', 'file', 'other'), validated in the API model
