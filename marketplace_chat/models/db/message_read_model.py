from sqlalchemy import Column, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from marketplace_chat.database import Base


class MessageReadModel(Base):
    """SQLAlchemy model for the message_reads table.

    One row per (message, reader). The composite primary key makes the reader
    set grow-only and duplicate-free.
    """

    __tablename__ = "message_reads"

    message_id = Column(Uuid, ForeignKey("messages.id"), primary_key=True)
    reader_id = Column(Uuid, primary_key=True)
    read_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    message = relationship("MessageModel", back_populates="reads")
