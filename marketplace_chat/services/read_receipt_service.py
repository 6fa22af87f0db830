from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.errors import NotFoundError
from marketplace_chat.models.api.messages import ReadStatusResponse
from marketplace_chat.repositories.conversation_repository import ConversationRepository
from marketplace_chat.repositories.message_repository import MessageRepository


class ReadReceiptService:
    """Service for recording who has read which messages."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.message_repo = MessageRepository(db)
        self.conversation_repo = ConversationRepository(db)

    async def mark_message_read(
        self, message_id: UUID, reader_id: UUID
    ) -> ReadStatusResponse:
        return await self.message_repo.mark_read(message_id, reader_id)

    async def mark_conversation_read(self, conversation_id: UUID, reader_id: UUID) -> int:
        """Mark every message in the conversation as read by ``reader_id``."""
        if not await self.conversation_repo.exists(conversation_id):
            raise NotFoundError("conversation_not_found", "Conversation not found")
        return await self.message_repo.mark_all_read_in_conversation(
            conversation_id, reader_id
        )
