from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.errors import NotFoundError, ValidationError
from marketplace_chat.models.api.messages import MessageResponse
from marketplace_chat.repositories.conversation_repository import ConversationRepository
from marketplace_chat.repositories.message_repository import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MessageRepository,
)


class GetConversationMessagesService:
    """Service for retrieving messages from a specific conversation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.message_repo = MessageRepository(db)

    async def get_conversation_messages(
        self,
        conversation_id: UUID,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
        before: Optional[datetime] = None,
    ) -> List[MessageResponse]:
        """
        Get messages for a specific conversation:

        1. Verify conversation exists
        2. Retrieve one page of messages older than ``before``, newest first
        3. Return them with text decrypted
        """
        if limit is not None and (limit <= 0 or limit > MAX_PAGE_SIZE):
            raise ValidationError(
                "invalid_limit", f"Limit must be between 1 and {MAX_PAGE_SIZE}"
            )

        if not await self.conversation_repo.exists(conversation_id):
            raise NotFoundError("conversation_not_found", "Conversation not found")

        return await self.message_repo.list_by_conversation(
            conversation_id=conversation_id,
            limit=limit or DEFAULT_PAGE_SIZE,
            before=before,
        )
