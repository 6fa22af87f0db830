from typing import List, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.errors import NotFoundError
from marketplace_chat.models.api.conversations import ConversationResponse
from marketplace_chat.repositories.conversation_repository import ConversationRepository


class ListConversationsService:
    """Service for listing, fetching and opening conversations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversation_repo = ConversationRepository(db)

    async def list_conversations(
        self, user_id: UUID, page: int = 1, limit: int = 20
    ) -> List[ConversationResponse]:
        """List the user's conversations, most recently active first."""
        return await self.conversation_repo.list_for_participant(
            user_id, page=page, page_size=limit
        )

    async def get_conversation_summary(
        self, conversation_id: UUID
    ) -> ConversationResponse:
        """Get detailed information about a specific conversation"""
        conversation = await self.conversation_repo.get_by_id(conversation_id)
        if not conversation:
            raise NotFoundError(
                "conversation_not_found",
                f"Conversation with ID {conversation_id} not found",
            )
        return conversation

    async def find_or_create_conversation(
        self, participants: List[UUID]
    ) -> Tuple[ConversationResponse, bool]:
        """Return the conversation for this participant set, creating it if needed.

        The second element is True when a new conversation was created. The
        lookup and the insert are not atomic, so two concurrent callers can
        each create one.
        """
        conversation = await self.conversation_repo.get_by_participants(participants)
        if conversation:
            return conversation, False
        return await self.conversation_repo.create(participants), True
