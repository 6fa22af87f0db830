import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.models.api.messages import MessageResponse
from marketplace_chat.repositories.conversation_repository import ConversationRepository
from marketplace_chat.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)


class SendMessageService:
    """Service for storing a new message in a conversation."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.message_repo = MessageRepository(db)
        self.conversation_repo = ConversationRepository(db)

    async def send_message(
        self,
        conversation_id: Any,
        sender_id: Any,
        text: Optional[str] = None,
        attachments: Any = None,
        product_ref: Any = None,
    ) -> MessageResponse:
        """
        Main business logic for sending a message:
        1. Encrypt and persist the message (primary write, errors propagate)
        2. Bump the conversation's last-activity marker (best-effort)
        3. Return the stored message
        """
        message = await self.message_repo.append(
            conversation_id=conversation_id,
            sender_id=sender_id,
            text=text,
            attachments=attachments,
            product_ref=product_ref,
        )

        touched = await self.conversation_repo.touch(
            message.conversation_id, message.id, message.created_at
        )
        if not touched:
            logger.info(
                "Message %s stored without conversation bookkeeping", message.id
            )

        return message
