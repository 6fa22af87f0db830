import logging
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID, uuid4

import pydantic
from sqlalchemy import DateTime, Uuid, exists, insert, literal
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from marketplace_chat.crypto import encrypt_text, safe_decrypt_text
from marketplace_chat.errors import NotFoundError, PersistenceError, ValidationError
from marketplace_chat.ids import parse_id
from marketplace_chat.models.api.messages import (
    MessageResponse,
    ReadStatusResponse,
    SendMessageRequest,
)
from marketplace_chat.models.db.conversation_model import ConversationModel
from marketplace_chat.models.db.message_model import MessageModel
from marketplace_chat.models.db.message_read_model import MessageReadModel
from marketplace_chat.repositories.base_repository import (
    BaseRepository,
    as_utc,
    to_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


class MessageRepository(BaseRepository[MessageModel, MessageResponse]):
    """Repository for message operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, MessageModel)

    async def get_model(self, id: UUID) -> Optional[MessageModel]:
        """Get a message row with its reader set loaded."""
        query = (
            select(self.model_class)
            .where(self.model_class.id == id)
            .options(selectinload(self.model_class.reads))
            .execution_options(populate_existing=True)
        )  # type: ignore
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def append(
        self,
        conversation_id: Any,
        sender_id: Any,
        text: Optional[str] = None,
        attachments: Any = None,
        product_ref: Any = None,
    ) -> MessageResponse:
        """
        Persist a new message:

        1. Validate the conversation and sender references
        2. Normalize attachments and the product reference
        3. Encrypt the text and insert the row

        The returned message carries the stored (encrypted) text.
        """
        conversation_uuid = parse_id(conversation_id, "invalid_conversation_id")
        sender_uuid = parse_id(sender_id, "invalid_sender")

        try:
            request = SendMessageRequest(
                conversation_id=conversation_uuid,
                sender_id=sender_uuid,
                text=text or "",
                attachments=attachments,
                product_ref=product_ref,
            )
        except pydantic.ValidationError as err:
            fields = {str(e["loc"][0]) for e in err.errors() if e["loc"]}
            if "attachments" in fields:
                raise ValidationError("invalid_attachment") from err
            raise ValidationError("invalid_request") from err

        conversation_exists = await self.db.execute(
            select(ConversationModel.id).where(ConversationModel.id == conversation_uuid)
        )
        if conversation_exists.scalar_one_or_none() is None:
            raise NotFoundError("conversation_not_found")

        now = utcnow()
        db_model = MessageModel(
            id=uuid4(),
            conversation_id=request.conversation_id,
            sender_id=request.sender_id,
            text=encrypt_text(request.text) or "",
            attachments=[a.model_dump() for a in request.attachments],
            product_ref=request.product_ref,
            created_at=now,
            updated_at=now,
            reads=[],
        )
        self.db.add(db_model)
        try:
            await self.db.commit()
        except SQLAlchemyError as err:
            await self.db.rollback()
            raise PersistenceError(message=f"Failed to store message: {err}") from err

        return self._to_pydantic(db_model)

    async def list_by_conversation(
        self,
        conversation_id: UUID,
        limit: int = DEFAULT_PAGE_SIZE,
        before: Optional[datetime] = None,
    ) -> List[MessageResponse]:
        """Get a page of messages, newest first, with text decrypted.

        ``before`` is an exclusive upper bound on ``created_at``.
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        query = (
            select(self.model_class)
            .where(self.model_class.conversation_id == conversation_id)
            .options(selectinload(self.model_class.reads))
            .execution_options(populate_existing=True)
        )  # type: ignore
        if before is not None:
            query = query.where(self.model_class.created_at < to_utc(before))
        query = query.order_by(
            self.model_class.created_at.desc(), self.model_class.id.desc()
        ).limit(limit)

        result = await self.db.execute(query)
        return [
            self._to_pydantic(db_model, decrypt=True)
            for db_model in result.scalars().all()
        ]

    async def mark_read(self, message_id: UUID, reader_id: UUID) -> ReadStatusResponse:
        """Add ``reader_id`` to the message's reader set. Repeated calls are no-ops."""
        db_model = await self.get_model(message_id)
        if not db_model:
            raise NotFoundError("message_not_found")

        if reader_id not in {r.reader_id for r in db_model.reads}:
            self.db.add(
                MessageReadModel(
                    message_id=message_id, reader_id=reader_id, read_at=utcnow()
                )
            )
            try:
                await self.db.commit()
            except IntegrityError:
                # Same reader marked concurrently from another connection
                await self.db.rollback()
            except SQLAlchemyError as err:
                await self.db.rollback()
                raise PersistenceError(message=f"Failed to mark read: {err}") from err
            db_model = await self.get_model(message_id)

        return ReadStatusResponse(
            message_id=db_model.id,
            read_by=[r.reader_id for r in db_model.reads],
            conversation_id=db_model.conversation_id,
        )

    async def mark_all_read_in_conversation(
        self, conversation_id: UUID, reader_id: UUID
    ) -> int:
        """Add ``reader_id`` to every message in a conversation.

        Returns the number of messages newly marked as read.
        """
        for attempt in range(2):
            already_read = exists().where(
                MessageReadModel.message_id == self.model_class.id,
                MessageReadModel.reader_id == reader_id,
            )
            unread = select(
                self.model_class.id,
                literal(reader_id, type_=Uuid()),
                literal(utcnow(), type_=DateTime(timezone=True)),
            ).where(self.model_class.conversation_id == conversation_id, ~already_read)
            query = insert(MessageReadModel).from_select(
                ["message_id", "reader_id", "read_at"], unread
            )
            try:
                result = await self.db.execute(query)
                await self.db.commit()
                return result.rowcount or 0
            except IntegrityError:
                await self.db.rollback()
                if attempt:
                    raise PersistenceError(
                        message="Concurrent read updates kept conflicting"
                    )
                logger.info(
                    "Read marking for %s raced with another reader, retrying",
                    conversation_id,
                )
            except SQLAlchemyError as err:
                await self.db.rollback()
                raise PersistenceError(message=f"Failed to mark read: {err}") from err
        return 0

    def _to_pydantic(self, db_model: Any, decrypt: bool = False) -> MessageResponse:
        """Convert SQLAlchemy MessageModel to Pydantic MessageResponse."""
        text = db_model.text or ""
        if decrypt:
            text = safe_decrypt_text(text) or ""
        return MessageResponse(
            id=db_model.id,
            conversation_id=db_model.conversation_id,
            sender_id=db_model.sender_id,
            text=text,
            attachments=db_model.attachments or [],
            product_ref=db_model.product_ref,
            read_by=[r.reader_id for r in db_model.reads],
            delivered_at=as_utc(db_model.delivered_at),
            seen_at=as_utc(db_model.seen_at),
            created_at=as_utc(db_model.created_at),
        )
