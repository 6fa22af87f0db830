import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from marketplace_chat.errors import PersistenceError, ValidationError
from marketplace_chat.models.api.conversations import (
    ConversationResponse,
    ParticipantResponse,
)
from marketplace_chat.models.db.conversation_model import ConversationModel
from marketplace_chat.models.db.participant_model import ParticipantModel
from marketplace_chat.models.db.user_model import UserModel
from marketplace_chat.repositories.base_repository import (
    BaseRepository,
    as_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def normalize_participants(participant_ids: Iterable[UUID]) -> List[UUID]:
    """Deduplicate and sort participant ids so lookups are order-independent."""
    return sorted(set(participant_ids), key=str)


def participant_key(participant_ids: Iterable[UUID]) -> str:
    return ",".join(str(p) for p in normalize_participants(participant_ids))


class ConversationRepository(BaseRepository[ConversationModel, ConversationResponse]):
    """Repository for conversation operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ConversationModel)

    async def get_by_id(self, id: UUID) -> Optional[ConversationResponse]:
        """Get a conversation by ID with participants resolved to usernames."""
        query = (
            select(self.model_class)
            .where(self.model_class.id == id)
            .options(selectinload(self.model_class.participants))
        )  # type: ignore
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        if not db_model:
            return None
        return (await self._to_pydantic_many([db_model]))[0]

    async def get_by_participants(
        self, participant_ids: Iterable[UUID]
    ) -> Optional[ConversationResponse]:
        """Find the conversation whose participant set is exactly ``participant_ids``."""
        query = (
            select(self.model_class)
            .where(self.model_class.participant_key == participant_key(participant_ids))
            .options(selectinload(self.model_class.participants))
            .order_by(self.model_class.created_at)
            .limit(1)
        )  # type: ignore
        result = await self.db.execute(query)
        db_model = result.scalar_one_or_none()
        if not db_model:
            return None
        return (await self._to_pydantic_many([db_model]))[0]

    async def create(
        self, participant_ids: Iterable[UUID], meta: Optional[Dict[str, Any]] = None
    ) -> ConversationResponse:
        """Create a new conversation between at least two distinct users."""
        participants = normalize_participants(participant_ids)
        if len(participants) < 2:
            raise ValidationError("participants_required")

        now = utcnow()
        db_model = ConversationModel(
            id=uuid4(),
            participant_key=participant_key(participants),
            created_at=now,
            last_message_at=now,
            meta=meta or {},
            participants=[
                ParticipantModel(user_id=user_id, position=position, created_at=now)
                for position, user_id in enumerate(participants)
            ],
        )
        self.db.add(db_model)
        try:
            await self.db.commit()
        except SQLAlchemyError as err:
            await self.db.rollback()
            raise PersistenceError(message=f"Failed to create conversation: {err}") from err

        return (await self._to_pydantic_many([db_model]))[0]

    async def touch(
        self, conversation_id: UUID, last_message_id: UUID, timestamp: datetime
    ) -> bool:
        """Bump last-activity bookkeeping.

        Best-effort: failures are logged and reported as False, never raised.
        """
        query = (
            update(self.model_class)
            .where(self.model_class.id == conversation_id)
            .values(last_message_at=timestamp, last_message_id=last_message_id)
        )
        try:
            await self.db.execute(query)
            await self.db.commit()
        except SQLAlchemyError as err:
            logger.warning(
                "Failed to touch conversation %s after message %s: %s",
                conversation_id,
                last_message_id,
                err,
            )
            await self.db.rollback()
            return False
        return True

    async def list_for_participant(
        self, user_id: UUID, page: int = 1, page_size: int = 20
    ) -> List[ConversationResponse]:
        """List a user's conversations, most recently active first."""
        if page < 1:
            raise ValidationError("invalid_page")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError("invalid_page_size")

        member_of = select(ParticipantModel.conversation_id).where(
            ParticipantModel.user_id == user_id
        )
        query = (
            select(self.model_class)
            .where(self.model_class.id.in_(member_of))
            .options(selectinload(self.model_class.participants))
            .order_by(self.model_class.last_message_at.desc(), self.model_class.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )  # type: ignore
        result = await self.db.execute(query)
        return await self._to_pydantic_many(result.scalars().all())

    async def _resolve_usernames(self, user_ids: Iterable[UUID]) -> Dict[UUID, str]:
        ids = set(user_ids)
        if not ids:
            return {}
        query = select(UserModel.id, UserModel.username).where(UserModel.id.in_(ids))
        result = await self.db.execute(query)
        return {row.id: row.username for row in result.all()}

    async def _to_pydantic_many(
        self, db_models: Iterable[Any]
    ) -> List[ConversationResponse]:
        db_models = list(db_models)
        usernames = await self._resolve_usernames(
            p.user_id for m in db_models for p in m.participants
        )
        return [self._to_pydantic(m, usernames) for m in db_models]

    def _to_pydantic(
        self, db_model: Any, usernames: Optional[Dict[UUID, str]] = None
    ) -> ConversationResponse:
        """Convert SQLAlchemy ConversationModel to Pydantic ConversationResponse."""
        usernames = usernames or {}
        return ConversationResponse(
            id=db_model.id,
            participants=[
                ParticipantResponse(
                    user_id=p.user_id, username=usernames.get(p.user_id)
                )
                for p in db_model.participants
            ],
            created_at=as_utc(db_model.created_at),
            last_message_at=as_utc(db_model.last_message_at),
            last_message_id=db_model.last_message_id,
            meta=db_model.meta or {},
        )
