from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from marketplace_chat.database import Base

ModelType = TypeVar("ModelType", bound=Base)
PydanticType = TypeVar("PydanticType", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a timestamp to UTC, treating naive values as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps read back from backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseRepository(Generic[ModelType, PydanticType]):
    """Generic base repository with common read operations."""

    def __init__(self, db: AsyncSession, model_class: Any):
        self.db = db
        self.model_class = model_class

    async def get_model(self, id: UUID) -> Optional[ModelType]:
        """Get a single ORM row by ID."""
        query = select(self.model_class).where(self.model_class.id == id)  # type: ignore
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_id(self, id: UUID) -> Optional[PydanticType]:
        """Get a single record by ID."""
        db_model = await self.get_model(id)
        return self._to_pydantic(db_model) if db_model else None

    async def exists(self, id: UUID) -> bool:
        """Check whether a record with this ID exists."""
        query = select(self.model_class.id).where(self.model_class.id == id)  # type: ignore
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is not None

    def _to_pydantic(self, db_model: ModelType) -> PydanticType:
        """Convert SQLAlchemy model to Pydantic model.

        This should be overridden in subclasses for specific conversion logic.
        """
        raise NotImplementedError
