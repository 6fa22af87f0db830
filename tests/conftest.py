import os
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Generator, List, Tuple
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

# Must be set before the application modules read their configuration
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from fastapi.testclient import TestClient  # noqa: E402

import marketplace_chat.models.db  # noqa: E402,F401
from marketplace_chat.crypto import encrypt_text  # noqa: E402
from marketplace_chat.database import Base  # noqa: E402
from marketplace_chat.main import app  # noqa: E402
from marketplace_chat.models.db import (  # noqa: E402
    ConversationModel,
    MessageModel,
    ParticipantModel,
    UserModel,
)

TEST_DB_URL = "sqlite+aiosqlite://"


class FakeConnection:
    """In-memory stand-in for a socket connection that records what it receives."""

    def __init__(self, connection_id: str):
        self.id = connection_id
        self.events: List[Tuple[str, Any]] = []

    async def send(self, event: str, data: Any) -> None:
        self.events.append((event, data))

    def received(self, event: str) -> List[Any]:
        return [data for name, data in self.events if name == event]


class BrokenConnection(FakeConnection):
    """Connection whose transport has gone away."""

    async def send(self, event: str, data: Any) -> None:
        raise ConnectionResetError("socket closed")


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the full schema, one per test."""
    engine = create_async_engine(TEST_DB_URL, poolclass=StaticPool, future=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Database session bound to the per-test in-memory database."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def mock_db() -> AsyncGenerator[AsyncMock, None]:
    """Create a mock database session for unit tests."""
    mock_session = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.refresh = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.add = MagicMock()  # add is sync, not async

    yield mock_session


@pytest.fixture
async def users(test_db: AsyncSession) -> Dict[str, UUID]:
    """A buyer and a seller registered in the users table."""
    buyer, seller = uuid4(), uuid4()
    test_db.add_all(
        [UserModel(id=buyer, username="buyer"), UserModel(id=seller, username="seller")]
    )
    await test_db.commit()
    return {"buyer": buyer, "seller": seller}


@pytest.fixture
async def conversation(test_db: AsyncSession, users: Dict[str, UUID]) -> ConversationModel:
    """A stored conversation between the buyer and the seller."""
    participants = sorted(users.values(), key=str)
    now = datetime.now(timezone.utc)
    model = ConversationModel(
        id=uuid4(),
        participant_key=",".join(str(p) for p in participants),
        created_at=now,
        last_message_at=now,
        meta={},
        participants=[
            ParticipantModel(user_id=user_id, position=i, created_at=now)
            for i, user_id in enumerate(participants)
        ],
    )
    test_db.add(model)
    await test_db.commit()
    return model


@pytest.fixture
def insert_message(test_db: AsyncSession):
    """Insert a message row with an explicit creation time."""

    async def _insert(
        conversation_id: UUID,
        sender_id: UUID,
        text: str,
        created_at: datetime,
        encrypt: bool = True,
    ) -> MessageModel:
        model = MessageModel(
            id=uuid4(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            text=encrypt_text(text) if encrypt else text,
            attachments=[],
            created_at=created_at,
            updated_at=created_at,
            reads=[],
        )
        test_db.add(model)
        await test_db.commit()
        return model

    return _insert


@pytest.fixture
def base_time() -> datetime:
    return datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_connection():
    """Factory for recorded fake connections with sequential ids."""
    counter = iter(range(1, 10_000))

    def _make(broken: bool = False) -> FakeConnection:
        cls = BrokenConnection if broken else FakeConnection
        return cls(f"conn-{next(counter)}")

    return _make


@pytest.fixture
def client() -> Generator[TestClient, Any, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client
