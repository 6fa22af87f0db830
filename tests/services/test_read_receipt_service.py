from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from marketplace_chat.errors import NotFoundError
from marketplace_chat.services.read_receipt_service import ReadReceiptService


class TestReadReceiptService:
    """Unit tests for ReadReceiptService."""

    @pytest.fixture
    def service(self, mock_db: AsyncMock) -> ReadReceiptService:
        return ReadReceiptService(mock_db)

    async def test_mark_conversation_read_requires_conversation(
        self, service: ReadReceiptService
    ) -> None:
        with (
            patch.object(
                service.conversation_repo,
                "exists",
                new_callable=AsyncMock,
                return_value=False,
            ),
            patch.object(
                service.message_repo,
                "mark_all_read_in_conversation",
                new_callable=AsyncMock,
            ) as mock_mark,
            pytest.raises(NotFoundError),
        ):
            await service.mark_conversation_read(uuid4(), uuid4())

        mock_mark.assert_not_called()

    async def test_mark_message_read_end_to_end(
        self, test_db, conversation, users, insert_message, base_time
    ) -> None:
        message = await insert_message(conversation.id, users["buyer"], "hi", base_time)
        service = ReadReceiptService(test_db)

        first = await service.mark_message_read(message.id, users["seller"])
        again = await service.mark_message_read(message.id, users["seller"])
        both = await service.mark_message_read(message.id, users["buyer"])

        assert first.read_by == [users["seller"]]
        assert again.read_by == [users["seller"]]
        assert set(both.read_by) == {users["buyer"], users["seller"]}
        assert both.conversation_id == conversation.id

    async def test_mark_conversation_read_end_to_end(
        self, test_db, conversation, users, insert_message, base_time
    ) -> None:
        first = await insert_message(conversation.id, users["buyer"], "a", base_time)
        await insert_message(conversation.id, users["buyer"], "b", base_time)
        service = ReadReceiptService(test_db)
        await service.mark_message_read(first.id, users["seller"])

        updated = await service.mark_conversation_read(conversation.id, users["seller"])

        assert updated == 1
        assert await service.mark_conversation_read(conversation.id, users["seller"]) == 0
