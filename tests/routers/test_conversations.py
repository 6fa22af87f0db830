from datetime import datetime, timezone
from typing import Dict
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from marketplace_chat.errors import NotFoundError, PersistenceError, ValidationError
from marketplace_chat.models.api.conversations import (
    ConversationResponse,
    ParticipantResponse,
)
from marketplace_chat.models.api.messages import MessageResponse
from marketplace_chat.routers.conversations import parse_before

LIST_CONVERSATIONS = (
    "marketplace_chat.services.list_conversations_service"
    ".ListConversationsService.list_conversations"
)
GET_SUMMARY = (
    "marketplace_chat.services.list_conversations_service"
    ".ListConversationsService.get_conversation_summary"
)
FIND_OR_CREATE = (
    "marketplace_chat.services.list_conversations_service"
    ".ListConversationsService.find_or_create_conversation"
)
GET_MESSAGES = (
    "marketplace_chat.services.get_conversation_messages_service"
    ".GetConversationMessagesService.get_conversation_messages"
)
MARK_READ = (
    "marketplace_chat.services.read_receipt_service"
    ".ReadReceiptService.mark_conversation_read"
)


class TestConversationsRouter:
    """Unit tests for the conversations router endpoints."""

    @pytest.fixture
    def user_id(self) -> UUID:
        return uuid4()

    @pytest.fixture
    def headers(self, user_id: UUID) -> Dict[str, str]:
        return {"X-User-Id": str(user_id)}

    @pytest.fixture
    def sample_conversation(self, user_id: UUID) -> ConversationResponse:
        now = datetime.now(timezone.utc)
        return ConversationResponse(
            id=uuid4(),
            participants=[
                ParticipantResponse(user_id=user_id, username="buyer"),
                ParticipantResponse(user_id=uuid4(), username=None),
            ],
            created_at=now,
            last_message_at=now,
        )

    @pytest.fixture
    def sample_message(self, sample_conversation: ConversationResponse) -> MessageResponse:
        return MessageResponse(
            id=uuid4(),
            conversation_id=sample_conversation.id,
            sender_id=sample_conversation.participants[0].user_id,
            text="hello",
            attachments=[],
            product_ref=None,
            read_by=[],
            created_at=datetime.now(timezone.utc),
        )

    def test_requires_user_identity(self, client: TestClient) -> None:
        response = client.get("/api/conversations")
        assert response.status_code == 401

        response = client.get(
            "/api/conversations", headers={"X-User-Id": "not-a-uuid"}
        )
        assert response.status_code == 401

    def test_list_conversations(
        self,
        client: TestClient,
        headers: Dict[str, str],
        user_id: UUID,
        sample_conversation: ConversationResponse,
    ) -> None:
        with patch(
            LIST_CONVERSATIONS,
            new_callable=AsyncMock,
            return_value=[sample_conversation],
        ) as mock_service:
            response = client.get(
                "/api/conversations?page=2&limit=10", headers=headers
            )

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["id"] == str(sample_conversation.id)
        assert data[0]["participants"][0] == {
            "userId": str(user_id),
            "username": "buyer",
        }
        assert "lastMessageAt" in data[0]
        mock_service.assert_called_once_with(user_id, page=2, limit=10)

    def test_list_conversations_validation(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        response = client.get("/api/conversations?limit=0", headers=headers)
        assert response.status_code == 422

        response = client.get("/api/conversations?limit=101", headers=headers)
        assert response.status_code == 422

        response = client.get("/api/conversations?page=0", headers=headers)
        assert response.status_code == 422

    def test_list_conversations_service_error(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        with patch(
            LIST_CONVERSATIONS,
            new_callable=AsyncMock,
            side_effect=Exception("Service error"),
        ):
            response = client.get("/api/conversations", headers=headers)

        assert response.status_code == 500
        assert "Internal server error" in response.json()["detail"]

    def test_create_conversation(
        self,
        client: TestClient,
        headers: Dict[str, str],
        sample_conversation: ConversationResponse,
    ) -> None:
        participants = [str(p.user_id) for p in sample_conversation.participants]

        with patch(
            FIND_OR_CREATE,
            new_callable=AsyncMock,
            return_value=(sample_conversation, True),
        ) as mock_service:
            response = client.post(
                "/api/conversations",
                json={"participants": participants},
                headers=headers,
            )

        assert response.status_code == 201
        body = response.json()
        assert body["existing"] is False
        assert body["data"]["id"] == str(sample_conversation.id)
        mock_service.assert_called_once_with(
            [p.user_id for p in sample_conversation.participants]
        )

    def test_create_conversation_returns_existing(
        self,
        client: TestClient,
        headers: Dict[str, str],
        sample_conversation: ConversationResponse,
    ) -> None:
        participants = [str(p.user_id) for p in sample_conversation.participants]

        with patch(
            FIND_OR_CREATE,
            new_callable=AsyncMock,
            return_value=(sample_conversation, False),
        ):
            response = client.post(
                "/api/conversations",
                json={"participants": participants},
                headers=headers,
            )

        assert response.status_code == 200
        assert response.json()["existing"] is True

    SAME_USER = "11111111-1111-1111-1111-111111111111"

    @pytest.mark.parametrize(
        "participants",
        [[], [SAME_USER], [SAME_USER, SAME_USER], ["x", "y"]],
    )
    def test_create_conversation_rejects_bad_participants(
        self, client: TestClient, headers: Dict[str, str], participants: list
    ) -> None:
        response = client.post(
            "/api/conversations", json={"participants": participants}, headers=headers
        )
        assert response.status_code == 422

    def test_create_conversation_persistence_error(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        with patch(
            FIND_OR_CREATE,
            new_callable=AsyncMock,
            side_effect=PersistenceError(message="db down"),
        ):
            response = client.post(
                "/api/conversations",
                json={"participants": [str(uuid4()), str(uuid4())]},
                headers=headers,
            )

        assert response.status_code == 500

    def test_get_conversation(
        self,
        client: TestClient,
        headers: Dict[str, str],
        sample_conversation: ConversationResponse,
    ) -> None:
        with patch(
            GET_SUMMARY,
            new_callable=AsyncMock,
            return_value=sample_conversation,
        ) as mock_service:
            response = client.get(
                f"/api/conversations/{sample_conversation.id}", headers=headers
            )

        assert response.status_code == 200
        assert response.json()["id"] == str(sample_conversation.id)
        mock_service.assert_called_once_with(sample_conversation.id)

    def test_get_conversation_not_found(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        with patch(
            GET_SUMMARY,
            new_callable=AsyncMock,
            side_effect=NotFoundError("conversation_not_found", "Conversation not found"),
        ):
            response = client.get(f"/api/conversations/{uuid4()}", headers=headers)

        assert response.status_code == 404
        assert "not found" in response.json()["detail"].lower()

    def test_get_conversation_invalid_uuid(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        response = client.get("/api/conversations/invalid-uuid", headers=headers)
        assert response.status_code == 422

    def test_get_messages(
        self,
        client: TestClient,
        headers: Dict[str, str],
        sample_conversation: ConversationResponse,
        sample_message: MessageResponse,
    ) -> None:
        with patch(
            GET_MESSAGES,
            new_callable=AsyncMock,
            return_value=[sample_message],
        ) as mock_service:
            response = client.get(
                f"/api/conversations/{sample_conversation.id}/messages"
                "?limit=25&before=2026-01-01T12:00:00Z",
                headers=headers,
            )

        assert response.status_code == 200
        data = response.json()
        assert data[0]["text"] == "hello"
        assert data[0]["conversationId"] == str(sample_conversation.id)
        assert data[0]["readBy"] == []
        mock_service.assert_called_once_with(
            conversation_id=sample_conversation.id,
            limit=25,
            before=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
        )

    def test_get_messages_unencoded_offset_cursor(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        conversation_id = uuid4()
        with patch(
            GET_MESSAGES, new_callable=AsyncMock, return_value=[]
        ) as mock_service:
            response = client.get(
                f"/api/conversations/{conversation_id}/messages"
                "?before=2026-01-01T12:00:00+00:00",
                headers=headers,
            )

        assert response.status_code == 200
        assert mock_service.call_args.kwargs["before"] == datetime(
            2026, 1, 1, 12, 0, tzinfo=timezone.utc
        )

    def test_get_messages_limit_bounds(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        response = client.get(
            f"/api/conversations/{uuid4()}/messages?limit=201", headers=headers
        )
        assert response.status_code == 422

    def test_get_messages_errors(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        with patch(
            GET_MESSAGES,
            new_callable=AsyncMock,
            side_effect=NotFoundError("conversation_not_found", "Conversation not found"),
        ):
            response = client.get(
                f"/api/conversations/{uuid4()}/messages", headers=headers
            )
        assert response.status_code == 404

        with patch(
            GET_MESSAGES,
            new_callable=AsyncMock,
            side_effect=ValidationError("invalid_limit", "Limit must be between 1 and 200"),
        ):
            response = client.get(
                f"/api/conversations/{uuid4()}/messages", headers=headers
            )
        assert response.status_code == 400

    def test_mark_conversation_read(
        self, client: TestClient, headers: Dict[str, str], user_id: UUID
    ) -> None:
        conversation_id = uuid4()
        with patch(MARK_READ, new_callable=AsyncMock, return_value=3) as mock_service:
            response = client.post(
                f"/api/conversations/{conversation_id}/read", headers=headers
            )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "updated": 3}
        mock_service.assert_called_once_with(conversation_id, user_id)

    def test_mark_conversation_read_not_found(
        self, client: TestClient, headers: Dict[str, str]
    ) -> None:
        with patch(
            MARK_READ,
            new_callable=AsyncMock,
            side_effect=NotFoundError("conversation_not_found"),
        ):
            response = client.post(f"/api/conversations/{uuid4()}/read", headers=headers)

        assert response.status_code == 404


class TestParseBefore:
    def test_parses_zulu_timestamps(self) -> None:
        assert parse_before("2026-01-01T12:00:00Z") == datetime(
            2026, 1, 1, 12, 0, tzinfo=timezone.utc
        )

    def test_naive_timestamps_are_utc(self) -> None:
        assert parse_before("2026-01-01T12:00:00").tzinfo == timezone.utc

    @pytest.mark.parametrize(
        "value", ["2026-01-01T14:00:00+02:00", "2026-01-01T14:00:00 02:00"]
    )
    def test_offsets_survive_query_decoding(self, value: str) -> None:
        assert parse_before(value) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_space_separated_timestamp(self) -> None:
        assert parse_before("2026-01-01 12:00:00") == datetime(
            2026, 1, 1, 12, 0, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unparseable_cursor_is_ignored(self, value) -> None:
        assert parse_before(value) is None
