import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace_chat.database import get_db
from marketplace_chat.errors import NotFoundError, PersistenceError, ValidationError
from marketplace_chat.models.api.conversations import (
    ConversationResponse,
    CreateConversationRequest,
    CreateConversationResponse,
)
from marketplace_chat.models.api.messages import MessageResponse
from marketplace_chat.routers.dependencies import get_current_user_id
from marketplace_chat.services.get_conversation_messages_service import (
    GetConversationMessagesService,
)
from marketplace_chat.services.list_conversations_service import ListConversationsService
from marketplace_chat.services.read_receipt_service import ReadReceiptService

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_before(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 cursor. Unparseable values are ignored.

    An unencoded "+HH:MM" offset arrives as " HH:MM" after query decoding.
    """
    if not value:
        return None
    value = value.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value.replace(" ", "+"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    page: int = Query(1, description="Page number, starting at 1", ge=1),
    limit: int = Query(
        20, description="Maximum number of conversations to return", ge=1, le=100
    ),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[ConversationResponse]:
    """
    List the caller's conversations, most recently active first.

    Query parameters:
    - page: Page number (default: 1)
    - limit: Page size (default: 20, max: 100)
    """
    try:
        service = ListConversationsService(db)
        return await service.list_conversations(user_id, page=page, limit=limit)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Failed to list conversations for %s", user_id)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post(
    "",
    response_model=CreateConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    request: CreateConversationRequest,
    response: Response,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> CreateConversationResponse:
    """
    Open a conversation between the given participants.

    Returns the existing conversation (200) when one already exists for
    exactly this participant set, otherwise creates it (201).
    """
    try:
        service = ListConversationsService(db)
        conversation, created = await service.find_or_create_conversation(
            request.participants
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError:
        logger.exception("Failed to create conversation for %s", user_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    if not created:
        response.status_code = status.HTTP_200_OK
    return CreateConversationResponse(data=conversation, existing=not created)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ConversationResponse:
    """
    Get detailed information about a specific conversation.

    Path parameters:
    - conversation_id: UUID of the conversation
    """
    try:
        service = ListConversationsService(db)
        return await service.get_conversation_summary(conversation_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
async def get_conversation_messages(
    conversation_id: UUID,
    limit: int = Query(
        50, description="Maximum number of messages to return", ge=1, le=200
    ),
    before: Optional[str] = Query(
        None,
        description=(
            "Only messages created strictly before this ISO timestamp. "
            "Send the createdAt value as returned, in its Z form"
        ),
    ),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[MessageResponse]:
    """
    Get one page of messages for a conversation, newest first.

    Query parameters:
    - limit: Maximum number of messages to return (default: 50, max: 200)
    - before: Cursor, pass the createdAt of the oldest message already loaded
    """
    try:
        service = GetConversationMessagesService(db)
        return await service.get_conversation_messages(
            conversation_id=conversation_id,
            limit=limit,
            before=parse_before(before),
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Mark every message in the conversation as read by the caller."""
    try:
        service = ReadReceiptService(db)
        updated = await service.mark_conversation_read(conversation_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError:
        logger.exception("Failed to mark %s read for %s", conversation_id, user_id)
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"ok": True, "updated": updated}
