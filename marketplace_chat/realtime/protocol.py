"""Socket event handling for the chat protocol.

Inbound events:
    - identify: associate a user id with the connection
    - join_room: join the room of a conversation
    - send_message: store a message and broadcast ``new_message`` to the room
    - typing: broadcast ``user_typing`` to the room, excluding the sender
    - message_read: record a read receipt and broadcast ``update_read_status``

Events that acknowledge return ``{"ok": True, ...}`` or ``{"ok": False, "error": code}``.
A failure inside a handler never escapes :meth:`MessagingProtocol.handle`.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace_chat.errors import (
    MessagingError,
    NotFoundError,
    ValidationError,
)
from marketplace_chat.ids import is_valid_id, parse_id
from marketplace_chat.models.api.socket import Ack
from marketplace_chat.realtime.rooms import Connection, RoomManager
from marketplace_chat.services.read_receipt_service import ReadReceiptService
from marketplace_chat.services.send_message_service import SendMessageService

logger = logging.getLogger(__name__)

Handler = Callable[[Connection, Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]


def room_name(conversation_id: Any) -> str:
    """Canonical room name, so differently cased ids share a room."""
    if isinstance(conversation_id, UUID):
        return str(conversation_id)
    if is_valid_id(conversation_id):
        return str(UUID(conversation_id))
    return str(conversation_id)


class MessagingProtocol:
    """Dispatches socket events for all connections of this process."""

    def __init__(
        self, rooms: RoomManager, session_factory: async_sessionmaker[AsyncSession]
    ):
        self.rooms = rooms
        self.session_factory = session_factory
        self._handlers: Dict[str, Handler] = {
            "identify": self.on_identify,
            "join_room": self.on_join_room,
            "send_message": self.on_send_message,
            "typing": self.on_typing,
            "message_read": self.on_message_read,
        }

    def connect(self, connection: Connection) -> None:
        self.rooms.register(connection)

    async def disconnect(self, connection: Connection) -> None:
        """Drop all room memberships. Persisted state is untouched."""
        self.rooms.leave(connection.id)

    async def handle(
        self, connection: Connection, event: str, data: Optional[Dict[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        """Run the handler for ``event`` and return its acknowledgement, if any."""
        handler = self._handlers.get(event)
        if handler is None:
            logger.info("Ignoring unknown event %r from %s", event, connection.id)
            return Ack.failure("unknown_event")

        try:
            return await handler(connection, data if isinstance(data, dict) else {})
        except (ValidationError, NotFoundError) as err:
            return Ack.failure(err.code)
        except Exception as err:
            logger.exception("%s failed for connection %s", event, connection.id)
            await self._notify_failure(connection, event, err)
            code = err.code if isinstance(err, MessagingError) else "internal_error"
            return Ack.failure(code)

    async def _notify_failure(
        self, connection: Connection, event: str, error: Exception
    ) -> None:
        try:
            await connection.send(
                "error", {"type": f"{event}_failed", "message": str(error)}
            )
        except Exception as send_err:
            logger.warning(
                "Could not deliver error event to %s: %s", connection.id, send_err
            )

    async def on_identify(
        self, connection: Connection, data: Dict[str, Any]
    ) -> None:
        user_id = data.get("userId")
        if user_id:
            self.rooms.set_user(connection.id, str(user_id))

    async def on_join_room(
        self, connection: Connection, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        conversation_id = data.get("conversationId")
        if not is_valid_id(conversation_id):
            raise ValidationError("invalid_conversation_id")

        user_id = data.get("userId")
        self.rooms.join(
            connection.id, room_name(conversation_id), str(user_id) if user_id else None
        )
        logger.info(
            "%s joined %s",
            self.rooms.user_for(connection.id) or "unknown",
            conversation_id,
        )
        return Ack.success()

    async def on_send_message(
        self, connection: Connection, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        async with self.session_factory() as db:
            message = await SendMessageService(db).send_message(
                conversation_id=data.get("conversationId"),
                sender_id=data.get("senderId", data.get("sender")),
                text=data.get("text"),
                attachments=data.get("attachments"),
                product_ref=data.get("productRef"),
            )

        payload = message.model_dump(mode="json", by_alias=True)
        await self.rooms.broadcast(
            room_name(message.conversation_id), "new_message", payload
        )
        return Ack.success(payload)

    async def on_typing(self, connection: Connection, data: Dict[str, Any]) -> None:
        conversation_id = data.get("conversationId")
        if not conversation_id:
            return
        await self.rooms.broadcast(
            room_name(conversation_id),
            "user_typing",
            {"conversationId": conversation_id, "userId": data.get("userId")},
            exclude=connection.id,
        )

    async def on_message_read(
        self, connection: Connection, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        message_id = parse_id(data.get("messageId"), "invalid_message_id")

        user_id = data.get("userId") or self.rooms.user_for(connection.id)
        if not user_id:
            raise ValidationError("missing_user")
        reader_id = parse_id(str(user_id), "invalid_user")

        async with self.session_factory() as db:
            status = await ReadReceiptService(db).mark_message_read(message_id, reader_id)

        # Broadcast to the room the message belongs to, whatever the client sent
        claimed = data.get("conversationId")
        if claimed and room_name(claimed) != room_name(status.conversation_id):
            logger.warning(
                "message_read for %s named conversation %s, message belongs to %s",
                message_id,
                claimed,
                status.conversation_id,
            )

        payload = status.model_dump(mode="json", by_alias=True)
        await self.rooms.broadcast(
            room_name(status.conversation_id), "update_read_status", payload
        )
        return Ack.success(payload)
