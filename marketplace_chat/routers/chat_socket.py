"""WebSocket endpoint for real-time chat.

Each text frame from the client is a JSON object
``{"event": str, "data": {...}, "ack": id | null}``. When ``ack`` is set and
the event acknowledges, the reply is ``{"event": "ack", "ack": id, "data": {...}}``.
"""

import logging
import uuid
from typing import Any, Dict, Optional

import pydantic
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from marketplace_chat.database import AsyncSessionLocal
from marketplace_chat.models.api.socket import InboundFrame
from marketplace_chat.realtime.protocol import MessagingProtocol
from marketplace_chat.realtime.rooms import WebSocketConnection, room_manager

logger = logging.getLogger(__name__)

router = APIRouter()

protocol = MessagingProtocol(room_manager, AsyncSessionLocal)


def parse_frame(message: Dict[str, Any]) -> Optional[InboundFrame]:
    """Parse one received ASGI message. Binary or malformed frames give None."""
    # Binary frames carry "bytes" instead of "text"
    raw = message.get("text")
    if raw is None:
        return None
    try:
        return InboundFrame.model_validate_json(raw)
    except pydantic.ValidationError:
        return None


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    connection = WebSocketConnection(websocket, str(uuid.uuid4()))
    protocol.connect(connection)
    logger.info("socket connected %s", connection.id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            frame = parse_frame(message)
            if frame is None:
                await connection.send(
                    "error",
                    {"type": "invalid_frame", "message": "Expected {event, data, ack}"},
                )
                continue

            result = await protocol.handle(connection, frame.event, frame.data)
            if frame.ack is not None and result is not None:
                await connection.send_ack(frame.ack, result)
    except WebSocketDisconnect:
        pass
    finally:
        await protocol.disconnect(connection)
        logger.info("socket disconnected %s", connection.id)
