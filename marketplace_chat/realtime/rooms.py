"""In-memory room membership for live socket connections.

A room is named by a conversation id and holds the connections currently
joined to it. State is process-local: in a multi-process deployment each
process only fans out to its own connections.

This is designed for a single asyncio event loop and is not thread-safe.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Set

from fastapi import WebSocket

from marketplace_chat.models.api.socket import OutboundFrame

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """A live client connection that can receive named events."""

    id: str

    async def send(self, event: str, data: Any) -> None: ...


class WebSocketConnection:
    """Adapts a FastAPI WebSocket to :class:`Connection`.

    Outbound events are framed as ``{"event": name, "data": payload}``.
    """

    def __init__(self, websocket: WebSocket, connection_id: str):
        self.websocket = websocket
        self.id = connection_id

    async def send(self, event: str, data: Any) -> None:
        frame = OutboundFrame(event=event, data=data)
        await self.websocket.send_json(frame.model_dump(exclude_unset=True))

    async def send_ack(self, ack_id: Any, data: Any) -> None:
        frame = OutboundFrame(event="ack", data=data, ack=ack_id)
        await self.websocket.send_json(frame.model_dump(exclude_unset=True))


class RoomManager:
    """Tracks which connections are joined to which conversation rooms."""

    def __init__(self) -> None:
        # connection id -> connection
        self.connections: Dict[str, Connection] = {}

        # conversation id -> connection ids joined to it
        self.rooms: Dict[str, Set[str]] = {}

        # connection id -> conversation ids it has joined
        self.connection_rooms: Dict[str, Set[str]] = {}

        # connection id -> user id (last identify/join wins)
        self.connection_users: Dict[str, str] = {}

    def register(self, connection: Connection) -> None:
        """Start tracking a connection. It joins no rooms until asked."""
        self.connections[connection.id] = connection
        self.connection_rooms.setdefault(connection.id, set())

    def set_user(self, connection_id: str, user_id: str) -> None:
        self.connection_users[connection_id] = user_id

    def user_for(self, connection_id: str) -> Optional[str]:
        return self.connection_users.get(connection_id)

    def join(
        self, connection_id: str, conversation_id: str, user_id: Optional[str] = None
    ) -> None:
        """Add the connection to a room. Joining several rooms is allowed."""
        self.rooms.setdefault(conversation_id, set()).add(connection_id)
        self.connection_rooms.setdefault(connection_id, set()).add(conversation_id)
        if user_id:
            self.set_user(connection_id, user_id)

    def leave(self, connection_id: str) -> None:
        """Remove the connection from every room and forget it."""
        self.leave_rooms(connection_id)
        self.connection_rooms.pop(connection_id, None)
        self.connection_users.pop(connection_id, None)
        self.connections.pop(connection_id, None)

    def leave_rooms(self, connection_id: str) -> None:
        """Remove the connection from every room. It stays registered and may rejoin."""
        for conversation_id in self.connection_rooms.get(connection_id, set()):
            members = self.rooms.get(conversation_id)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self.rooms[conversation_id]
        if connection_id in self.connection_rooms:
            self.connection_rooms[connection_id] = set()

    def rooms_for(self, connection_id: str) -> Set[str]:
        return set(self.connection_rooms.get(connection_id, set()))

    def members(self, conversation_id: str) -> Set[str]:
        return set(self.rooms.get(conversation_id, set()))

    async def broadcast(
        self,
        conversation_id: str,
        event: str,
        payload: Any,
        exclude: Optional[str] = None,
    ) -> None:
        """Send an event to every connection joined to the room, concurrently.

        Connections whose send fails are dropped from all rooms. They stay
        registered, so a later join from the same socket is delivered to again.
        """
        targets: List[Connection] = [
            self.connections[cid]
            for cid in self.rooms.get(conversation_id, set())
            if cid != exclude and cid in self.connections
        ]
        if not targets:
            return

        results = await asyncio.gather(
            *[conn.send(event, payload) for conn in targets], return_exceptions=True
        )

        for conn, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Removing connection %s from its rooms after failed %s send: %s",
                    conn.id,
                    event,
                    result,
                )
                self.leave_rooms(conn.id)


room_manager = RoomManager()
