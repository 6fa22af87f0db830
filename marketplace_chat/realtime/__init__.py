# Real-time messaging over WebSockets
from .protocol import MessagingProtocol
from .rooms import Connection, RoomManager, WebSocketConnection, room_manager

__all__ = [
    "Connection",
    "MessagingProtocol",
    "RoomManager",
    "WebSocketConnection",
    "room_manager",
]
