"""WebSocket frame models for the chat protocol."""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class InboundFrame(BaseModel):
    """Client -> server."""

    event: str  # identify | join_room | send_message | typing | message_read
    data: Optional[Dict[str, Any]] = Field(default_factory=dict)
    ack: Optional[Union[int, str]] = None


class OutboundFrame(BaseModel):
    """Server -> client."""

    event: str  # ack | new_message | user_typing | update_read_status | error
    data: Any = None
    ack: Optional[Union[int, str]] = None


class Ack(BaseModel):
    """Acknowledgement payload for a single inbound event."""

    ok: bool
    error: Optional[str] = None
    data: Any = None

    @classmethod
    def success(cls, data: Any = None) -> Dict[str, Any]:
        ack = cls(ok=True) if data is None else cls(ok=True, data=data)
        return ack.model_dump(exclude_unset=True)

    @classmethod
    def failure(cls, error: str) -> Dict[str, Any]:
        return cls(ok=False, error=error).model_dump(exclude_unset=True)
