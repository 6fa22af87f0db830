# API models for request/response contracts
from .conversations import (
    ConversationResponse,
    CreateConversationRequest,
    CreateConversationResponse,
    ParticipantResponse,
)
from .messages import (
    Attachment,
    MessageResponse,
    ReadStatusResponse,
    SendMessageRequest,
)
from .socket import Ack, InboundFrame, OutboundFrame

__all__ = [
    "Ack",
    "Attachment",
    "ConversationResponse",
    "CreateConversationRequest",
    "CreateConversationResponse",
    "InboundFrame",
    "MessageResponse",
    "OutboundFrame",
    "ParticipantResponse",
    "ReadStatusResponse",
    "SendMessageRequest",
]
