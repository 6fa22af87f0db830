# Export all models
from .api import (
    ConversationResponse,
    MessageResponse,
    ParticipantResponse,
    ReadStatusResponse,
    SendMessageRequest,
)
from .db import (
    ConversationModel,
    MessageModel,
    MessageReadModel,
    ParticipantModel,
    UserModel,
)

__all__ = [
    # API models
    "SendMessageRequest",
    "MessageResponse",
    "ReadStatusResponse",
    "ConversationResponse",
    "ParticipantResponse",
    # DB models
    "ConversationModel",
    "MessageModel",
    "MessageReadModel",
    "ParticipantModel",
    "UserModel",
]
