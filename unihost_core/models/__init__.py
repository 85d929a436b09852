from unihost_core.models.entities import (
    AI_SESSION_COLUMN,
    AiSuggestion,
    Conversation,
    Message,
    MessageStatus,
    NewConversationData,
    Platform,
    Property,
    User,
    isoformat,
    parse_timestamp,
    utcnow,
)

__all__ = [
    "AI_SESSION_COLUMN",
    "AiSuggestion",
    "Conversation",
    "Message",
    "MessageStatus",
    "NewConversationData",
    "Platform",
    "Property",
    "User",
    "isoformat",
    "parse_timestamp",
    "utcnow",
]
