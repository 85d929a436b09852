# =============================================================================
# unihost_core/sync/events.py
# Push payload decoding
# =============================================================================
"""
Turns raw realtime payloads into typed change events.

Supported payload shapes:
    {"data": {"type", "table", "record", "old_record"}, "ids": [...]}   realtime-py
    {"eventType", "table", "new", "old"}                                 supabase-js style
    {"type", "table", "record", "old_record"}                            bare

A payload that does not fit raises ``EventDecodeError``; the subscription
manager logs and drops it, so nothing untyped reaches the cache.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from unihost_core.data import TABLE_CONVERSATIONS, TABLE_MESSAGES, TABLE_SUGGESTIONS
from unihost_core.errors import EventDecodeError
from unihost_core.models import AiSuggestion, Conversation, Message, MessageStatus

CHANGE_TYPES = ("INSERT", "UPDATE", "DELETE")


@dataclass(frozen=True)
class ConversationInserted:
    conversation_id: str


@dataclass(frozen=True)
class ConversationUpdated:
    conversation_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageInserted:
    message: Message


@dataclass(frozen=True)
class MessageStatusChanged:
    message_id: str
    status: MessageStatus


@dataclass(frozen=True)
class SuggestionInserted:
    suggestion: AiSuggestion


@dataclass(frozen=True)
class IgnoredChange:
    table: str
    change_type: str


ChangeEvent = Union[
    ConversationInserted,
    ConversationUpdated,
    MessageInserted,
    MessageStatusChanged,
    SuggestionInserted,
    IgnoredChange,
]


def _unwrap(payload: Mapping[str, Any]) -> Dict[str, Any]:
    data = payload.get("data")
    if isinstance(data, Mapping):
        payload = data

    change_type = payload.get("type") or payload.get("eventType")
    change_type = getattr(change_type, "value", change_type)
    new = payload.get("record")
    if new is None:
        new = payload.get("new")
    old = payload.get("old_record")
    if old is None:
        old = payload.get("old")

    return {
        "type": str(change_type).upper() if change_type else None,
        "table": payload.get("table"),
        "new": new or {},
        "old": old or {},
    }


def decode_change_event(payload: Any, table: Optional[str] = None) -> ChangeEvent:
    """
    Decode one push payload.

    Args:
        payload: Raw payload from the gateway
        table: Channel's table, used when the payload does not name one

    Raises:
        EventDecodeError: on a missing type/table or a malformed record
    """
    if not isinstance(payload, Mapping):
        raise EventDecodeError(f"Payload is not a mapping: {type(payload).__name__}", table=table)

    raw = _unwrap(payload)
    table = raw["table"] or table
    change_type = raw["type"]
    new, old = raw["new"], raw["old"]

    if not table:
        raise EventDecodeError("Payload names no table")
    if change_type not in CHANGE_TYPES:
        raise EventDecodeError(f"Unknown change type {change_type!r}", table=table)
    if not isinstance(new, Mapping) or not isinstance(old, Mapping):
        raise EventDecodeError("Record is not a mapping", table=table)

    try:
        if table == TABLE_CONVERSATIONS and change_type == "INSERT":
            return ConversationInserted(conversation_id=str(_require_id(new)))
        if table == TABLE_CONVERSATIONS and change_type == "UPDATE":
            return ConversationUpdated(
                conversation_id=str(_require_id(new)),
                changes=Conversation.decode_fields(new),
            )
        if table == TABLE_MESSAGES and change_type == "INSERT":
            return MessageInserted(message=Message.from_record(new))
        if table == TABLE_MESSAGES and change_type == "UPDATE" and new.get("status"):
            return MessageStatusChanged(
                message_id=str(_require_id(new)),
                status=MessageStatus(new["status"]),
            )
        if table == TABLE_SUGGESTIONS and change_type == "INSERT":
            return SuggestionInserted(suggestion=AiSuggestion.from_record(new))
    except ValueError as e:
        raise EventDecodeError(f"Malformed {change_type} record: {e}", table=table) from e

    return IgnoredChange(table=table, change_type=change_type)


def _require_id(record: Mapping[str, Any]) -> Any:
    if not record.get("id"):
        raise ValueError("Missing required field 'id'")
    return record["id"]
