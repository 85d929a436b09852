# =============================================================================
# unihost_core/models/entities.py
# Domain Entities for UniHost Messaging
# =============================================================================
"""
Immutable entities shared by the gateway, the services and the entity cache.

Every entity is a frozen dataclass. Updates produce replacement values via
``dataclasses.replace``; nothing is ever mutated in place.

Rows coming from the datastore (direct fetches or push payloads) are decoded
with ``from_record``. Malformed rows raise ``ValueError`` so the boundary
that received them can drop them with a log line.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd


# Column holding the AI backend's correlation id on conversations and suggestions
AI_SESSION_COLUMN = "vectorshift_conversation_id"


class Platform(str, Enum):
    """Booking platforms a conversation can originate from."""
    AIRBNB = "Airbnb"
    BOOKING = "Booking.com"

    @classmethod
    def parse(cls, value: Any) -> Platform:
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Unknown platform: {value!r}")


class MessageStatus(str, Enum):
    """Delivery status; only ever moves forward."""
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_advance_to(self, other: MessageStatus) -> bool:
        return other.rank > self.rank


_STATUS_RANK = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
}


# =============================================================================
# DECODING HELPERS
# =============================================================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""
    if value is None or value == "":
        raise ValueError("Missing timestamp")
    try:
        ts = pd.to_datetime(value, utc=True)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp {value!r}: {e}") from e
    if pd.isna(ts):
        raise ValueError(f"Invalid timestamp {value!r}")
    return ts.to_pydatetime()


def _optional_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_timestamp(value)


def _optional_date(value: Any) -> Optional[str]:
    # Check-in/out dates stay as ISO date strings; only validated here
    if value is None or value == "":
        return None
    return parse_timestamp(value).date().isoformat()


def _require(record: Mapping[str, Any], key: str) -> Any:
    value = record.get(key)
    if value is None or value == "":
        raise ValueError(f"Missing required field '{key}'")
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "t", "1", "yes")
    return bool(value)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass(frozen=True)
class User:
    id: str
    username: str
    email: str = ""
    is_host: bool = False
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> User:
        return cls(
            id=str(_require(record, "id")),
            username=record.get("username") or record.get("name") or "",
            email=record.get("email") or "",
            is_host=_as_bool(record.get("is_host", False)),
            avatar_url=record.get("avatar_url"),
            created_at=_optional_timestamp(record.get("created_at")),
        )


@dataclass(frozen=True)
class Property:
    id: str
    name: str
    host_id: str
    platform: Platform
    location: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Property:
        return cls(
            id=str(_require(record, "id")),
            name=_require(record, "name"),
            host_id=str(_require(record, "host_id")),
            platform=Platform.parse(_require(record, "platform")),
            location=record.get("location"),
        )


@dataclass(frozen=True)
class Message:
    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime
    is_from_host: bool
    status: MessageStatus = MessageStatus.SENT

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Message:
        return cls(
            id=str(_require(record, "id")),
            conversation_id=str(_require(record, "conversation_id")),
            sender_id=str(_require(record, "sender_id")),
            content=record.get("content") or "",
            created_at=parse_timestamp(_require(record, "created_at")),
            is_from_host=_as_bool(record.get("is_from_host", False)),
            status=MessageStatus(record.get("status") or MessageStatus.SENT.value),
        )


@dataclass(frozen=True)
class AiSuggestion:
    id: str
    conversation_id: str
    content: str
    created_at: datetime
    is_used: bool = False
    ai_session_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> AiSuggestion:
        # Older rows used "used" instead of "is_used"
        used = record.get("is_used", record.get("used", False))
        return cls(
            id=str(_require(record, "id")),
            conversation_id=str(_require(record, "conversation_id")),
            content=record.get("content") or "",
            created_at=parse_timestamp(_require(record, "created_at")),
            is_used=_as_bool(used),
            ai_session_id=record.get(AI_SESSION_COLUMN),
        )


@dataclass(frozen=True)
class Conversation:
    id: str
    property_id: str
    guest_id: str
    host_id: str
    platform: Platform
    last_message_at: datetime
    created_at: Optional[datetime] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    ai_session_id: Optional[str] = None

    # Joined details, present when fetched with the details select
    listing: Optional[Property] = None
    guest: Optional[User] = None
    last_message: Optional[Message] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Conversation:
        base = cls(
            id=str(_require(record, "id")),
            property_id=str(_require(record, "property_id")),
            guest_id=str(_require(record, "guest_id")),
            host_id=str(_require(record, "host_id")),
            platform=Platform.parse(_require(record, "platform")),
            last_message_at=parse_timestamp(
                record.get("last_message_at") or _require(record, "created_at")
            ),
        )
        return cls(**{**_field_values(base), **cls.decode_fields(record)})

    @classmethod
    def decode_fields(cls, record: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Decode whichever known columns are present in ``record``.

        Used for partial merges: an UPDATE push carries the changed row and
        only the columns we understand are merged into the cached value.
        Joined relations are decoded when they are embedded in the row.
        """
        decoded: Dict[str, Any] = {}
        for key in ("property_id", "guest_id", "host_id"):
            if record.get(key):
                decoded[key] = str(record[key])
        if record.get("platform"):
            decoded["platform"] = Platform.parse(record["platform"])
        if record.get("last_message_at"):
            decoded["last_message_at"] = parse_timestamp(record["last_message_at"])
        if record.get("created_at"):
            decoded["created_at"] = parse_timestamp(record["created_at"])
        for key in ("check_in_date", "check_out_date"):
            if key in record:
                decoded[key] = _optional_date(record[key])
        if record.get(AI_SESSION_COLUMN):
            decoded["ai_session_id"] = record[AI_SESSION_COLUMN]

        prop = record.get("property")
        if isinstance(prop, Mapping):
            decoded["listing"] = Property.from_record(prop)
        guest = record.get("guest")
        if isinstance(guest, Mapping):
            decoded["guest"] = User.from_record(guest)
        last = record.get("last_message")
        if last:
            decoded["last_message"] = _latest_message(last)
        return decoded

    @property
    def guest_name(self) -> str:
        return self.guest.username if self.guest else "Guest"

    @property
    def property_name(self) -> str:
        return self.listing.name if self.listing else "Property"


def _latest_message(value: Any) -> Optional[Message]:
    # The details select embeds every message of the conversation
    rows: List[Mapping[str, Any]] = value if isinstance(value, list) else [value]
    messages = [Message.from_record(row) for row in rows if isinstance(row, Mapping)]
    if not messages:
        return None
    return max(messages, key=lambda m: m.created_at)


def _field_values(entity: Any) -> Dict[str, Any]:
    return {f.name: getattr(entity, f.name) for f in fields(entity)}


# =============================================================================
# COMMANDS
# =============================================================================

@dataclass(frozen=True)
class NewConversationData:
    """Form data for starting a conversation (host modal or guest simulator)."""
    guest_name: str
    property_name: str
    platform: Platform
    guest_email: Optional[str] = None
    property_location: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    initial_message: Optional[str] = None
