# =============================================================================
# tests/unit/test_events.py
# Unit Tests for push payload decoding
# =============================================================================

import pytest

from unihost_core.errors import EventDecodeError
from unihost_core.models import MessageStatus, Platform
from unihost_core.sync.events import (
    ConversationInserted,
    ConversationUpdated,
    IgnoredChange,
    MessageInserted,
    MessageStatusChanged,
    SuggestionInserted,
    decode_change_event,
)

MESSAGE_ROW = {
    "id": "m1",
    "conversation_id": "c1",
    "sender_id": "guest-1",
    "content": "Is there a crib?",
    "is_from_host": False,
    "status": "sent",
    "created_at": "2024-06-01T12:00:00+00:00",
}


class TestDecodeShapes:
    """Test the accepted payload envelopes"""

    def test_realtime_envelope(self, factories):
        event = decode_change_event(factories.payload("INSERT", "messages", MESSAGE_ROW))

        assert isinstance(event, MessageInserted)
        assert event.message.id == "m1"
        assert event.message.created_at.tzinfo is not None

    def test_js_style_envelope(self):
        payload = {"eventType": "INSERT", "table": "messages", "new": MESSAGE_ROW, "old": {}}
        assert isinstance(decode_change_event(payload), MessageInserted)

    def test_table_taken_from_channel(self):
        payload = {"type": "INSERT", "record": MESSAGE_ROW}
        assert isinstance(decode_change_event(payload, table="messages"), MessageInserted)


class TestDecodeVariants:
    """Test mapping of (table, type) to event variants"""

    def test_conversation_insert_carries_only_id(self, factories):
        row = {"id": "c9", "host_id": "h", "property_id": "p", "guest_id": "g", "platform": "Airbnb"}
        event = decode_change_event(factories.payload("INSERT", "conversations", row))

        assert event == ConversationInserted(conversation_id="c9")

    def test_conversation_update_decodes_known_fields(self, factories):
        row = {
            "id": "c1",
            "platform": "Booking.com",
            "last_message_at": "2024-06-02T08:30:00Z",
            "vectorshift_conversation_id": "vs-7",
            "unrelated": "ignored",
        }
        event = decode_change_event(factories.payload("UPDATE", "conversations", row))

        assert isinstance(event, ConversationUpdated)
        assert event.conversation_id == "c1"
        assert event.changes["platform"] is Platform.BOOKING
        assert event.changes["ai_session_id"] == "vs-7"
        assert "unrelated" not in event.changes

    def test_suggestion_insert(self, factories):
        row = {
            "id": "s1",
            "conversation_id": "c1",
            "content": "Sure!",
            "is_used": False,
            "created_at": "2024-06-01T12:00:00Z",
        }
        event = decode_change_event(factories.payload("INSERT", "ai_suggestions", row))

        assert isinstance(event, SuggestionInserted)
        assert not event.suggestion.is_used

    def test_message_status_update(self, factories):
        row = {**MESSAGE_ROW, "status": "read"}
        event = decode_change_event(factories.payload("UPDATE", "messages", row))

        assert event == MessageStatusChanged(message_id="m1", status=MessageStatus.READ)

    def test_delete_is_ignored(self, factories):
        event = decode_change_event(factories.payload("DELETE", "messages", {}, old={"id": "m1"}))
        assert event == IgnoredChange(table="messages", change_type="DELETE")


class TestMalformedPayloads:
    """Test that bad payloads raise EventDecodeError"""

    @pytest.mark.parametrize("payload", [
        None,
        "INSERT",
        {"data": {"table": "messages", "record": MESSAGE_ROW}},
        {"data": {"type": "UPSERT", "table": "messages", "record": MESSAGE_ROW}},
        {"data": {"type": "INSERT", "record": MESSAGE_ROW}},
    ])
    def test_bad_envelope(self, payload):
        with pytest.raises(EventDecodeError):
            decode_change_event(payload)

    def test_message_missing_conversation(self, factories):
        row = {k: v for k, v in MESSAGE_ROW.items() if k != "conversation_id"}
        with pytest.raises(EventDecodeError) as exc:
            decode_change_event(factories.payload("INSERT", "messages", row))
        assert exc.value.code == "SYNC_002"

    def test_bad_timestamp(self, factories):
        row = {**MESSAGE_ROW, "created_at": "not a date"}
        with pytest.raises(EventDecodeError):
            decode_change_event(factories.payload("INSERT", "messages", row))

    def test_unknown_platform_on_update(self, factories):
        row = {"id": "c1", "platform": "Vrbo"}
        with pytest.raises(EventDecodeError):
            decode_change_event(factories.payload("UPDATE", "conversations", row))

    def test_conversation_insert_without_id(self, factories):
        with pytest.raises(EventDecodeError):
            decode_change_event(factories.payload("INSERT", "conversations", {"host_id": "h"}))
