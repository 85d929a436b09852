# =============================================================================
# tests/integration/test_conversation_flow.py
# Integration Tests for the sync layer (Gateway -> Push -> Cache -> Commands)
# =============================================================================

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest
import requests

from unihost_core.ai import APIConfig, VectorShiftConnector
from unihost_core.ai.suggestion_client import PARKING_REPLY
from unihost_core.models import NewConversationData, Platform
from unihost_core.sync.context import LOAD_ERROR_MESSAGE, SyncContext
from unihost_core.sync.subscriptions import SubscriptionState

ALICE = NewConversationData(
    guest_name="Alice",
    property_name="Seaside Cottage",
    platform=Platform.AIRBNB,
    initial_message="Hi, is parking available?",
)


class TestCreateConversationFlow:
    """
    Integration tests for starting a conversation.

    Tests the flow:
    1. Guest and property resolved or created
    2. Conversation and initial message inserted
    3. Optimistic cache entry merged with the pushed INSERT
    """

    @pytest.mark.asyncio
    async def test_new_conversation_lands_in_store_and_cache(self, sync_context, seeded_gateway, wait_until):
        conversation = await sync_context.create_conversation(ALICE)

        listing = next(p for p in seeded_gateway.tables["properties"] if p["name"] == "Seaside Cottage")
        assert listing["platform"] == "Airbnb"

        stored = [m for m in seeded_gateway.tables["messages"] if m["conversation_id"] == conversation.id]
        assert len(stored) == 1
        assert stored[0]["content"] == "Hi, is parking available?"
        assert stored[0]["is_from_host"] is False

        # The pushed INSERT re-fetches the same conversation; still one entry
        await wait_until(lambda: sync_context.subscriptions.events_handled >= 2)
        await sync_context.subscriptions.drain()
        ids = [c.id for c in sync_context.cache.conversations]
        assert ids == [conversation.id, "conv-1"]
        assert sync_context.cache.get_conversation(conversation.id).guest_name == "Alice"


class TestMessagingFlow:
    """Integration tests for sending messages and suggestions"""

    @pytest.mark.asyncio
    async def test_host_send_with_ai_down_uses_fallback(self, seeded_gateway, app_config, wait_until):
        connector = VectorShiftConnector(
            APIConfig(api_name="VectorShift", base_url="https://vs.test/api/chatbots", api_key="k"),
            chatbot_id="bot-1",
        )
        context = SyncContext(seeded_gateway, app_config, connector=connector)
        await context.start()
        try:
            with patch.object(
                connector.session, "request", side_effect=requests.exceptions.ConnectionError("refused")
            ):
                conversation = await context.create_conversation(ALICE)
                await context.load_conversation(conversation.id)
                message = await context.send_message(conversation.id, "Thanks Alice, let me look into that.")

            assert message is not None
            suggestion = context.cache.current_suggestion(conversation.id)
            assert suggestion.content == PARKING_REPLY

            await wait_until(lambda: len(seeded_gateway.tables["ai_suggestions"]) == 1)
            await context.subscriptions.drain()
            assert len(context.cache.suggestions_for(conversation.id)) == 1
            contents = [m.content for m in context.cache.messages_for(conversation.id)]
            assert contents == ["Hi, is parking available?", "Thanks Alice, let me look into that."]
        finally:
            await context.close()

    @pytest.mark.asyncio
    async def test_optimistic_send_and_push_collapse(self, sync_context, wait_until):
        await sync_context.load_conversation("conv-1")

        message = await sync_context.send_message("conv-1", "Can we bring a dog?", is_from_host=False)

        assert await wait_until(lambda: sync_context.subscriptions.events_handled >= 2)
        await sync_context.subscriptions.drain()
        ids = [m.id for m in sync_context.cache.messages_for("conv-1")]
        assert ids == ["msg-1", message.id]
        assert sync_context.cache.get_conversation("conv-1").last_message.id == message.id

    @pytest.mark.asyncio
    async def test_failed_send_is_rolled_back(self, sync_context, seeded_gateway):
        await sync_context.load_conversation("conv-1")
        seeded_gateway.reachable = False

        assert await sync_context.send_message("conv-1", "Hello?", is_from_host=False) is None

        assert [m.id for m in sync_context.cache.messages_for("conv-1")] == ["msg-1"]
        assert sync_context.cache.get_conversation("conv-1").last_message.id == "msg-1"

    @pytest.mark.asyncio
    async def test_accept_suggestion(self, sync_context, seeded_gateway):
        await sync_context.load_conversation("conv-1")
        suggestion = await sync_context.request_suggestion("conv-1")
        assert suggestion.content == 'This is an AI suggestion for: "Guest: Hi there, we arrive on Friday."'

        sent = await sync_context.accept_suggestion("conv-1", suggestion.id)

        assert sent.content == suggestion.content
        assert sent.is_from_host
        stored = next(s for s in seeded_gateway.tables["ai_suggestions"] if s["id"] == suggestion.id)
        assert stored["is_used"] is True
        used = next(s for s in sync_context.cache.suggestions_for("conv-1") if s.id == suggestion.id)
        assert used.is_used

    @pytest.mark.asyncio
    async def test_ai_session_id_recorded(self, sync_context, seeded_gateway):
        await sync_context.load_conversation("conv-1")
        await sync_context.request_suggestion("conv-1")

        assert sync_context.cache.get_conversation("conv-1").ai_session_id == "new_conversation"
        assert seeded_gateway.tables["conversations"][0]["vectorshift_conversation_id"] == "new_conversation"

    @pytest.mark.asyncio
    async def test_malformed_ai_response_falls_back(self, seeded_gateway, app_config):
        connector = VectorShiftConnector(
            APIConfig(api_name="VectorShift", base_url="https://vs.test/api/chatbots", api_key="k"),
            chatbot_id="bot-1",
        )
        response = MagicMock(ok=True, status_code=200)
        response.json.return_value = ["unexpected"]
        context = SyncContext(seeded_gateway, app_config, connector=connector)
        await context.start()
        try:
            await context.load_conversation("conv-1")
            with patch.object(connector.session, "request", return_value=response):
                message = await context.send_message("conv-1", "Is parking free?")

            assert message is not None
            assert context.cache.current_suggestion("conv-1").content == PARKING_REPLY
        finally:
            await context.close()


class TestConversationLoad:
    """Integration tests for loading one conversation's messages and suggestions"""

    @pytest.mark.asyncio
    async def test_half_failed_load_completed_on_next_call(
        self, sync_context, seeded_gateway, monkeypatch, wait_until
    ):
        calls = {"messages": 0, "suggestions": 0}
        list_messages = sync_context.messages.list_by_conversation
        list_suggestions = sync_context.suggestions.list_by_conversation

        async def counted_messages(conversation_id):
            calls["messages"] += 1
            return await list_messages(conversation_id)

        async def flaky_suggestions(conversation_id):
            calls["suggestions"] += 1
            if calls["suggestions"] == 1:
                return None
            return await list_suggestions(conversation_id)

        monkeypatch.setattr(sync_context.messages, "list_by_conversation", counted_messages)
        monkeypatch.setattr(sync_context.suggestions, "list_by_conversation", flaky_suggestions)

        assert not await sync_context.load_conversation("conv-1")
        assert sync_context.cache.messages_for("conv-1") is not None
        assert sync_context.cache.suggestions_for("conv-1") is None

        assert await sync_context.load_conversation("conv-1")
        assert calls == {"messages": 1, "suggestions": 2}
        assert sync_context.cache.suggestions_for("conv-1") == []

        await seeded_gateway.insert("ai_suggestions", {"conversation_id": "conv-1", "content": "Welcome!"})
        assert await wait_until(lambda: sync_context.cache.current_suggestion("conv-1") is not None)
        assert sync_context.cache.current_suggestion("conv-1").content == "Welcome!"

    @pytest.mark.asyncio
    async def test_loaded_conversation_not_refetched(self, sync_context, monkeypatch):
        assert await sync_context.load_conversation("conv-1")

        async def unexpected(conversation_id):
            raise AssertionError("should not refetch")

        monkeypatch.setattr(sync_context.messages, "list_by_conversation", unexpected)
        monkeypatch.setattr(sync_context.suggestions, "list_by_conversation", unexpected)

        assert await sync_context.load_conversation("conv-1")


class TestRecoveryFlow:
    """Integration tests for load failures, reconnects and silent connection death"""

    @pytest.fixture
    def quiet_config(self, app_config):
        """Config whose health monitor stays out of the way"""
        return replace(app_config, sync=replace(app_config.sync, probe_interval=60.0))

    @pytest.mark.asyncio
    async def test_failed_initial_load_then_manual_reconnect(self, seeded_gateway, quiet_config):
        seeded_gateway.reachable = False
        context = SyncContext(seeded_gateway, quiet_config)
        try:
            assert not await context.start()
            assert context.load_error == LOAD_ERROR_MESSAGE
            assert not context.cache.conversations_loaded
            assert context.subscriptions.state is SubscriptionState.UNSUBSCRIBED

            seeded_gateway.reachable = True
            assert await context.reconnect()

            assert context.load_error is None
            assert [c.id for c in context.cache.conversations] == ["conv-1"]
            assert context.subscriptions.state is SubscriptionState.SUBSCRIBED
            assert len(seeded_gateway.active_channel_names()) == 3
            assert not context.monitor.rebuild_pending
        finally:
            await context.close()

    @pytest.mark.asyncio
    async def test_reconnect_refreshes_before_rebuilding(self, sync_context, seeded_gateway):
        removals = seeded_gateway.remove_all_calls

        assert await sync_context.reconnect()

        assert seeded_gateway.remove_all_calls == removals + 1
        assert len(seeded_gateway.active_channel_names()) == 3

    @pytest.mark.asyncio
    async def test_silent_outage_recovers_automatically(self, sync_context, seeded_gateway, wait_until):
        await sync_context.load_conversation("conv-1")
        restored = []
        sync_context.signal.add_listener(restored.append)

        seeded_gateway.reachable = False
        assert await wait_until(lambda: sync_context.monitor.hard_resets >= 1)
        assert sync_context.signal.degraded
        assert seeded_gateway.active_channel_names() == []

        seeded_gateway.reachable = True
        assert await wait_until(
            lambda: sync_context.subscriptions.state is SubscriptionState.SUBSCRIBED
            and not sync_context.signal.degraded
        )
        assert len(seeded_gateway.active_channel_names()) == 3
        assert restored == [True, False]

        # Pushes flow again through the rebuilt channels
        await seeded_gateway.insert("messages", {
            "conversation_id": "conv-1",
            "sender_id": "guest-1",
            "content": "Are you still there?",
            "is_from_host": False,
        })
        assert await wait_until(lambda: len(sync_context.cache.messages_for("conv-1")) == 2)

    @pytest.mark.asyncio
    async def test_status_display(self, sync_context):
        status = sync_context.get_status_display()

        assert status["degraded"] is False
        assert status["load_error"] is None
        assert status["subscriptions"]["state"] == "subscribed"
        assert len(status["subscriptions"]["channels"]) == 3
