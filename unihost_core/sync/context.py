# =============================================================================
# unihost_core/sync/context.py
# Sync Context - owns the cache, the gateway and the sync components
# =============================================================================
"""
SyncContext wires one gateway, one entity cache and the sync components
together and exposes the commands the views issue.

Nothing here is a module-level singleton: each context is built explicitly
(one per Streamlit session, one per test) and torn down with ``close()``.
"""

from __future__ import annotations
import asyncio
import uuid
from typing import Any, Dict, List, Optional, Sequence

from unihost_core.ai import (
    SuggestionConnector,
    TONES,
    create_suggestion_connector,
    get_suggestion_variations,
)
from unihost_core.config import AppConfig, DEMO_HOST_EMAIL, DEMO_HOST_ID, DEMO_HOST_USERNAME
from unihost_core.data import BaseGateway, create_gateway
from unihost_core.logging import get_logger
from unihost_core.models import (
    AiSuggestion,
    Conversation,
    Message,
    MessageStatus,
    NewConversationData,
    utcnow,
)
from unihost_core.services import (
    ConversationService,
    MessageService,
    PropertyService,
    SuggestionService,
    UserService,
    build_context,
)
from unihost_core.state.entity_cache import EntityCache
from unihost_core.sync.fetcher import TimeoutGuardedFetcher
from unihost_core.sync.health import ConnectionHealthMonitor
from unihost_core.sync.signals import DegradedSignal
from unihost_core.sync.subscriptions import SubscriptionManager

logger = get_logger(__name__)

LOAD_ERROR_MESSAGE = "Failed to load conversations. Please check your connection and retry."


class SyncContext:
    """
    Usage:
        context = await SyncContext.create(load_config())
        await context.start()
        await context.send_message(conversation_id, "Hello!")
        await context.close()
    """

    def __init__(
        self,
        gateway: BaseGateway,
        config: AppConfig,
        connector: Optional[SuggestionConnector] = None,
        cache: Optional[EntityCache] = None,
        signal: Optional[DegradedSignal] = None,
    ):
        settings = config.sync
        self.config = config
        self.settings = settings
        self.host_id = config.host_id
        self.gateway = gateway

        self.cache = cache or EntityCache()
        self.signal = signal or DegradedSignal()
        self.fetcher = TimeoutGuardedFetcher(settings.fetch_timeout)
        self.connector = connector or create_suggestion_connector(config.ai)

        self.users = UserService(gateway)
        self.properties = PropertyService(gateway)
        self.conversations = ConversationService(gateway, self.users, self.properties)
        self.messages = MessageService(gateway, self.conversations)
        self.suggestions = SuggestionService(gateway, self.connector, self.conversations)

        self.subscriptions = SubscriptionManager(
            gateway,
            self.cache,
            self.conversations,
            self.host_id,
            subscribe_timeout=settings.subscribe_timeout,
        )
        self.monitor = ConnectionHealthMonitor(
            gateway,
            self.signal,
            interval=settings.probe_interval,
            failure_threshold=settings.failure_threshold,
            reset_pause=settings.reset_pause,
            online_delay=settings.online_stabilization_delay,
            on_rebuild=self.subscriptions.rebuild,
            on_connection_lost=self.subscriptions.mark_connection_lost,
        )

        self.load_error: Optional[str] = None
        self.started = False
        self.closed = False

    @classmethod
    async def create(cls, config: AppConfig, connector: Optional[SuggestionConnector] = None) -> SyncContext:
        """Connect the configured gateway and build a context around it."""
        gateway = await create_gateway(config.gateway)
        return cls(gateway, config, connector=connector)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> bool:
        """
        Load data, open the push channels and start health monitoring.

        Returns:
            True when the initial load succeeded
        """
        if self.host_id == DEMO_HOST_ID:
            await self.users.ensure_user(DEMO_HOST_ID, DEMO_HOST_USERNAME, DEMO_HOST_EMAIL, is_host=True)

        loaded = await self.initial_load()
        if not await self.subscriptions.create_subscriptions():
            # The monitor retries once a probe succeeds
            self.monitor.rebuild_pending = True
        self.monitor.start()
        self.started = True
        return loaded

    async def initial_load(self) -> bool:
        """
        Fetch the host's conversations, retrying with exponential backoff.

        After the first attempt and ``initial_load_retries`` retries (waiting
        1s, 2s, 4s with the default base) ``load_error`` is set and the
        views offer a manual retry.
        """
        retries = self.settings.initial_load_retries
        for attempt in range(retries + 1):
            outcome = await self.fetcher.fetch(
                lambda: self.conversations.list_by_host(self.host_id),
                name="conversations load",
            )
            if outcome.ok and outcome.value is not None:
                self.cache.set_conversations(outcome.value)
                self.load_error = None
                logger.info(f"Loaded {len(outcome.value)} conversations")
                return True

            if attempt < retries:
                delay = self.settings.backoff_base * (2 ** attempt)
                logger.warning(f"Conversation load failed, retrying in {delay}s ({attempt + 1}/{retries})")
                await asyncio.sleep(delay)

        self.load_error = LOAD_ERROR_MESSAGE
        logger.error(f"Initial load failed after {retries} retries")
        return False

    async def reconnect(self) -> bool:
        """
        Manual reconnect: hard connection refresh, then a full channel
        rebuild, then clear error state. Each step finishes before the next.
        """
        logger.info("Manual reconnect requested")
        reachable = await self.monitor.refresh_connection()
        subscribed = await self.subscriptions.create_subscriptions()

        self.load_error = None
        self.fetcher.timed_out = False
        self.monitor.rebuild_pending = not subscribed
        if reachable:
            self.monitor.consecutive_failures = 0
            self.signal.set_restored()
            if not self.cache.conversations_loaded:
                await self.initial_load()
        return reachable and subscribed

    async def close(self) -> None:
        """Stop monitoring, release channels and close the gateway."""
        if self.closed:
            return
        self.closed = True
        await self.monitor.stop()
        await self.subscriptions.teardown()
        await self.fetcher.close()
        try:
            await self.gateway.close()
        except Exception as e:
            logger.warning(f"Error closing gateway: {e}")
        self.connector.close()
        logger.info("Sync context closed")

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def refresh_conversations(self) -> bool:
        outcome = await self.fetcher.fetch(
            lambda: self.conversations.list_by_host(self.host_id), name="conversations refresh"
        )
        if outcome.ok and outcome.value is not None:
            self.cache.set_conversations(outcome.value)
            return True
        return False

    async def load_conversation(self, conversation_id: str, force: bool = False) -> bool:
        """
        Load messages and suggestions of one conversation into the cache.

        Without ``force`` only the lists not loaded yet are fetched, so a
        half-failed load is completed by the next call.
        """
        want_messages = force or self.cache.messages_for(conversation_id) is None
        want_suggestions = force or self.cache.suggestions_for(conversation_id) is None
        if not (want_messages or want_suggestions):
            return True

        loads = []
        if want_messages:
            loads.append(self._load_list(
                conversation_id, self.messages.list_by_conversation, self.cache.set_messages, "messages"
            ))
        if want_suggestions:
            loads.append(self._load_list(
                conversation_id, self.suggestions.list_by_conversation, self.cache.set_suggestions, "suggestions"
            ))
        results = await asyncio.gather(*loads)
        return all(results)

    async def _load_list(self, conversation_id: str, fetch, store, name: str) -> bool:
        outcome = await self.fetcher.fetch(lambda: fetch(conversation_id), name=f"{name} load")
        if outcome.ok and outcome.value is not None:
            store(conversation_id, outcome.value)
            return True
        logger.warning(f"Could not load {name} for {conversation_id}")
        return False

    async def create_conversation(self, data: NewConversationData) -> Optional[Conversation]:
        conversation = await self.conversations.create_conversation(self.host_id, data)
        if conversation is not None:
            self.cache.upsert_conversation(conversation)
        return conversation

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        sender_id: Optional[str] = None,
        is_from_host: bool = True,
        suggest: bool = True,
    ) -> Optional[Message]:
        """
        Send a message with an optimistic cache append.

        The id is generated here so the optimistic copy and the pushed INSERT
        collapse into one entry. A host message triggers a new suggestion
        unless ``suggest`` is False.
        """
        conversation = self.cache.get_conversation(conversation_id)
        if conversation is None:
            logger.warning(f"Cannot send to unknown conversation {conversation_id}")
            return None

        if sender_id is None:
            sender_id = self.host_id if is_from_host else conversation.guest_id
        history = self.cache.messages_for(conversation_id) or []

        optimistic = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            created_at=utcnow(),
            is_from_host=is_from_host,
        )
        self.cache.append_message(optimistic)

        message = await self.messages.create_message(
            conversation_id,
            sender_id,
            content,
            is_from_host,
            message_id=optimistic.id,
            created_at=optimistic.created_at,
        )
        if message is None:
            self.cache.discard_message(conversation_id, optimistic.id)
            return None

        if is_from_host and suggest:
            await self.request_suggestion(conversation_id, content, history=history)
        return message

    async def request_suggestion(
        self,
        conversation_id: str,
        content: Optional[str] = None,
        history: Optional[List[Message]] = None,
    ) -> Optional[AiSuggestion]:
        """
        Generate a suggestion for the conversation and merge it into the cache.

        Args:
            conversation_id: Target conversation
            content: Newest message text; defaults to the last cached message
            history: Messages before ``content``; defaults to the cache
        """
        conversation = self.cache.get_conversation(conversation_id)
        if conversation is None:
            return None

        if history is None:
            history = self.cache.messages_for(conversation_id) or []
            if content is None and history:
                content, history = history[-1].content, history[:-1]
        if not content:
            logger.info(f"No message to suggest a reply for in {conversation_id}")
            return None

        suggestion = await self.suggestions.generate_suggestion(
            conversation, build_context(history, content)
        )
        if suggestion is not None:
            self.cache.append_suggestion(suggestion)
            if suggestion.ai_session_id and suggestion.ai_session_id != conversation.ai_session_id:
                self.cache.update_conversation(conversation_id, ai_session_id=suggestion.ai_session_id)
        return suggestion

    async def suggestion_variations(
        self,
        conversation_id: str,
        content: str,
        tones: Optional[Sequence[str]] = None,
    ) -> Dict[str, str]:
        conversation = self.cache.get_conversation(conversation_id)
        session_id = conversation.ai_session_id if conversation else None
        return await get_suggestion_variations(
            self.connector, content, tones or TONES, session_id=session_id
        )

    async def mark_suggestion_used(self, conversation_id: str, suggestion_id: Optional[str] = None) -> bool:
        """Mark a suggestion used in the cache and the datastore."""
        target = suggestion_id
        if target is None:
            current = self.cache.current_suggestion(conversation_id)
            target = current.id if current else None
        if target is None:
            return False

        changed = self.cache.mark_suggestion_used(conversation_id, target)
        await self.suggestions.mark_used(target)
        return changed

    async def accept_suggestion(
        self,
        conversation_id: str,
        suggestion_id: str,
        content: Optional[str] = None,
    ) -> Optional[Message]:
        """Send the suggestion (or an edited version of it) and mark it used."""
        suggestions = self.cache.suggestions_for(conversation_id) or []
        suggestion = next((s for s in suggestions if s.id == suggestion_id), None)
        if suggestion is None:
            return None

        await self.mark_suggestion_used(conversation_id, suggestion_id)
        return await self.send_message(conversation_id, content or suggestion.content)

    async def update_message_status(self, message_id: str, status: MessageStatus) -> bool:
        if not await self.messages.update_status(message_id, status):
            return False
        self.cache.update_message_status(message_id, status)
        return True

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status_display(self) -> Dict[str, Any]:
        return {
            "host_id": self.host_id,
            "degraded": self.signal.degraded,
            "slow": self.fetcher.timed_out,
            "load_error": self.load_error,
            "subscriptions": self.subscriptions.get_status_display(),
            "monitor": self.monitor.get_status_display(),
            "cache_version": self.cache.version,
        }
