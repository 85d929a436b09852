# =============================================================================
# unihost_core/sync/subscriptions.py
# Change Subscription Manager
# =============================================================================
"""
SubscriptionManager - owns the push channels for one host and routes their
change events into the entity cache.

State machine for the channel set:

    UNSUBSCRIBED -> SUBSCRIBING -> SUBSCRIBED
    SUBSCRIBED   -> UNSUBSCRIBED   (teardown() or mark_connection_lost())

``create_subscriptions()`` always tears down whatever it holds before
subscribing again, and calls are serialized, so there is never more than
one channel set.

Each channel has its own queue and pump task. Gateway callbacks only
enqueue; the pump handles one event at a time in delivery order. A failing
event is logged and the pump moves on.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from unihost_core.data import (
    BaseGateway,
    ChannelHandle,
    TABLE_CONVERSATIONS,
    TABLE_MESSAGES,
    TABLE_SUGGESTIONS,
)
from unihost_core.errors import EventDecodeError, UniHostError
from unihost_core.logging import get_logger
from unihost_core.services import ConversationService
from unihost_core.state.entity_cache import EntityCache
from unihost_core.sync.events import (
    ChangeEvent,
    ConversationInserted,
    ConversationUpdated,
    IgnoredChange,
    MessageInserted,
    MessageStatusChanged,
    SuggestionInserted,
    decode_change_event,
)

logger = get_logger(__name__)


class SubscriptionState(Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


@dataclass(frozen=True)
class ChannelSpec:
    name: str
    table: str
    event: str
    filter: Optional[str] = None


def channel_specs(host_id: str) -> List[ChannelSpec]:
    """Channels watched for one host."""
    return [
        ChannelSpec(f"user-conversations-{host_id}", TABLE_CONVERSATIONS, "*", f"host_id=eq.{host_id}"),
        ChannelSpec(f"user-messages-{host_id}", TABLE_MESSAGES, "INSERT"),
        ChannelSpec(f"user-suggestions-{host_id}", TABLE_SUGGESTIONS, "INSERT"),
    ]


class ChannelPump:
    """Queue plus consumer task for one channel."""

    def __init__(self, spec: ChannelSpec, handler: Callable[[ChannelSpec, Any], Awaitable[None]]):
        self.spec = spec
        self.handle: Optional[ChannelHandle] = None
        self._handler = handler
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"pump-{self.spec.name}")

    def enqueue(self, payload: Any) -> None:
        self._queue.put_nowait(payload)

    async def _run(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self._handler(self.spec, payload)
            except Exception as e:
                logger.error(f"Error handling event on {self.spec.name}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        await self._queue.join()

    async def stop(self) -> None:
        if self.handle is not None:
            await self.handle.unsubscribe()
            self.handle = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


class SubscriptionManager:
    """
    Usage:
        manager = SubscriptionManager(gateway, cache, conversations, host_id)
        await manager.create_subscriptions()
        ...
        await manager.teardown()
    """

    def __init__(
        self,
        gateway: BaseGateway,
        cache: EntityCache,
        conversations: ConversationService,
        host_id: str,
        subscribe_timeout: float = 10.0,
    ):
        self.gateway = gateway
        self.cache = cache
        self.conversations = conversations
        self.host_id = host_id
        self.subscribe_timeout = subscribe_timeout

        self.state = SubscriptionState.UNSUBSCRIBED
        self.events_handled = 0
        self.events_dropped = 0
        self._pumps: Dict[str, ChannelPump] = {}
        self._lock = asyncio.Lock()

    @property
    def active_channels(self) -> List[str]:
        return list(self._pumps)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def create_subscriptions(self) -> bool:
        """
        Tear down any held channels, then subscribe to every channel.

        Returns:
            True when all channels reached SUBSCRIBED. On any failure the
            partial set is torn down again and the state is UNSUBSCRIBED.
        """
        async with self._lock:
            await self._teardown_locked()
            self.state = SubscriptionState.SUBSCRIBING
            logger.info(f"Setting up realtime subscriptions for host {self.host_id}")

            try:
                for spec in channel_specs(self.host_id):
                    pump = ChannelPump(spec, self._dispatch)
                    pump.start()
                    self._pumps[spec.name] = pump
                    pump.handle = await self.gateway.subscribe(
                        spec.name,
                        table=spec.table,
                        event=spec.event,
                        callback=pump.enqueue,
                        filter=spec.filter,
                        timeout=self.subscribe_timeout,
                    )
            except UniHostError as e:
                logger.error(f"Subscription setup failed: {e}")
                await self._teardown_locked()
                return False

            self.state = SubscriptionState.SUBSCRIBED
            logger.info(f"Subscribed to {len(self._pumps)} channels")
            return True

    async def rebuild(self) -> bool:
        """Recreate every channel from scratch (after a hard reset)."""
        return await self.create_subscriptions()

    async def teardown(self) -> None:
        async with self._lock:
            await self._teardown_locked()

    async def _teardown_locked(self) -> None:
        pumps = list(self._pumps.values())
        self._pumps.clear()
        for pump in pumps:
            try:
                await pump.stop()
            except Exception as e:
                logger.warning(f"Error tearing down {pump.spec.name}: {e}")
        if pumps:
            logger.info(f"Tore down {len(pumps)} channels")
        self.state = SubscriptionState.UNSUBSCRIBED

    def mark_connection_lost(self) -> None:
        """Channels are known dead; they are released on the next rebuild."""
        if self.state is not SubscriptionState.UNSUBSCRIBED:
            logger.warning("Realtime channels marked as lost")
        self.state = SubscriptionState.UNSUBSCRIBED

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        for pump in list(self._pumps.values()):
            await pump.drain()

    # =========================================================================
    # EVENT ROUTING
    # =========================================================================

    async def _dispatch(self, spec: ChannelSpec, payload: Any) -> None:
        try:
            event = decode_change_event(payload, table=spec.table)
        except EventDecodeError as e:
            self.events_dropped += 1
            logger.warning(f"Dropping malformed event on {spec.name}: {e}")
            return

        await self.handle_event(event)
        self.events_handled += 1

    async def handle_event(self, event: ChangeEvent) -> None:
        if isinstance(event, ConversationInserted):
            await self._on_conversation_inserted(event)
        elif isinstance(event, ConversationUpdated):
            if not self.cache.update_conversation(event.conversation_id, **event.changes):
                logger.debug(f"Update for uncached conversation {event.conversation_id} ignored")
        elif isinstance(event, MessageInserted):
            self.cache.append_message(event.message)
        elif isinstance(event, MessageStatusChanged):
            self.cache.update_message_status(event.message_id, event.status)
        elif isinstance(event, SuggestionInserted):
            self.cache.append_suggestion(event.suggestion)
        elif isinstance(event, IgnoredChange):
            logger.debug(f"Ignoring {event.change_type} on {event.table}")

    async def _on_conversation_inserted(self, event: ConversationInserted) -> None:
        # The push row lacks the joined property/guest/last message
        conversation = await self.conversations.get_conversation_details(event.conversation_id)
        if conversation is None:
            logger.warning(
                f"Could not fetch new conversation {event.conversation_id}; "
                "it will appear on the next full refresh"
            )
            return
        if conversation.host_id != self.host_id:
            return
        self.cache.upsert_conversation(conversation)

    def get_status_display(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "channels": self.active_channels,
            "events_handled": self.events_handled,
            "events_dropped": self.events_dropped,
        }
