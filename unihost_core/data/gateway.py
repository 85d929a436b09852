# =============================================================================
# unihost_core/data/gateway.py
# Remote Data Gateway Interface
# =============================================================================
"""
Abstract interface over the remote relational store.

Two implementations exist:
    SupabaseGateway - the production backend (supabase async client)
    MockGateway     - in-memory store with ordered push delivery, used for
                      the local demo mode and for tests

Request/response calls raise ``GatewayError`` on failure. The entity
services are the only callers that catch it; they map failures to safe
defaults so nothing above them branches on exception types.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

# Push callbacks are invoked synchronously by the transport and must not block
EventCallback = Callable[[Dict[str, Any]], None]

TABLE_USERS = "users"
TABLE_PROPERTIES = "properties"
TABLE_CONVERSATIONS = "conversations"
TABLE_MESSAGES = "messages"
TABLE_SUGGESTIONS = "ai_suggestions"

# Joined representation used by the conversation list
CONVERSATION_DETAILS_SELECT = (
    "*, property:property_id(*), guest:guest_id(*), last_message:messages(*)"
)


class ChannelHandle(ABC):
    """A live push subscription on one table/filter."""

    def __init__(self, name: str, table: str):
        self.name = name
        self.table = table

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Tear the channel down; safe to call more than once."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, table={self.table!r})"


class BaseGateway(ABC):
    """Abstract base class for remote datastore access"""

    @abstractmethod
    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        or_filter: Optional[List[Tuple[str, Any]]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows matching equality filters.

        Args:
            table: Table name
            columns: Select expression (may embed joined relations)
            filters: column -> value equality filters, all must match
            or_filter: (column, value) pairs, any may match
            order_by: Column to order by
            ascending: Sort order
            limit: Maximum number of rows

        Returns:
            Ordered list of rows, possibly empty
        """

    @abstractmethod
    async def select_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Fetch a single row; ``None`` when nothing matches (not an error)."""

    @abstractmethod
    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return the stored record."""

    @abstractmethod
    async def update(self, table: str, filters: Dict[str, Any], data: Dict[str, Any]) -> bool:
        """Update rows matching ``filters``; True when the call succeeded."""

    @abstractmethod
    async def probe(self) -> bool:
        """Lightweight reachability check. Never raises, has no side effects."""

    @abstractmethod
    async def subscribe(
        self,
        name: str,
        *,
        table: str,
        event: str,
        callback: EventCallback,
        filter: Optional[str] = None,
        timeout: float = 10.0,
    ) -> ChannelHandle:
        """
        Open a push channel and wait until it reports SUBSCRIBED.

        Args:
            name: Channel name
            table: Table to watch
            event: "INSERT", "UPDATE", "DELETE" or "*"
            callback: Receives each raw change payload, in delivery order
            filter: Row filter such as "host_id=eq.<id>"
            timeout: Seconds to wait for the SUBSCRIBED status

        Raises:
            SubscriptionError: on an error status or when the wait times out
        """

    @abstractmethod
    async def remove_all_channels(self) -> None:
        """Tear down every channel held at the gateway level."""

    async def close(self) -> None:
        """Release client resources."""
        await self.remove_all_channels()
