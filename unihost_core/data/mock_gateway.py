# =============================================================================
# unihost_core/data/mock_gateway.py
# In-Memory Gateway (demo mode and tests)
# =============================================================================
"""
MockGateway - an in-memory stand-in for the Supabase backend.

Behaves like the real gateway where the sync layer cares:
- inserts/updates on watched tables push change payloads to matching
  channels, asynchronously and in order per channel
- unique constraints raise GatewayError with code 23505
- ``reachable = False`` makes the probe fail and every request raise

Select it with ``provider = "mock"`` under [supabase] for a local demo.
"""

from __future__ import annotations
import asyncio
import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from unihost_core.data.gateway import (
    TABLE_CONVERSATIONS,
    TABLE_MESSAGES,
    TABLE_PROPERTIES,
    TABLE_SUGGESTIONS,
    TABLE_USERS,
    BaseGateway,
    ChannelHandle,
    EventCallback,
)
from unihost_core.errors import GatewayError, SubscriptionError
from unihost_core.logging import get_logger

logger = get_logger(__name__)

# Column defaults applied on insert, like the remote schema does
_DEFAULTS = {
    TABLE_USERS: {"is_host": False},
    TABLE_MESSAGES: {"status": "sent"},
    TABLE_SUGGESTIONS: {"is_used": False},
}

# (table, columns) combinations that must be unique
_UNIQUE_KEYS = {
    TABLE_PROPERTIES: ("name", "host_id"),
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_filter(expression: Optional[str]) -> Optional[Tuple[str, str]]:
    # Only "column=eq.value" filters are used by the sync layer
    if not expression:
        return None
    column, _, rest = expression.partition("=")
    op, _, value = rest.partition(".")
    if op != "eq":
        raise ValueError(f"Unsupported filter: {expression}")
    return column, value


class MockChannel(ChannelHandle):
    def __init__(
        self,
        gateway: MockGateway,
        name: str,
        table: str,
        event: str,
        callback: EventCallback,
        filter: Optional[str],
    ):
        super().__init__(name, table)
        self._gateway = gateway
        self.event = event
        self.callback = callback
        self.row_filter = _parse_filter(filter)
        self.active = True

    def matches(self, table: str, event: str, row: Dict[str, Any]) -> bool:
        if not self.active or table != self.table:
            return False
        if self.event not in ("*", event):
            return False
        if self.row_filter:
            column, value = self.row_filter
            return str(row.get(column)) == value
        return True

    async def unsubscribe(self) -> None:
        self.active = False
        self._gateway._forget(self)


class MockGateway(BaseGateway):
    """In-memory gateway with realtime-style push delivery."""

    def __init__(self, latency: float = 0.0):
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            TABLE_USERS: [],
            TABLE_PROPERTIES: [],
            TABLE_CONVERSATIONS: [],
            TABLE_MESSAGES: [],
            TABLE_SUGGESTIONS: [],
        }
        self.channels: List[MockChannel] = []
        self.latency = latency
        self.reachable = True
        self.fail_subscribe = False

        # Call counters, handy when asserting reconnect sequences
        self.probe_calls = 0
        self.subscribe_calls = 0
        self.remove_all_calls = 0

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _roundtrip(self, table: str, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        else:
            await asyncio.sleep(0)
        if not self.reachable:
            raise GatewayError(
                f"{operation} on {table} failed: network unreachable",
                table=table,
                operation=operation,
            )

    def _table(self, table: str) -> List[Dict[str, Any]]:
        if table not in self.tables:
            raise GatewayError(f"Unknown table {table}", table=table, pg_code="42P01")
        return self.tables[table]

    def _find(self, table: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        for row in self.tables.get(table, []):
            if row.get(column) == value:
                return row
        return None

    def _with_details(self, row: Dict[str, Any]) -> Dict[str, Any]:
        joined = dict(row)
        joined["property"] = copy.deepcopy(self._find(TABLE_PROPERTIES, "id", row.get("property_id")))
        joined["guest"] = copy.deepcopy(self._find(TABLE_USERS, "id", row.get("guest_id")))
        joined["last_message"] = [
            copy.deepcopy(m) for m in self.tables[TABLE_MESSAGES]
            if m.get("conversation_id") == row.get("id")
        ]
        return joined

    def _publish(self, table: str, event: str, new: Dict[str, Any], old: Optional[Dict[str, Any]] = None) -> None:
        payload = {
            "data": {
                "type": event,
                "table": table,
                "schema": "public",
                "commit_timestamp": _now_iso(),
                "record": copy.deepcopy(new),
                "old_record": copy.deepcopy(old) if old else {},
            },
            "ids": [],
        }
        loop = asyncio.get_running_loop()
        for channel in list(self.channels):
            if channel.matches(table, event, new):
                # call_soon is FIFO, which keeps per-channel delivery order
                loop.call_soon(channel.callback, copy.deepcopy(payload))

    def _forget(self, channel: MockChannel) -> None:
        if channel in self.channels:
            self.channels.remove(channel)

    # =========================================================================
    # REQUEST / RESPONSE
    # =========================================================================

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
        await self._roundtrip(table, "select")
        rows = [
            row for row in self._table(table)
            if all(row.get(col) == val for col, val in (filters or {}).items())
        ]
        if or_filter:
            rows = [row for row in rows if any(row.get(col) == val for col, val in or_filter)]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=not ascending)
        if limit:
            rows = rows[:limit]

        if table == TABLE_CONVERSATIONS and "property:" in columns:
            return [self._with_details(row) for row in rows]
        return [copy.deepcopy(row) for row in rows]

    async def select_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        await self._roundtrip(table, "insert")
        rows = self._table(table)

        row = {**_DEFAULTS.get(table, {}), **record}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _now_iso())

        if self._find(table, "id", row["id"]) is not None:
            raise GatewayError(
                f"duplicate key value violates unique constraint \"{table}_pkey\"",
                table=table, operation="insert", pg_code="23505",
            )
        unique = _UNIQUE_KEYS.get(table)
        if unique and any(all(r.get(c) == row.get(c) for c in unique) for r in rows):
            raise GatewayError(
                f"duplicate key value violates unique constraint on {unique}",
                table=table, operation="insert", pg_code="23505",
            )

        rows.append(row)
        self._publish(table, "INSERT", row)
        return copy.deepcopy(row)

    async def update(self, table: str, filters: Dict[str, Any], data: Dict[str, Any]) -> bool:
        await self._roundtrip(table, "update")
        for row in self._table(table):
            if all(row.get(col) == val for col, val in filters.items()):
                old = dict(row)
                row.update(data)
                self._publish(table, "UPDATE", row, old)
        return True

    async def probe(self) -> bool:
        self.probe_calls += 1
        await asyncio.sleep(0)
        return self.reachable

    # =========================================================================
    # REALTIME
    # =========================================================================

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
        self.subscribe_calls += 1
        await asyncio.sleep(0)
        if self.fail_subscribe or not self.reachable:
            raise SubscriptionError(f"Channel {name} reported CHANNEL_ERROR", channel=name)

        channel = MockChannel(self, name, table, event, callback, filter)
        self.channels.append(channel)
        logger.debug(f"{name} subscription status: SUBSCRIBED")
        return channel

    async def remove_all_channels(self) -> None:
        self.remove_all_calls += 1
        for channel in list(self.channels):
            channel.active = False
        self.channels.clear()

    # =========================================================================
    # TEST / DEMO HELPERS
    # =========================================================================

    def active_channel_names(self) -> List[str]:
        return [c.name for c in self.channels if c.active]

    def seed(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row without a round trip or push event."""
        row = {**_DEFAULTS.get(table, {}), **record}
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _now_iso())
        self._table(table).append(row)
        return copy.deepcopy(row)
