# =============================================================================
# unihost_core/data/supabase_gateway.py
# Supabase Gateway for UniHost Messaging
# Handles request/response queries and realtime channels
# =============================================================================

from __future__ import annotations
import asyncio
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import AsyncClient, AsyncClientOptions, acreate_client

from unihost_core.config import CLIENT_INFO_HEADER, GatewayConfig
from unihost_core.data.gateway import (
    TABLE_USERS,
    BaseGateway,
    ChannelHandle,
    EventCallback,
)
from unihost_core.errors import GatewayError, SubscriptionError
from unihost_core.logging import get_logger

logger = get_logger(__name__)

_FAILED_STATES = ("CHANNEL_ERROR", "TIMED_OUT", "CLOSED")


class SupabaseChannel(ChannelHandle):
    """Wraps a realtime channel so callers never touch the client directly."""

    def __init__(self, name: str, table: str, channel):
        super().__init__(name, table)
        self._channel = channel
        self._closed = False

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._channel.unsubscribe()
        except Exception as e:
            # Channel may already be gone after remove_all_channels()
            logger.debug(f"Unsubscribe of {self.name} failed: {e}")


class SupabaseGateway(BaseGateway):
    """
    Gateway backed by the supabase async client.

    Usage:
        gateway = await SupabaseGateway.connect(config)
        rows = await gateway.select("messages", filters={"conversation_id": cid})
    """

    def __init__(self, client: AsyncClient, schema: str = "public"):
        self.client = client
        self.schema = schema

    @classmethod
    async def connect(cls, config: GatewayConfig) -> SupabaseGateway:
        """Create the async client from configuration."""
        options = AsyncClientOptions(
            schema=config.schema,
            headers={"X-Client-Info": CLIENT_INFO_HEADER},
        )
        client = await acreate_client(config.url, config.key, options=options)
        logger.info("Supabase client initialized")
        return cls(client, schema=config.schema)

    # =========================================================================
    # REQUEST / RESPONSE
    # =========================================================================

    async def _execute(self, query, table: str, operation: str):
        try:
            return await query.execute()
        except APIError as e:
            raise GatewayError(
                f"{operation} on {table} failed: {e.message}",
                table=table,
                operation=operation,
                pg_code=e.code,
            ) from e
        except Exception as e:
            raise GatewayError(
                f"{operation} on {table} failed: {e}",
                table=table,
                operation=operation,
            ) from e

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
        query = self.client.table(table).select(columns)

        for col, val in (filters or {}).items():
            query = query.eq(col, val)

        if or_filter:
            query = query.or_(",".join(f"{col}.eq.{val}" for col, val in or_filter))

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        response = await self._execute(query, table, "select")
        return response.data or []

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
        query = self.client.table(table).insert(record)
        response = await self._execute(query, table, "insert")
        if not response.data:
            raise GatewayError(f"insert on {table} returned no row", table=table, operation="insert")
        return response.data[0]

    async def update(self, table: str, filters: Dict[str, Any], data: Dict[str, Any]) -> bool:
        query = self.client.table(table).update(data)
        for col, val in filters.items():
            query = query.eq(col, val)
        await self._execute(query, table, "update")
        return True

    async def probe(self) -> bool:
        try:
            await self.client.rpc("healthcheck", {}).execute()
            return True
        except Exception as e:
            logger.debug(f"healthcheck RPC failed, falling back to count query: {e}")

        try:
            await self.client.table(TABLE_USERS).select("id", count="exact", head=True).execute()
            return True
        except Exception as e:
            logger.warning(f"Connection check failed: {e}")
            return False

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
        realtime = self.client.realtime
        if not getattr(realtime, "is_connected", True):
            await realtime.connect()

        channel = self.client.channel(name)
        channel.on_postgres_changes(
            event,
            callback=callback,
            table=table,
            schema=self.schema,
            filter=filter,
        )

        status_future = asyncio.get_running_loop().create_future()

        def on_status(status, err=None):
            state = getattr(status, "value", status)
            logger.debug(f"{name} subscription status: {state}")
            if status_future.done():
                return
            if state == "SUBSCRIBED":
                status_future.set_result(True)
            elif state in _FAILED_STATES:
                status_future.set_exception(
                    SubscriptionError(f"Channel {name} reported {state}: {err}", channel=name)
                )

        await channel.subscribe(on_status)
        handle = SupabaseChannel(name, table, channel)

        try:
            await asyncio.wait_for(status_future, timeout)
        except asyncio.TimeoutError:
            await handle.unsubscribe()
            raise SubscriptionError(
                f"Channel {name} not subscribed after {timeout}s", channel=name
            )
        except SubscriptionError:
            await handle.unsubscribe()
            raise

        return handle

    async def remove_all_channels(self) -> None:
        await self.client.remove_all_channels()
        logger.info("All realtime channels removed")

    async def close(self) -> None:
        try:
            await self.remove_all_channels()
        except Exception as e:
            logger.debug(f"Error removing channels on close: {e}")
        # The postgrest client keeps an httpx session open
        session = getattr(self.client.postgrest, "session", None)
        if session is not None:
            try:
                await session.aclose()
            except Exception as e:
                logger.debug(f"Error closing postgrest session: {e}")
