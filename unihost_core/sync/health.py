# =============================================================================
# unihost_core/sync/health.py
# Connection Health Monitor
# =============================================================================
"""
ConnectionHealthMonitor - detects silent connection death and recovers
without user action.

Probe triggers:
- a fixed interval (default 2 minutes)
- ``notify_network_online()``: after a short stabilization delay
- ``notify_foreground()``: only if the last good probe is older than
  twice the interval

Outcomes:
- success: failure counter back to 0, last_ok_at updated, restored signal
- failure: counter + 1 (capped at the threshold); at the threshold a hard
  reset runs (drop all gateway channels, pause, probe again). If that probe
  succeeds the subscription manager is told to rebuild; otherwise the
  monitor stays degraded and tries again on the next trigger. The rebuild
  stays pending until a later probe succeeds and it goes through.
"""

from __future__ import annotations
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from unihost_core.data import BaseGateway
from unihost_core.logging import get_logger
from unihost_core.sync.signals import DegradedSignal

logger = get_logger(__name__)


class ConnectionHealthMonitor:
    """
    Usage:
        monitor = ConnectionHealthMonitor(gateway, signal, on_rebuild=manager.rebuild)
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        gateway: BaseGateway,
        signal: DegradedSignal,
        *,
        interval: float = 120.0,
        failure_threshold: int = 3,
        reset_pause: float = 1.0,
        online_delay: float = 3.0,
        on_rebuild: Optional[Callable[[], Awaitable[Any]]] = None,
        on_connection_lost: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.signal = signal
        self.interval = interval
        self.failure_threshold = failure_threshold
        self.reset_pause = reset_pause
        self.online_delay = online_delay
        self._on_rebuild = on_rebuild
        self._on_connection_lost = on_connection_lost
        self._clock = clock

        self.consecutive_failures = 0
        self.last_ok_at: Optional[float] = None
        self.enabled = False
        self.hard_resets = 0
        self.rebuild_pending = False

        self._checking = False
        self._task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Start the interval loop on the running event loop."""
        if self.enabled:
            return
        self.enabled = True
        if self.last_ok_at is None:
            self.last_ok_at = self._clock()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="health-monitor")
        logger.info(f"Connection monitoring started (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop the loop and cancel any delayed checks."""
        self.enabled = False
        tasks = [t for t in (self._task, *self._pending) if t is not None]
        self._task = None
        self._pending.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Connection monitoring stopped")

    async def _run(self) -> None:
        while self.enabled:
            await asyncio.sleep(self.interval)
            try:
                await self.check()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def notify_network_online(self) -> None:
        """Network became reachable again; check once it has settled."""
        if not self.enabled:
            return
        logger.info("Network came online, verifying connection")
        task = asyncio.get_running_loop().create_task(self._delayed_check(self.online_delay))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def notify_foreground(self) -> bool:
        """App came back to the foreground; returns True if a check was scheduled."""
        if not self.enabled:
            return False
        idle = self._clock() - (self.last_ok_at or 0.0)
        if self.last_ok_at is not None and idle <= 2 * self.interval:
            return False
        logger.info(f"Foregrounded after {idle:.0f}s without a good probe, checking connection")
        task = asyncio.get_running_loop().create_task(self._delayed_check(0))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _delayed_check(self, delay: float) -> None:
        if delay:
            await asyncio.sleep(delay)
        await self.check()

    # =========================================================================
    # PROBING
    # =========================================================================

    async def _probe(self) -> bool:
        try:
            return bool(await self.gateway.probe())
        except Exception as e:
            logger.warning(f"Connection probe raised: {e}")
            return False

    async def check(self) -> Optional[bool]:
        """
        Run one health check.

        Returns:
            The probe result, or None if another check was already running
        """
        if self._checking:
            logger.debug("Health check already in progress, skipping")
            return None

        self._checking = True
        try:
            if await self._probe():
                self._record_success()
                if self.rebuild_pending:
                    await self._rebuild()
                return True
            await self._record_failure()
            return False
        finally:
            self._checking = False

    def _record_success(self) -> None:
        if self.consecutive_failures:
            logger.info("Connection is healthy again")
        self.consecutive_failures = 0
        self.last_ok_at = self._clock()
        self.signal.set_restored()

    async def _record_failure(self) -> None:
        self.consecutive_failures = min(self.consecutive_failures + 1, self.failure_threshold)
        logger.warning(f"Connection check failed (failure #{self.consecutive_failures})")
        self.signal.set_degraded(f"{self.consecutive_failures} consecutive failed probes")

        if self.consecutive_failures >= self.failure_threshold:
            await self._hard_reset()

    async def refresh_connection(self) -> bool:
        """Drop every gateway channel, pause, then probe again."""
        if self._on_connection_lost:
            self._on_connection_lost()
        try:
            await self.gateway.remove_all_channels()
        except Exception as e:
            logger.warning(f"Error removing channels during refresh: {e}")
        await asyncio.sleep(self.reset_pause)
        return await self._probe()

    async def _hard_reset(self) -> None:
        self.hard_resets += 1
        # Channels are gone from here on, whatever the re-probe says
        self.rebuild_pending = True
        logger.warning("Multiple connection failures detected, attempting to refresh connection")

        if not await self.refresh_connection():
            logger.error("Failed to restore connection, will retry on next trigger")
            return

        logger.info("Connection successfully restored")
        self._record_success()
        await self._rebuild()

    async def _rebuild(self) -> None:
        if self._on_rebuild is None:
            self.rebuild_pending = False
            return
        try:
            ok = await self._on_rebuild()
        except Exception as e:
            logger.error(f"Error rebuilding subscriptions: {e}")
            return
        if ok is False:
            logger.warning("Subscription rebuild failed, will retry after the next good probe")
            return
        self.rebuild_pending = False

    def get_status_display(self) -> Dict[str, Any]:
        last_ok_ago = self._clock() - self.last_ok_at if self.last_ok_at is not None else None
        return {
            "enabled": self.enabled,
            "degraded": self.signal.degraded,
            "failures": self.consecutive_failures,
            "last_ok_seconds_ago": round(last_ok_ago, 1) if last_ok_ago is not None else None,
            "hard_resets": self.hard_resets,
        }
