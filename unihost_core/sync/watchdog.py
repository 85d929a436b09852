# =============================================================================
# unihost_core/sync/watchdog.py
# Session Watchdog - tears down sync work once its browser session is gone
# =============================================================================
"""
Streamlit gives no callback when a browser tab closes. Each session's sync
context lives on its own background loop, so a watchdog on that loop polls
whether the session is still known to the Streamlit runtime and runs the
teardown hook once it is not.
"""

from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Optional

from unihost_core.logging import get_logger

logger = get_logger(__name__)


class SessionWatchdog:
    """
    Usage:
        watchdog = SessionWatchdog(lambda: is_active(session_id), on_ended=shutdown, interval=30)
        watchdog.start()
    """

    def __init__(
        self,
        is_active: Callable[[], bool],
        on_ended: Callable[[], Awaitable[None]],
        interval: float = 30.0,
    ):
        self._is_active = is_active
        self._on_ended = on_ended
        self.interval = interval
        self.ended = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling on the running event loop."""
        if self.is_running or self.ended:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="session-watchdog")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        while not self.ended:
            await asyncio.sleep(self.interval)
            await self.check()

    async def check(self) -> bool:
        """
        Returns:
            True while the session is alive; False once the teardown ran
        """
        if self.ended:
            return False
        try:
            if self._is_active():
                return True
        except Exception as e:
            # Unknown state; try again on the next tick
            logger.warning(f"Session check failed: {e}")
            return True

        self.ended = True
        logger.info("Browser session ended, tearing down its sync context")
        try:
            await self._on_ended()
        except Exception as e:
            logger.error(f"Error tearing down ended session: {e}")
        return False
