# =============================================================================
# unihost_core/sync/runtime.py
# Background event loop for Streamlit
# =============================================================================
"""
LoopRunner - owns one asyncio event loop on a daemon thread.

Streamlit reruns the page script on its own thread for every interaction,
so long-lived async work (push channels, the health monitor) lives on this
loop instead. The script thread submits coroutines and blocks on the result.
"""

from __future__ import annotations
import asyncio
import concurrent.futures
import threading
from typing import Any, Coroutine, Optional

from unihost_core.logging import get_logger

logger = get_logger(__name__)


class LoopRunner:
    """
    Usage:
        runner = LoopRunner()
        runner.start()
        conversations = runner.run(service.list_by_host(host_id), timeout=20)
        runner.stop()
    """

    def __init__(self, name: str = "UniHostSync"):
        self.name = name
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name=self.name)
        self._thread.start()
        self._ready.wait(timeout=5)
        logger.debug(f"{self.name} event loop started")

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        try:
            self.loop.run_forever()
        finally:
            pending = [t for t in asyncio.all_tasks(self.loop) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self.loop.run_until_complete(self.loop.shutdown_asyncgens())
            self.loop.close()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future:
        """Schedule ``coro`` on the loop without waiting."""
        if not self.is_running:
            coro.close()
            raise RuntimeError(f"{self.name} event loop is not running")
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the loop and block until it finishes."""
        future = self.submit(coro)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def request_stop(self) -> None:
        """Ask the loop to stop without waiting; safe from the loop thread itself."""
        if not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.loop.stop)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.is_running:
            return
        self.request_stop()
        self._thread.join(timeout=timeout)
        logger.debug(f"{self.name} event loop stopped")
