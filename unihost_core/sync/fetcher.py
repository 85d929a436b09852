# =============================================================================
# unihost_core/sync/fetcher.py
# Timeout-Guarded Fetcher
# =============================================================================
"""
Runs an async data operation against a deadline and always produces a
definite outcome: SUCCEEDED, FAILED or TIMED_OUT.

Whichever settles first (the operation or the deadline) decides. On timeout
the operation keeps running detached; its late result is discarded and
never reaches the caller, so nothing downstream is applied twice.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set, Union

from unihost_core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FETCH_TIMEOUT = 15.0

Operation = Union[Awaitable[Any], Callable[[], Awaitable[Any]]]


class FetchStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class FetchOutcome:
    status: FetchStatus
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.SUCCEEDED

    @property
    def timed_out(self) -> bool:
        return self.status is FetchStatus.TIMED_OUT


class TimeoutGuardedFetcher:
    """
    Usage:
        fetcher = TimeoutGuardedFetcher()
        outcome = await fetcher.fetch(lambda: service.list_by_host(host_id), name="conversations")
        if outcome.ok:
            cache.set_conversations(outcome.value)
        elif fetcher.timed_out:
            show_slow_warning()

    ``timed_out`` is shared by every caller of this fetcher: set by any
    timeout, cleared by the next success.
    """

    def __init__(self, default_timeout: float = DEFAULT_FETCH_TIMEOUT):
        if default_timeout <= 0:
            raise ValueError("default_timeout must be positive")
        self.default_timeout = default_timeout
        self.timed_out = False
        self._detached: Set[asyncio.Future] = set()

    @property
    def detached_count(self) -> int:
        return len(self._detached)

    async def fetch(
        self,
        operation: Operation,
        *,
        timeout: Optional[float] = None,
        name: str = "fetch",
    ) -> FetchOutcome:
        """
        Run ``operation`` (a coroutine or a zero-arg coroutine function).

        Raises:
            ValueError: if ``timeout`` is not positive
        """
        timeout = self.default_timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        try:
            task = asyncio.ensure_future(operation() if callable(operation) else operation)
        except Exception as e:
            logger.error(f"{name} failed to start: {e}")
            return FetchOutcome(FetchStatus.FAILED, error=e)

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            self.timed_out = True
            logger.warning(f"{name} timed out after {timeout}s")
            self._detached.add(task)
            task.add_done_callback(self._discard_late(name))
            return FetchOutcome(FetchStatus.TIMED_OUT)

        if task.cancelled():
            logger.warning(f"{name} was cancelled")
            return FetchOutcome(FetchStatus.FAILED)

        error = task.exception()
        if error is not None:
            logger.error(f"{name} failed: {error}")
            return FetchOutcome(FetchStatus.FAILED, error=error)

        self.timed_out = False
        return FetchOutcome(FetchStatus.SUCCEEDED, value=task.result())

    def _discard_late(self, name: str) -> Callable[[asyncio.Future], None]:
        def callback(task: asyncio.Future) -> None:
            self._detached.discard(task)
            if task.cancelled():
                logger.debug(f"Late {name} cancelled")
            elif task.exception() is not None:
                logger.debug(f"Discarding late {name} failure: {task.exception()}")
            else:
                logger.debug(f"Discarding late {name} result")

        return callback

    async def close(self) -> None:
        """Cancel operations still running after their deadline."""
        pending = list(self._detached)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._detached.clear()
