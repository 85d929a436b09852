# =============================================================================
# unihost_core/sync/signals.py
# Shared "connection degraded" signal
# =============================================================================

from __future__ import annotations
import threading
from datetime import datetime
from typing import Callable, List, Optional

from unihost_core.logging import get_logger
from unihost_core.models import utcnow

logger = get_logger(__name__)

SignalListener = Callable[[bool], None]


class DegradedSignal:
    """
    Single source of truth for "connectivity is degraded".

    Both the health monitor and the connection banner write here instead of
    keeping their own flags. Listeners are called with the new value on
    transitions only, so repeated writes of the same state are silent.
    """

    def __init__(self):
        self._degraded = False
        self._lock = threading.Lock()
        self._listeners: List[SignalListener] = []
        self.reason: Optional[str] = None
        self.changed_at: Optional[datetime] = None

    @property
    def degraded(self) -> bool:
        return self._degraded

    def set_degraded(self, reason: str = "") -> bool:
        """Returns True if this call changed the state."""
        return self._set(True, reason)

    def set_restored(self) -> bool:
        """Returns True if this call changed the state."""
        return self._set(False, None)

    def _set(self, degraded: bool, reason: Optional[str]) -> bool:
        with self._lock:
            if degraded == self._degraded:
                return False
            self._degraded = degraded
            self.reason = reason
            self.changed_at = utcnow()
            listeners = list(self._listeners)

        if degraded:
            logger.warning(f"Connection degraded: {reason}")
        else:
            logger.info("Connection restored")

        for listener in listeners:
            try:
                listener(degraded)
            except Exception as e:
                logger.error(f"Error in degraded-signal listener: {e}")
        return True

    def add_listener(self, listener: SignalListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove
