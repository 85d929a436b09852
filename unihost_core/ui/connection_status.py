# =============================================================================
# unihost_core/ui/connection_status.py
# Connection banner: scheduled pings, backoff and manual reconnect
# =============================================================================
"""
ConnectionBanner is the user-facing side of connection health.

It probes on its own schedule (every minute while healthy, backing off
exponentially up to 10 minutes while failing) through the same probe
primitive the health monitor uses, and writes the shared DegradedSignal
rather than keeping its own flag.
"""

from __future__ import annotations
import time
from typing import Any, Callable, Dict, Optional

import streamlit as st

from unihost_core.logging import get_logger
from unihost_core.sync.signals import DegradedSignal

logger = get_logger(__name__)


class ConnectionBanner:
    """
    Args:
        probe: Blocking reachability check (runs the gateway probe)
        reconnect: Blocking manual reconnect (runs SyncContext.reconnect)
        signal: Shared degraded signal
        base_interval: Seconds between pings while healthy
        max_interval: Backoff cap while failing
    """

    def __init__(
        self,
        probe: Callable[[], bool],
        reconnect: Callable[[], bool],
        signal: DegradedSignal,
        base_interval: float = 60.0,
        max_interval: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._probe = probe
        self._reconnect = reconnect
        self.signal = signal
        self.base_interval = base_interval
        self.max_interval = max_interval
        self._clock = clock

        self.interval = base_interval
        self.next_ping_at = clock()
        self.reconnect_attempts = 0
        self.busy = False

    @property
    def visible(self) -> bool:
        return self.signal.degraded

    def ping(self) -> bool:
        """Probe now and reschedule."""
        self.busy = True
        try:
            ok = bool(self._probe())
        except Exception as e:
            logger.error(f"Error pinging Supabase: {e}")
            ok = False
        finally:
            self.busy = False

        if ok:
            self.signal.set_restored()
            self.interval = self.base_interval
            self.reconnect_attempts = 0
        else:
            logger.warning("Supabase connection check failed")
            self.signal.set_degraded("Scheduled ping failed")
            self.interval = min(self.interval * 2, self.max_interval)

        self.next_ping_at = self._clock() + self.interval
        return ok

    def maybe_ping(self) -> Optional[bool]:
        """Ping if one is due; None when it is not."""
        if self.busy or self._clock() < self.next_ping_at:
            return None
        return self.ping()

    def reconnect(self) -> bool:
        if self.busy:
            return False
        self.reconnect_attempts += 1
        self.busy = True
        try:
            ok = bool(self._reconnect())
        except Exception as e:
            logger.error(f"Error during reconnection: {e}")
            ok = False
        finally:
            self.busy = False

        if ok:
            self.interval = self.base_interval
        self.next_ping_at = self._clock() + self.interval
        return ok

    @property
    def button_label(self) -> str:
        if self.reconnect_attempts:
            return f"Reconnect ({self.reconnect_attempts})"
        return "Reconnect"

    def get_status_display(self) -> Dict[str, Any]:
        return {
            "visible": self.visible,
            "interval": self.interval,
            "reconnect_attempts": self.reconnect_attempts,
        }


def render_connection_banner(banner: ConnectionBanner, key: str = "reconnect") -> None:
    """Ping if due and show the banner with a Reconnect button when degraded."""
    banner.maybe_ping()
    if not banner.visible:
        return

    col_msg, col_btn = st.columns([5, 1])
    with col_msg:
        st.error("Connection to server lost. Real-time updates are not available.")
    with col_btn:
        if st.button(banner.button_label, key=key, disabled=banner.busy, use_container_width=True):
            with st.spinner("Connecting..."):
                ok = banner.reconnect()
            if ok:
                st.rerun()
            st.warning("Still unable to reach the server.")
