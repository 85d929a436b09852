# =============================================================================
# unihost_core/state/session.py
# Streamlit session state: defaults and the per-session sync context
# =============================================================================

from __future__ import annotations
from typing import Any, Coroutine, Optional

import streamlit as st
from streamlit import runtime
from streamlit.runtime.scriptrunner import get_script_run_ctx

from unihost_core.config import AppConfig, load_config
from unihost_core.logging import get_logger
from unihost_core.sync.context import SyncContext
from unihost_core.sync.runtime import LoopRunner
from unihost_core.sync.watchdog import SessionWatchdog
from unihost_core.ui.connection_status import ConnectionBanner

logger = get_logger(__name__)

# Central registry for session-state keys used across the app.
SESSION_DEFAULTS = {
    "selected_platform": "All",
    "active_conversation_id": None,
    "ai_tone": "positive",
    "suggestion_draft": None,
    "tone_variations": {},
    "reconnect_attempts": 0,
    "guest_conversation_id": None,
    "guest_user_id": None,
    # Sync runtime, created lazily
    "_sync_runner": None,
    "_sync_context": None,
    "_connection_banner": None,
    "_session_watchdog": None,
}

# Upper bound for a blocking call from the script thread
RUN_TIMEOUT = 60.0


def init_state():
    """Initialize session state with defaults."""
    for k, v in SESSION_DEFAULTS.items():
        if k not in st.session_state:
            st.session_state[k] = v


def get_runner() -> LoopRunner:
    runner: Optional[LoopRunner] = st.session_state.get("_sync_runner")
    if runner is None or not runner.is_running:
        runner = LoopRunner()
        runner.start()
        st.session_state["_sync_runner"] = runner
    return runner


def run_async(coro: Coroutine[Any, Any, Any], timeout: float = RUN_TIMEOUT) -> Any:
    """Run a coroutine on the session's sync loop and wait for the result."""
    return get_runner().run(coro, timeout=timeout)


def get_sync_context(config: Optional[AppConfig] = None) -> SyncContext:
    """
    Return this session's SyncContext, building and starting it on first use.

    Raises:
        ConfigurationError: when the configuration is unusable
    """
    init_state()
    context: Optional[SyncContext] = st.session_state.get("_sync_context")
    if context is not None and not context.closed:
        return context

    config = config or load_config()
    runner = get_runner()
    context = runner.run(SyncContext.create(config), timeout=RUN_TIMEOUT)
    st.session_state["_sync_context"] = context

    # Startup timeouts: every initial-load attempt plus the backoff between them
    settings = config.sync
    attempts = settings.initial_load_retries + 1
    backoff = sum(settings.backoff_base * 2 ** n for n in range(settings.initial_load_retries))
    start_timeout = attempts * settings.fetch_timeout + backoff + 3 * settings.subscribe_timeout + 10
    runner.run(context.start(), timeout=start_timeout)
    logger.info(f"Sync context started for host {context.host_id}")

    watchdog = watch_session(context, runner)
    if watchdog is not None:
        st.session_state["_session_watchdog"] = watchdog
    return context


def close_sync_context() -> None:
    """Tear down the session's context and stop its event loop."""
    context: Optional[SyncContext] = st.session_state.get("_sync_context")
    runner: Optional[LoopRunner] = st.session_state.get("_sync_runner")

    if context is not None and runner is not None and runner.is_running:
        try:
            runner.run(context.close(), timeout=RUN_TIMEOUT)
        except Exception as e:
            logger.error(f"Error closing sync context: {e}")
    if runner is not None:
        runner.stop()

    for key in ("_sync_context", "_sync_runner", "_connection_banner", "_session_watchdog"):
        st.session_state[key] = None


def notify_foreground(context: SyncContext) -> None:
    """
    A script run means the user is looking at the app again; let the
    monitor decide whether a health check is due.
    """
    get_runner().loop.call_soon_threadsafe(context.monitor.notify_foreground)


def get_connection_banner(context: SyncContext) -> ConnectionBanner:
    banner: Optional[ConnectionBanner] = st.session_state.get("_connection_banner")
    if banner is None:
        banner = ConnectionBanner(
            probe=lambda: run_async(context.gateway.probe()),
            reconnect=lambda: run_async(context.reconnect()),
            signal=context.signal,
            base_interval=context.settings.banner_ping_interval,
            max_interval=context.settings.banner_backoff_cap,
        )
        st.session_state["_connection_banner"] = banner
    return banner


# =============================================================================
# SESSION END
# =============================================================================

def session_is_active(session_id: str) -> bool:
    """Whether the Streamlit runtime still knows the browser session."""
    if not runtime.exists():
        return True
    return runtime.get_instance().is_active_session(session_id)


async def shutdown_session(context: SyncContext, runner: LoopRunner) -> None:
    """Close the context, then stop the loop it runs on."""
    try:
        await context.close()
    finally:
        runner.request_stop()


def watch_session(context: SyncContext, runner: LoopRunner) -> Optional[SessionWatchdog]:
    """
    Start a watchdog that tears the context down when its tab goes away.

    Returns None outside a script run (no session to watch).
    """
    ctx = get_script_run_ctx()
    if ctx is None:
        return None

    session_id = ctx.session_id
    watchdog = SessionWatchdog(
        lambda: session_is_active(session_id),
        on_ended=lambda: shutdown_session(context, runner),
        interval=context.settings.session_check_interval,
    )
    runner.loop.call_soon_threadsafe(watchdog.start)
    logger.debug(f"Watching session {session_id}")
    return watchdog
