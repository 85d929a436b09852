# =============================================================================
# Welcome.py - UniHost Messaging entry point
# =============================================================================
from __future__ import annotations
import streamlit as st

from unihost_core.config import load_config
from unihost_core.errors import ConfigurationError, handle_error
from unihost_core.logging import setup_logging, get_logger
from unihost_core.state.session import (
    close_sync_context,
    get_connection_banner,
    get_sync_context,
    init_state,
    run_async,
)
from unihost_core.ui.components import header
from unihost_core.ui.connection_status import render_connection_banner

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="UniHost Messaging",
    page_icon="💬",
    layout="wide",
)

setup_logging()
logger = get_logger("Welcome")
init_state()

# ============================================================================
# STARTUP
# ============================================================================
try:
    config = load_config()
except ConfigurationError as e:
    # Fatal: nothing works without the datastore
    handle_error(e, show_user_message=True)
    st.info("Add your Supabase credentials to `.streamlit/secrets.toml` and reload the page.")
    st.stop()

with st.spinner("Connecting to the message store..."):
    context = get_sync_context(config)

header("UniHost Messaging", "All your Airbnb and Booking.com guest conversations in one inbox")
render_connection_banner(get_connection_banner(context))

if context.load_error:
    st.error(context.load_error)
    if st.button("Retry", type="primary"):
        with st.spinner("Retrying..."):
            run_async(context.initial_load())
        st.rerun()

# ============================================================================
# OVERVIEW
# ============================================================================
status = context.get_status_display()
conversations = context.cache.conversations

col1, col2, col3 = st.columns(3)
col1.metric("Conversations", len(conversations))
col2.metric("Realtime", status["subscriptions"]["state"].title())
col3.metric("Connection", "Degraded" if status["degraded"] else "Healthy")

if status["slow"]:
    st.warning("The server is responding slowly. Some data may be out of date.")

st.divider()
st.page_link("pages/01_Host_Inbox.py", label="Open the host inbox", icon="📥")
st.page_link("pages/02_Guest_Simulator.py", label="Simulate a guest", icon="🧳")

with st.expander("Connection details"):
    st.json(status)
    if st.button("Disconnect"):
        close_sync_context()
        st.rerun()
