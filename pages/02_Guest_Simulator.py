# =============================================================================
# 02_Guest_Simulator.py - Play the guest side of a conversation
# =============================================================================
from __future__ import annotations

import streamlit as st

from unihost_core.errors import ConfigurationError, handle_error
from unihost_core.logging import setup_logging
from unihost_core.models import NewConversationData, Platform
from unihost_core.state.session import (
    get_connection_banner,
    get_sync_context,
    init_state,
    notify_foreground,
    run_async,
)
from unihost_core.ui.components import PLATFORM_ICONS, header, render_messages
from unihost_core.ui.connection_status import render_connection_banner

st.set_page_config(page_title="Guest Simulator - UniHost Messaging", page_icon="🧳", layout="wide")

setup_logging()
init_state()

try:
    context = get_sync_context()
except ConfigurationError as e:
    handle_error(e, show_user_message=True)
    st.stop()

notify_foreground(context)

header("Guest Simulator", "Message the host as if you booked through a platform", icon="🧳")
render_connection_banner(get_connection_banner(context), key="guest_reconnect")

conversation_id = st.session_state.get("guest_conversation_id")
conversation = context.cache.get_conversation(conversation_id) if conversation_id else None

# =============================================================================
# START A CONVERSATION
# =============================================================================
if conversation is None:
    platform = st.radio(
        "Booking platform",
        [p.value for p in Platform],
        horizontal=True,
        format_func=lambda p: f"{PLATFORM_ICONS.get(p, '')} {p}",
    )
    with st.form("guest_start"):
        guest_name = st.text_input("Your name")
        property_name = st.text_input("Property you booked")
        first_message = st.text_area("Your message to the host")
        start = st.form_submit_button("Send", type="primary")

    if start:
        if not (guest_name.strip() and property_name.strip() and first_message.strip()):
            st.warning("Please fill in every field.")
        else:
            created = run_async(context.create_conversation(NewConversationData(
                guest_name=guest_name.strip(),
                property_name=property_name.strip(),
                platform=Platform.parse(platform),
                initial_message=first_message.strip(),
            )))
            if created is None:
                st.error("Could not reach the host right now. Please try again.")
            else:
                st.session_state["guest_conversation_id"] = created.id
                st.session_state["guest_user_id"] = created.guest_id
                st.rerun()
    st.stop()

# =============================================================================
# CHAT
# =============================================================================
st.subheader(f"{PLATFORM_ICONS.get(conversation.platform.value, '')} {conversation.property_name}")
run_async(context.load_conversation(conversation.id))


@st.fragment(run_every="3s")
def guest_thread():
    render_messages(context.cache.messages_for(conversation.id), host_view=False)


guest_thread()


text = st.chat_input("Write to your host")
if text:
    message = run_async(context.send_message(
        conversation.id,
        text,
        sender_id=st.session_state.get("guest_user_id") or conversation.guest_id,
        is_from_host=False,
    ))
    if message is None:
        st.error("Message could not be sent.")
    st.rerun()

if st.button("Leave conversation"):
    st.session_state["guest_conversation_id"] = None
    st.rerun()
