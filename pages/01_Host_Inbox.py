# =============================================================================
# 01_Host_Inbox.py - Host inbox with AI reply suggestions
# =============================================================================
"""
Host Inbox

Layout:
1. Conversation list with a platform filter
2. Message thread of the selected conversation
3. AI suggestion panel: accept, edit, discard, regenerate, tone variations
4. New-conversation form
"""
from __future__ import annotations
from datetime import date

import streamlit as st

from unihost_core.ai import TONES
from unihost_core.errors import ConfigurationError, ErrorContext, handle_error
from unihost_core.logging import setup_logging
from unihost_core.models import NewConversationData, Platform
from unihost_core.state.session import (
    get_connection_banner,
    get_sync_context,
    init_state,
    notify_foreground,
    run_async,
)
from unihost_core.ui.components import (
    PLATFORM_FILTERS,
    conversation_label,
    conversations_frame,
    filter_by_platform,
    header,
    render_messages,
    render_suggestion,
)
from unihost_core.ui.connection_status import render_connection_banner

st.set_page_config(page_title="Inbox - UniHost Messaging", page_icon="📥", layout="wide")

setup_logging()
init_state()

try:
    context = get_sync_context()
except ConfigurationError as e:
    handle_error(e, show_user_message=True)
    st.stop()

notify_foreground(context)

header("Host Inbox", "Reply to guests across platforms, with AI suggestions")
render_connection_banner(get_connection_banner(context), key="inbox_reconnect")

if context.load_error:
    st.error(context.load_error)
    if st.button("Retry loading"):
        run_async(context.initial_load())
        st.rerun()

# =============================================================================
# NEW CONVERSATION
# =============================================================================
with st.expander("➕ New conversation"):
    with st.form("new_conversation", clear_on_submit=True):
        c1, c2 = st.columns(2)
        guest_name = c1.text_input("Guest name")
        guest_email = c2.text_input("Guest email (optional)")
        property_name = c1.text_input("Property name")
        property_location = c2.text_input("Location (optional)")
        platform = c1.selectbox("Platform", [p.value for p in Platform])
        dates = c2.date_input("Stay dates (optional)", value=(), min_value=date.today())
        initial_message = st.text_area("Initial guest message (optional)")
        submitted = st.form_submit_button("Create", type="primary")

    if submitted:
        if not guest_name.strip() or not property_name.strip():
            st.warning("Guest name and property name are required.")
        else:
            check_in = dates[0].isoformat() if len(dates) > 0 else None
            check_out = dates[1].isoformat() if len(dates) > 1 else None
            data = NewConversationData(
                guest_name=guest_name.strip(),
                guest_email=guest_email.strip() or None,
                property_name=property_name.strip(),
                property_location=property_location.strip() or None,
                platform=Platform.parse(platform),
                check_in_date=check_in,
                check_out_date=check_out,
                initial_message=initial_message.strip() or None,
            )
            conversation = run_async(context.create_conversation(data))
            if conversation is None:
                st.error("Could not create the conversation. Please try again.")
            else:
                st.session_state["active_conversation_id"] = conversation.id
                st.rerun()

# =============================================================================
# CONVERSATION LIST + THREAD
# =============================================================================
col_list, col_thread = st.columns([2, 3])


with col_list:
    st.radio(
        "Platform",
        PLATFORM_FILTERS,
        horizontal=True,
        key="selected_platform",
    )


@st.fragment(run_every="3s")
def conversation_list():
    conversations = filter_by_platform(context.cache.conversations, st.session_state["selected_platform"])
    if not conversations:
        st.caption("No conversations yet.")
        return

    st.dataframe(
        conversations_frame(conversations).drop(columns=["id"]),
        hide_index=True,
        use_container_width=True,
    )
    ids = [c.id for c in conversations]
    labels = {c.id: conversation_label(c) for c in conversations}
    current = st.session_state.get("active_conversation_id")
    selected = st.selectbox(
        "Open conversation",
        ids,
        index=ids.index(current) if current in ids else 0,
        format_func=labels.get,
    )
    if selected != current:
        st.session_state["active_conversation_id"] = selected
        st.session_state["suggestion_draft"] = None
        st.session_state["tone_variations"] = {}
        st.rerun()


with col_list:
    conversation_list()


@st.fragment(run_every="3s")
def thread(conversation_id: str):
    conversation = context.cache.get_conversation(conversation_id)
    if conversation is None:
        st.caption("Select a conversation.")
        return

    st.subheader(conversation_label(conversation))
    if conversation.check_in_date:
        st.caption(f"Stay: {conversation.check_in_date} → {conversation.check_out_date or '?'}")
    render_messages(context.cache.messages_for(conversation_id), host_view=True)
    if context.fetcher.timed_out:
        st.warning("Loading is taking longer than usual.")


def suggestion_panel(conversation_id: str):
    st.markdown("#### 🤖 Suggested reply")
    suggestion = context.cache.current_suggestion(conversation_id)
    render_suggestion(suggestion, generating=context.suggestions.is_generating(conversation_id))

    tone = st.radio("Tone", TONES, horizontal=True, key="ai_tone")
    variations = st.session_state.get("tone_variations") or {}

    b1, b2, b3, b4 = st.columns(4)
    if suggestion is not None:
        if b1.button("Use", type="primary"):
            run_async(context.accept_suggestion(conversation_id, suggestion.id))
            st.rerun()
        if b2.button("Edit"):
            st.session_state["suggestion_draft"] = suggestion.content
            st.rerun()
        if b3.button("Discard"):
            run_async(context.mark_suggestion_used(conversation_id, suggestion.id))
            st.rerun()
    if b4.button("Regenerate"):
        with st.spinner("Generating..."):
            run_async(context.request_suggestion(conversation_id))
        st.rerun()

    if suggestion is not None and st.button(f"Rewrite in a {tone} tone"):
        with st.spinner("Generating variations..."):
            variations = run_async(context.suggestion_variations(conversation_id, suggestion.content))
        st.session_state["tone_variations"] = variations
    if variations.get(tone):
        st.info(variations[tone])
        if st.button("Use this version"):
            st.session_state["suggestion_draft"] = variations[tone]
            st.rerun()


with col_thread:
    active_id = st.session_state.get("active_conversation_id")
    if active_id is None or context.cache.get_conversation(active_id) is None:
        st.info("Select a conversation to start replying.")
    else:
        with ErrorContext("Loading conversation", show_user_message=True):
            run_async(context.load_conversation(active_id))

        thread(active_id)

        draft = st.session_state.get("suggestion_draft")
        with st.form("reply", clear_on_submit=True):
            text = st.text_area("Your reply", value=draft or "", height=100)
            sent = st.form_submit_button("Send", type="primary")
        if sent and text.strip():
            current = context.cache.current_suggestion(active_id)
            if draft and current is not None:
                run_async(context.accept_suggestion(active_id, current.id, content=text.strip()))
            else:
                with st.spinner("Sending..."):
                    message = run_async(context.send_message(active_id, text.strip()))
                if message is None:
                    st.error("Message could not be sent.")
            st.session_state["suggestion_draft"] = None
            st.rerun()

        st.divider()
        suggestion_panel(active_id)
