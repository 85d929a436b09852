# =============================================================================
# unihost_core/ui/components.py
# Shared Streamlit rendering helpers
# =============================================================================

from __future__ import annotations
from typing import Iterable, List, Optional

import pandas as pd
import streamlit as st

from unihost_core.models import AiSuggestion, Conversation, Message

PLATFORM_FILTERS = ("All", "Airbnb", "Booking.com")

PLATFORM_ICONS = {
    "Airbnb": "🏠",
    "Booking.com": "🏨",
}


def header(title: str, subtitle: str, icon: str = "💬"):
    st.markdown(f"## {icon} {title}")
    st.caption(subtitle)


def filter_by_platform(conversations: Iterable[Conversation], platform: str) -> List[Conversation]:
    if platform == "All":
        return list(conversations)
    return [c for c in conversations if c.platform.value == platform]


def conversations_frame(conversations: Iterable[Conversation]) -> pd.DataFrame:
    """Tabular view of the conversation list, most recent first."""
    rows = [
        {
            "id": c.id,
            "guest": c.guest_name,
            "property": c.property_name,
            "platform": f"{PLATFORM_ICONS.get(c.platform.value, '')} {c.platform.value}".strip(),
            "last_message": c.last_message.content if c.last_message else "",
            "last_activity": c.last_message_at,
        }
        for c in conversations
    ]
    columns = ["id", "guest", "property", "platform", "last_message", "last_activity"]
    df = pd.DataFrame(rows, columns=columns)
    if df.empty:
        return df
    df["last_activity"] = pd.to_datetime(df["last_activity"], utc=True)
    return df.sort_values("last_activity", ascending=False).reset_index(drop=True)


def conversation_label(conversation: Conversation) -> str:
    icon = PLATFORM_ICONS.get(conversation.platform.value, "")
    return f"{icon} {conversation.guest_name} · {conversation.property_name}"


def render_messages(messages: Optional[List[Message]], host_view: bool = True) -> None:
    """Render a thread; ``None`` means not loaded yet, ``[]`` means empty."""
    if messages is None:
        st.info("Loading messages...")
        return
    if not messages:
        st.caption("No messages yet.")
        return

    for message in messages:
        own = message.is_from_host == host_view
        role = "assistant" if message.is_from_host else "user"
        with st.chat_message(role):
            st.write(message.content)
            status = f" · {message.status.value}" if own else ""
            st.caption(f"{message.created_at:%Y-%m-%d %H:%M}{status}")


def render_suggestion(suggestion: Optional[AiSuggestion], generating: bool = False) -> None:
    if generating:
        st.info("Generating a reply suggestion...")
    elif suggestion is None:
        st.caption("No suggestion available.")
    else:
        st.success(suggestion.content)
