"""
Streamlit entry point for the LingoQuest offline status console.

Run with:
    streamlit run app.py
"""
from __future__ import annotations

import streamlit as st

from lingo_core.config import load_config
from lingo_core.errors import handle_error
from lingo_core.logging import setup_logging
from lingo_core.offline.context import OfflineContext
from lingo_core.ui.offline_status import (
    NotificationCollector,
    render_notifications,
    render_offline_status,
)

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="LingoQuest - Offline Sync",
    page_icon="🌍",
    layout="wide",
)


@st.cache_resource
def get_offline_context() -> OfflineContext:
    """One context per server process, shared across reruns."""
    setup_logging()
    return OfflineContext(load_config()).init()


@st.cache_resource
def get_notification_collector(_ctx: OfflineContext) -> NotificationCollector:
    return NotificationCollector(_ctx.events)


ctx = get_offline_context()
collector = get_notification_collector(ctx)

st.title("🌍 LingoQuest")
st.caption("Offline request queue and sync status")

col_on, col_off = st.columns(2)
with col_on:
    if st.button("Go online", use_container_width=True):
        ctx.connection.set_online()
with col_off:
    if st.button("Go offline", use_container_width=True):
        ctx.connection.set_offline()

if ctx.registration.active is None:
    if st.button("Install offline cache"):
        try:
            with st.spinner("Caching app shell..."):
                ctx.register_worker()
        except Exception as e:
            handle_error(e, user_message="Could not install the offline cache")

render_offline_status(ctx)
render_notifications(collector)
