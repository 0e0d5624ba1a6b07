"""
Offline Status UI Components
Connection badge, pending request table and notification toasts
"""
from __future__ import annotations
import threading
from collections import deque
from typing import Deque, List, Optional, Tuple

import streamlit as st

from lingo_core.errors import handle_error
from lingo_core.offline.context import OfflineContext
from lingo_core.offline.events import (
    Event,
    EventBus,
    ProgressSynced,
    QueueProcessed,
    RequestQueued,
    UpdateAvailable,
)


def format_notification(event: Event) -> Optional[Tuple[str, str]]:
    """Map an event to (message, icon); None for events the user never sees."""
    if isinstance(event, RequestQueued):
        return (
            f"You're offline. {event.method} {event.endpoint} will be sent when you reconnect "
            f"({event.queue_length} pending).",
            "📥",
        )
    if isinstance(event, QueueProcessed):
        if event.failed:
            return (
                f"Synced {event.succeeded} request(s); {event.failed} will be retried later.",
                "⚠️",
            )
        return f"Synced {event.succeeded} request(s).", "✅"
    if isinstance(event, UpdateAvailable):
        return f"A new version of LingoQuest ({event.version}) is available. Reload to update.", "🔄"
    if isinstance(event, ProgressSynced):
        return "Progress synced.", "✅"
    return None


class NotificationCollector:
    """
    Buffers user-facing events published from any thread until the next rerun.

    Usage:
        collector = NotificationCollector(ctx.events)
        render_notifications(collector)
    """

    EVENT_TYPES = (RequestQueued, QueueProcessed, UpdateAvailable, ProgressSynced)

    def __init__(self, events: EventBus, max_items: int = 20):
        self._pending: Deque[Tuple[str, str]] = deque(maxlen=max_items)
        self._lock = threading.Lock()
        self._unsubscribers = [events.subscribe(t, self._collect) for t in self.EVENT_TYPES]

    def _collect(self, event: Event) -> None:
        notification = format_notification(event)
        if notification is not None:
            with self._lock:
                self._pending.append(notification)

    def drain(self) -> List[Tuple[str, str]]:
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []


def render_notifications(collector: NotificationCollector) -> None:
    """Show buffered notifications as toasts."""
    for message, icon in collector.drain():
        st.toast(message, icon=icon)


def render_offline_status(ctx: OfflineContext, key_prefix: str = "offline") -> None:
    """
    Render connection and queue status in the sidebar.

    Args:
        ctx: Initialized OfflineContext
        key_prefix: Widget key prefix
    """
    connection = ctx.connection.get_status_display()
    sync = ctx.api.get_status_display()

    with st.sidebar:
        st.markdown("---")
        st.markdown("**Connection**")

        if connection["is_online"]:
            st.success("🟢 Online")
        else:
            st.warning("🔴 Offline - changes are queued")

        col1, col2 = st.columns(2)
        with col1:
            st.metric("Pending", sync["pending_count"])
        with col2:
            st.metric("Synced", sync["total_synced"])

        if sync["last_sync"]:
            st.caption(f"Last sync: {sync['last_sync']}")

        registration = ctx.registration
        if registration is not None and registration.active is not None:
            st.caption(f"Cache: {registration.active.version}")
            if registration.waiting is not None:
                if st.button("⬆️ Update now", key=f"{key_prefix}_update_btn", use_container_width=True):
                    registration.post_message({"type": "SKIP_WAITING"})

        if sync["pending_count"]:
            with st.expander("Queued requests", expanded=False):
                st.dataframe(ctx.queue.to_dataframe(), use_container_width=True, hide_index=True)

        col_sync, col_clear = st.columns(2)
        with col_sync:
            sync_btn = st.button(
                "🔄 Sync now",
                key=f"{key_prefix}_sync_btn",
                disabled=not connection["is_online"] or not sync["pending_count"],
                use_container_width=True,
            )
        with col_clear:
            clear_btn = st.button(
                "🗑️ Clear",
                key=f"{key_prefix}_clear_btn",
                disabled=not sync["pending_count"],
                use_container_width=True,
            )

    if sync_btn:
        try:
            with st.spinner("Syncing queued requests..."):
                ctx.api.process_queue()
        except Exception as e:
            handle_error(e, user_message="Sync failed")

    if clear_btn:
        ctx.api.clear_queue()
        st.info("Offline queue cleared")
