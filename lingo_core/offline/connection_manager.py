# =============================================================================
# lingo_core/offline/connection_manager.py
# Connection Status Tracking
# =============================================================================
"""
ConnectionManager - Tracks online/offline state for the request client.

Features:
- Platform signals (set_online / set_offline) drive the state
- ConnectionChanged events published on every transition
- Optional socket probe and background monitor feeding the same transitions
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
import logging

from lingo_core.offline.events import ConnectionChanged, EventBus

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"         # Initial state, treated as online


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_change: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class ConnectionManager:
    """
    Process-wide connectivity flag.

    Usage:
        manager = ConnectionManager(events)
        manager.set_offline()
        manager.is_offline   # True
        manager.set_online() # publishes ConnectionChanged(online=True)
    """

    def __init__(
        self,
        events: Optional[EventBus] = None,
        initial_online: Optional[bool] = None,
        probe_hosts: Optional[List[Tuple[str, int]]] = None,
        probe_timeout: float = 5.0,
        probe_interval: float = 10.0,
    ):
        self.events = events or EventBus()
        self.probe_hosts = list(probe_hosts or [])
        self.probe_timeout = probe_timeout
        self.probe_interval = probe_interval

        self._state = ConnectionState()
        if initial_online is not None:
            self._state.status = (
                ConnectionStatus.ONLINE if initial_online else ConnectionStatus.OFFLINE
            )
        self._lock = threading.Lock()
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status != ConnectionStatus.OFFLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status == ConnectionStatus.OFFLINE

    def set_online(self) -> bool:
        """Platform 'online' signal. Returns True if the status changed."""
        return self._transition(ConnectionStatus.ONLINE)

    def set_offline(self) -> bool:
        """Platform 'offline' signal. Returns True if the status changed."""
        return self._transition(ConnectionStatus.OFFLINE)

    def _transition(self, new_status: ConnectionStatus) -> bool:
        with self._lock:
            old_status = self._state.status
            now = datetime.now()

            if new_status == ConnectionStatus.ONLINE:
                self._state.last_online = now
                self._state.consecutive_failures = 0
                self._state.error_message = None
            else:
                self._state.consecutive_failures += 1

            if old_status == new_status:
                return False

            self._state.status = new_status
            self._state.last_change = now

        logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
        self.events.publish(ConnectionChanged(
            online=new_status == ConnectionStatus.ONLINE,
            previous=old_status.value,
            status=new_status.value,
        ))
        return True

    # =========================================================================
    # PROBING
    # =========================================================================

    def _probe(self) -> bool:
        """Try a TCP connection to each probe host."""
        for host, port in self.probe_hosts:
            try:
                with socket.create_connection((host, port), timeout=self.probe_timeout):
                    return True
            except OSError as e:
                self._state.error_message = str(e)
                continue
        return False

    def check_connection(self) -> ConnectionState:
        """
        Probe connectivity and feed the result through the normal transitions.

        Without probe hosts the current state is returned unchanged.
        """
        if not self.probe_hosts:
            return self._state

        if self._probe():
            self.set_online()
        else:
            self.set_offline()
        return self._state

    def start_monitoring(self) -> None:
        """Start background connection probing."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection probing."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
            self._monitor_thread = None
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

            if self._stop_monitoring.wait(timeout=self.probe_interval):
                break

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "last_change": self._state.last_change.isoformat() if self._state.last_change else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
