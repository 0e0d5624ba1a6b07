# =============================================================================
# lingo_core/offline/events.py
# Typed Event Subscription
# =============================================================================
"""
EventBus - Explicit publish/subscribe for connectivity, queue and worker events.

Handlers subscribe to an event class and receive instances of that class (or
of its subclasses). A failing handler is logged and does not stop dispatch.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Type
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """Base class for all offline-core events."""
    timestamp: datetime = field(default_factory=datetime.now, compare=False)


@dataclass(frozen=True)
class ConnectionChanged(Event):
    online: bool = True
    previous: Optional[str] = None
    status: str = "online"


@dataclass(frozen=True)
class RequestQueued(Event):
    request_id: str = ""
    endpoint: str = ""
    method: str = ""
    queue_length: int = 0


@dataclass(frozen=True)
class QueueProcessed(Event):
    succeeded: int = 0
    failed: int = 0
    remaining: int = 0


@dataclass(frozen=True)
class UpdateAvailable(Event):
    version: str = ""


@dataclass(frozen=True)
class ProgressSynced(Event):
    endpoint: str = ""


@dataclass(frozen=True)
class WorkerStateChanged(Event):
    version: str = ""
    state: str = ""


Handler = Callable[[Event], None]


class EventBus:
    """
    Thread-safe publish/subscribe dispatcher.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(RequestQueued, lambda e: print(e.endpoint))
        bus.publish(RequestQueued(endpoint="/progress", method="POST"))
        unsubscribe()
    """

    def __init__(self):
        self._handlers: Dict[Type[Event], List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], handler: Handler) -> Callable[[], None]:
        """
        Register a handler for an event type.

        Returns:
            Callable that removes the subscription
        """
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: Type[Event], handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> int:
        """
        Deliver an event to every matching handler.

        Returns:
            Number of handlers that ran without raising
        """
        with self._lock:
            targets = [
                handler
                for event_type, handlers in self._handlers.items()
                if isinstance(event, event_type)
                for handler in handlers
            ]

        delivered = 0
        for handler in targets:
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Error in {type(event).__name__} handler: {e}", exc_info=True)
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
