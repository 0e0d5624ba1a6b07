# =============================================================================
# lingo_core/offline/registration.py
# Worker Registration (active / waiting versions)
# =============================================================================
"""
WorkerRegistration - Holds the active cache worker and at most one waiting one.

A newly registered worker is installed first. With no active worker it is
activated straight away; otherwise it waits, an UpdateAvailable event is
published, and it is promoted when it asks to skip waiting.
"""

from __future__ import annotations
import threading
from typing import Optional
import logging

from lingo_core.offline.cache_storage import CachedResponse
from lingo_core.offline.events import EventBus, UpdateAvailable
from lingo_core.offline.service_worker import CacheWorker, FetchRequest, WorkerState

logger = logging.getLogger(__name__)


class WorkerRegistration:
    """
    Usage:
        registration = WorkerRegistration(events)
        registration.register(CacheWorker(config_v1, storage))
        registration.register(CacheWorker(config_v2, storage))  # upgrade
        registration.fetch(FetchRequest(url=...))
    """

    def __init__(self, events: Optional[EventBus] = None):
        self.events = events or EventBus()
        self.active: Optional[CacheWorker] = None
        self.waiting: Optional[CacheWorker] = None
        self._lock = threading.RLock()

    def register(self, worker: CacheWorker) -> CacheWorker:
        """
        Install a worker and activate it or park it as waiting.

        Returns:
            The registered worker
        """
        with self._lock:
            worker.registration = self
            worker.install()

            if self.active is None:
                self._promote(worker)
                return worker

            if self.waiting is not None and self.waiting is not worker:
                self.waiting.state = WorkerState.REDUNDANT
            self.waiting = worker
            logger.info(f"New version available: {worker.version}")
            self.events.publish(UpdateAvailable(version=worker.version))

            if worker.skip_waiting_requested:
                self.skip_waiting()
            return worker

    def skip_waiting(self) -> bool:
        """Promote the waiting worker. Returns True if one was promoted."""
        with self._lock:
            if self.waiting is None:
                return False
            worker, self.waiting = self.waiting, None
            self._promote(worker)
            return True

    def _promote(self, worker: CacheWorker) -> None:
        previous = self.active
        worker.activate()
        self.active = worker
        if previous is not None and previous is not worker:
            previous.state = WorkerState.REDUNDANT
            logger.info(f"Worker {previous.version} replaced by {worker.version}")

    def fetch(self, request: FetchRequest) -> CachedResponse:
        """Route a request through the active worker."""
        worker = self.active
        if worker is None:
            raise RuntimeError("No cache worker registered")
        return worker.handle_fetch(request)

    def sync(self, tag: str) -> bool:
        return self.active.handle_sync(tag) if self.active else False

    def post_message(self, message: dict) -> Optional[dict]:
        """Deliver a page message to the waiting worker if any, else the active one."""
        worker = self.waiting or self.active
        return worker.handle_message(message) if worker else None
