# =============================================================================
# lingo_core/offline/context.py
# Explicit Lifecycle for the Offline Request Stack
# =============================================================================
"""
OfflineContext - Owns the event bus, connectivity flag, queue, API client and
cache worker registration.

Nothing is created at import time; call init() (or use the context as a
``with`` block) and dispose() when done.
"""

from __future__ import annotations
import time
from pathlib import Path
from typing import Callable, Optional, TYPE_CHECKING
import logging

import requests

from lingo_core.config import OfflineConfig
from lingo_core.offline.cache_storage import CacheStorage
from lingo_core.offline.connection_manager import ConnectionManager
from lingo_core.offline.events import ConnectionChanged, EventBus
from lingo_core.offline.local_store import (
    KeyValueStore,
    LocalStore,
    MemoryStore,
    StoredTokenProvider,
)
from lingo_core.offline.registration import WorkerRegistration
from lingo_core.offline.request_queue import OfflineQueue
from lingo_core.offline.service_worker import CacheWorker

if TYPE_CHECKING:
    from lingo_core.api.client import ApiClient

logger = logging.getLogger(__name__)


class OfflineContext:
    """
    Usage:
        with OfflineContext(config) as ctx:
            ctx.connection.set_offline()
            ctx.api.post("/progress", {"xp": 10})   # queued
            ctx.connection.set_online()             # replayed
    """

    def __init__(
        self,
        config: Optional[OfflineConfig] = None,
        store: Optional[KeyValueStore] = None,
        session: Optional[requests.Session] = None,
        events: Optional[EventBus] = None,
        initial_online: Optional[bool] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = (config or OfflineConfig()).validate()
        self._store = store
        self._session = session
        self._initial_online = initial_online
        self._sleep = sleep

        self.events = events or EventBus()
        self.store: Optional[KeyValueStore] = None
        self.connection: Optional[ConnectionManager] = None
        self.queue: Optional[OfflineQueue] = None
        self.api: Optional[ApiClient] = None
        self.caches: Optional[CacheStorage] = None
        self.registration: Optional[WorkerRegistration] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _build_store(self) -> KeyValueStore:
        if self._store is not None:
            return self._store
        if self.config.database_path:
            return LocalStore(Path(self.config.database_path))
        return MemoryStore()

    def init(self) -> OfflineContext:
        """Build and wire the components. Safe to call twice."""
        if self._initialized:
            return self

        self.store = self._build_store()
        self.connection = ConnectionManager(
            events=self.events,
            initial_online=self._initial_online,
            probe_hosts=self.config.probe_hosts,
            probe_timeout=self.config.probe_timeout,
            probe_interval=self.config.probe_interval,
        )
        self.queue = OfflineQueue(
            self.store,
            key=self.config.queue_storage_key,
            expiry=self.config.queue_expiry,
        )
        self.queue.load()

        # Lazy import to avoid circular dependencies
        from lingo_core.api.client import ApiClient

        self.api = ApiClient(
            self.config,
            self.connection,
            self.queue,
            token_provider=StoredTokenProvider(self.store, self.config.auth_token_key),
            session=self._session,
            events=self.events,
            sleep=self._sleep,
        )

        self.caches = CacheStorage(Path(self.config.cache_dir) if self.config.cache_dir else None)
        self.registration = WorkerRegistration(self.events)

        self._unsubscribe = self.events.subscribe(ConnectionChanged, self._on_connection_change)

        if self.config.monitor_connection:
            self.connection.start_monitoring()

        self._initialized = True
        logger.info(f"OfflineContext initialized ({len(self.queue)} queued requests)")
        return self

    def register_worker(self) -> CacheWorker:
        """
        Register the cache worker for the configured cache version.

        The first worker activates at once. A newer version replaces the
        active one when its install succeeded, otherwise it waits for SKIP_WAITING.
        """
        if not self._initialized:
            raise RuntimeError("OfflineContext.init() must be called first")
        worker = CacheWorker(
            self.config,
            self.caches,
            session=self.api.session,
            events=self.events,
        )
        return self.registration.register(worker)

    def _on_connection_change(self, event: ConnectionChanged) -> None:
        if event.online:
            logger.info("Connection restored, replaying offline queue")
            self.api.process_queue()

    def dispose(self) -> None:
        """Unwire and release resources. Safe to call twice."""
        if not self._initialized:
            return

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self.connection.stop_monitoring()
        self.queue.save()
        self.api.close()
        self.store.close()

        self._initialized = False
        logger.info("OfflineContext disposed")

    def __enter__(self) -> OfflineContext:
        return self.init()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.dispose()
        return False
