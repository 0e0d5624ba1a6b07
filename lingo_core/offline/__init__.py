# =============================================================================
# lingo_core/offline/__init__.py
# Offline-First Architecture for LingoQuest
# =============================================================================
"""
Offline-First Architecture Module

Keeps LingoQuest usable without a network: mutating API calls made offline are
queued and replayed later, and a cache-first interception layer serves the
app shell and previously fetched resources.

Architecture:
------------
┌──────────────────────────────────────────────────────────────┐
│                       OfflineContext                         │
│              (init / dispose, wires everything)              │
└──────────────────────────────────────────────────────────────┘
          │                    │                     │
          ▼                    ▼                     ▼
 ┌────────────────┐   ┌────────────────┐   ┌──────────────────┐
 │ ConnectionMgr  │──►│   ApiClient    │──►│   OfflineQueue   │
 │ (online flag)  │   │ (retry, queue) │   │ (FIFO, 24h TTL)  │
 └────────────────┘   └────────────────┘   └──────────────────┘
          │                                          │
          └──────────── EventBus ◄──────┐            ▼
                                        │    ┌──────────────┐
 ┌────────────────────┐                 │    │  LocalStore  │
 │ WorkerRegistration │─────────────────┘    │   (SQLite)   │
 │   └─ CacheWorker   │──► CacheStorage      └──────────────┘
 │  (install/activate │   (static + dynamic generations)
 │   fetch/sync)      │
 └────────────────────┘

Usage:
------
from lingo_core.offline import OfflineContext

with OfflineContext() as ctx:
    result = ctx.api.post("/progress/sync", {"xp": 20})
    print(result.queued, ctx.api.queued_count())
"""

from lingo_core.offline.events import (
    EventBus,
    Event,
    ConnectionChanged,
    RequestQueued,
    QueueProcessed,
    UpdateAvailable,
    ProgressSynced,
    WorkerStateChanged,
)

from lingo_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from lingo_core.offline.local_store import (
    KeyValueStore,
    LocalStore,
    MemoryStore,
    StoredTokenProvider,
)

from lingo_core.offline.serialization import (
    QueuedRequest,
    dumps_queue,
    loads_queue,
)

from lingo_core.offline.request_queue import (
    OfflineQueue,
    enqueue,
    purge_expired,
    remove_ids,
)

from lingo_core.offline.cache_storage import (
    Cache,
    CachedResponse,
    CacheStorage,
)

from lingo_core.offline.service_worker import (
    CacheWorker,
    FetchRequest,
    WorkerState,
)

from lingo_core.offline.registration import WorkerRegistration

from lingo_core.offline.context import OfflineContext

__all__ = [
    # Events
    "EventBus",
    "Event",
    "ConnectionChanged",
    "RequestQueued",
    "QueueProcessed",
    "UpdateAvailable",
    "ProgressSynced",
    "WorkerStateChanged",
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Storage
    "KeyValueStore",
    "LocalStore",
    "MemoryStore",
    "StoredTokenProvider",
    # Offline Queue
    "QueuedRequest",
    "dumps_queue",
    "loads_queue",
    "OfflineQueue",
    "enqueue",
    "purge_expired",
    "remove_ids",
    # Cache Worker
    "Cache",
    "CachedResponse",
    "CacheStorage",
    "CacheWorker",
    "FetchRequest",
    "WorkerState",
    "WorkerRegistration",
    # Lifecycle
    "OfflineContext",
]
