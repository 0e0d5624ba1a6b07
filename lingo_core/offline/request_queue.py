# =============================================================================
# lingo_core/offline/request_queue.py
# Persistent FIFO Queue of Deferred Requests
# =============================================================================
"""
OfflineQueue - FIFO queue of mutating requests issued while offline.

The queue logic is a handful of pure functions over lists (enqueue,
purge_expired, remove_ids); OfflineQueue wraps them with a lock and writes the
whole queue back to the store after every mutation.
"""

from __future__ import annotations
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple
import logging

import pandas as pd

from lingo_core.errors import LingoQuestError, PersistenceError, SerializationError
from lingo_core.offline.local_store import KeyValueStore
from lingo_core.offline.serialization import QueuedRequest, dumps_queue, loads_queue

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY = timedelta(hours=24)


# =============================================================================
# PURE QUEUE OPERATIONS
# =============================================================================

def enqueue(queue: List[QueuedRequest], request: QueuedRequest) -> List[QueuedRequest]:
    """Return a new queue with request appended at the tail."""
    return [*queue, request]


def purge_expired(
    queue: List[QueuedRequest],
    now: datetime,
    horizon: timedelta = DEFAULT_EXPIRY,
) -> Tuple[List[QueuedRequest], List[QueuedRequest]]:
    """
    Split a queue into (kept, expired), preserving order.

    An entry expires once it is older than the horizon.
    """
    cutoff = now - horizon
    kept = [r for r in queue if r.enqueued_at > cutoff]
    expired = [r for r in queue if r.enqueued_at <= cutoff]
    return kept, expired


def remove_ids(queue: List[QueuedRequest], ids: Iterable[str]) -> List[QueuedRequest]:
    """Return a new queue without the given request ids, preserving order."""
    done = set(ids)
    return [r for r in queue if r.id not in done]


# =============================================================================
# PERSISTENT QUEUE
# =============================================================================

class OfflineQueue:
    """
    Durable FIFO queue backed by a KeyValueStore.

    Usage:
        queue = OfflineQueue(store)
        queue.load()
        queue.append(QueuedRequest(endpoint="/progress", method="POST"))
        for entry in queue.entries():
            ...
        queue.remove([entry.id])
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = "api_offline_queue",
        expiry: timedelta = DEFAULT_EXPIRY,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.key = key
        self.expiry = expiry
        self._clock = clock
        self._queue: List[QueuedRequest] = []
        self._lock = threading.RLock()
        self.last_error: Optional[LingoQuestError] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def entries(self) -> List[QueuedRequest]:
        """Snapshot of the queue in FIFO order."""
        with self._lock:
            return list(self._queue)

    def load(self) -> List[QueuedRequest]:
        """
        Read the persisted queue, dropping expired entries.

        A corrupt or unreadable queue is logged and replaced by an empty
        in-memory queue; the error is kept on ``last_error``.

        Returns:
            Entries that were dropped as expired
        """
        with self._lock:
            try:
                payload = self.store.get(self.key)
                loaded = loads_queue(payload) if payload else []
            except (SerializationError, PersistenceError) as e:
                logger.error(f"Failed to load offline queue: {e}")
                self.last_error = e
                self._queue = []
                return []

            self.last_error = None
            self._queue, expired = purge_expired(loaded, self._clock(), self.expiry)

            if expired:
                logger.info(f"Dropped {len(expired)} expired queued requests")
                self.save()

            logger.debug(f"Loaded {len(self._queue)} queued requests")
            return expired

    def save(self) -> bool:
        """
        Write the full queue back to the store.

        Returns:
            True if persisted; False if the write failed (queue kept in memory)
        """
        with self._lock:
            try:
                payload = dumps_queue(self._queue)
            except SerializationError as e:
                logger.error(f"Failed to encode offline queue: {e}")
                self.last_error = e
                return False
            return self._write(payload)

    def _write(self, payload: str) -> bool:
        try:
            self.store.set(self.key, payload)
            return True
        except PersistenceError as e:
            logger.error(f"Failed to save offline queue: {e}")
            self.last_error = e
            return False

    def append(self, request: QueuedRequest) -> int:
        """
        Add a request at the tail and persist. Returns the new length.

        Raises:
            SerializationError: the request could not be stored and read back;
                the queue is left unchanged
        """
        with self._lock:
            candidate = enqueue(self._queue, request)
            payload = dumps_queue(candidate)
            self._queue = candidate
            self._write(payload)
            return len(self._queue)

    def remove(self, ids: Iterable[str]) -> int:
        """Remove requests by id and persist. Returns the number removed."""
        with self._lock:
            before = len(self._queue)
            self._queue = remove_ids(self._queue, ids)
            removed = before - len(self._queue)
            if removed:
                self.save()
            return removed

    def clear(self) -> None:
        with self._lock:
            self._queue = []
            self.save()

    def to_dataframe(self) -> pd.DataFrame:
        """Queue contents as a DataFrame for display."""
        columns = ["id", "method", "endpoint", "enqueued_at", "age_minutes"]
        now = self._clock()
        rows = [
            {
                "id": r.id,
                "method": r.method,
                "endpoint": r.endpoint,
                "enqueued_at": r.enqueued_at,
                "age_minutes": round((now - r.enqueued_at).total_seconds() / 60, 1),
            }
            for r in self.entries()
        ]
        return pd.DataFrame(rows, columns=columns)
