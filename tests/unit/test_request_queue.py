# =============================================================================
# tests/unit/test_request_queue.py
# Unit Tests for the Offline Request Queue
# =============================================================================

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pandas as pd
import pytest

from lingo_core.errors import PersistenceError, SerializationError
from lingo_core.offline.local_store import MemoryStore
from lingo_core.offline.request_queue import (
    OfflineQueue,
    enqueue,
    purge_expired,
    remove_ids,
)
from lingo_core.offline.serialization import QueuedRequest, dumps_queue, loads_queue


def _request(endpoint: str, enqueued_at: datetime = None) -> QueuedRequest:
    return QueuedRequest(
        endpoint=endpoint,
        method="POST",
        body="{}",
        enqueued_at=enqueued_at or datetime.now(),
    )


class TestPureQueueOperations:
    """Queue logic over plain lists"""

    def test_enqueue_appends_without_mutating(self):
        a, b = _request("/a"), _request("/b")
        queue = [a]

        result = enqueue(queue, b)

        assert result == [a, b]
        assert queue == [a]

    def test_purge_expired_splits_by_horizon(self):
        now = datetime(2025, 6, 11, 12, 0)
        fresh = _request("/fresh", now - timedelta(hours=1))
        stale = _request("/stale", now - timedelta(hours=25))

        kept, expired = purge_expired([stale, fresh], now, timedelta(hours=24))

        assert kept == [fresh]
        assert expired == [stale]

    def test_remove_ids_preserves_order(self):
        a, b, c = _request("/a"), _request("/b"), _request("/c")

        assert remove_ids([a, b, c], [a.id, c.id]) == [b]


class TestOfflineQueueLoad:
    """Loading the persisted queue"""

    def test_load_missing_key_is_empty(self, memory_store):
        queue = OfflineQueue(memory_store)

        assert queue.load() == []
        assert len(queue) == 0
        assert queue.last_error is None

    def test_load_drops_entries_older_than_24_hours(self, memory_store, hours_ago):
        """A 25-hour-old entry is dropped on load and the store rewritten"""
        old = _request("/old", hours_ago(25))
        recent = _request("/recent", hours_ago(2))
        memory_store.set("api_offline_queue", dumps_queue([old, recent]))

        queue = OfflineQueue(memory_store)
        expired = queue.load()

        assert [r.endpoint for r in expired] == ["/old"]
        assert [r.endpoint for r in queue.entries()] == ["/recent"]
        assert [r.endpoint for r in loads_queue(memory_store.get("api_offline_queue"))] == ["/recent"]

    def test_custom_expiry_horizon(self, memory_store, hours_ago):
        memory_store.set("api_offline_queue", dumps_queue([_request("/a", hours_ago(2))]))

        queue = OfflineQueue(memory_store, expiry=timedelta(hours=1))
        queue.load()

        assert len(queue) == 0

    def test_load_corrupt_queue_starts_empty(self, memory_store):
        """Corrupt data is distinguishable from no data via last_error"""
        memory_store.set("api_offline_queue", "{{corrupt")

        queue = OfflineQueue(memory_store)
        queue.load()

        assert len(queue) == 0
        assert isinstance(queue.last_error, SerializationError)

    def test_load_store_failure_starts_empty(self):
        store = MagicMock()
        store.get.side_effect = PersistenceError("disk unavailable")

        queue = OfflineQueue(store)
        queue.load()

        assert len(queue) == 0
        assert isinstance(queue.last_error, PersistenceError)


class TestOfflineQueueMutations:
    """Every mutation is written through to the store"""

    def test_append_persists(self, memory_store):
        queue = OfflineQueue(memory_store)

        length = queue.append(_request("/a"))
        queue.append(_request("/b"))

        assert length == 1
        stored = loads_queue(memory_store.get("api_offline_queue"))
        assert [r.endpoint for r in stored] == ["/a", "/b"]

    def test_remove_persists(self, memory_store):
        queue = OfflineQueue(memory_store)
        a, b = _request("/a"), _request("/b")
        queue.append(a)
        queue.append(b)

        removed = queue.remove([a.id])

        assert removed == 1
        assert [r.endpoint for r in loads_queue(memory_store.get("api_offline_queue"))] == ["/b"]

    def test_save_failure_keeps_memory_queue(self):
        """An unwritable store degrades to in-memory only"""
        store = MagicMock()
        store.set.side_effect = PersistenceError("read-only")
        queue = OfflineQueue(store)

        queue.append(_request("/a"))

        assert len(queue) == 1
        assert isinstance(queue.last_error, PersistenceError)
        assert queue.save() is False

    def test_clear_empties_store(self, memory_store):
        queue = OfflineQueue(memory_store)
        queue.append(_request("/a"))

        queue.clear()

        assert loads_queue(memory_store.get("api_offline_queue")) == []

    def test_entries_is_a_snapshot(self, memory_store):
        queue = OfflineQueue(memory_store)
        queue.append(_request("/a"))

        snapshot = queue.entries()
        queue.append(_request("/b"))

        assert len(snapshot) == 1


class TestOfflineQueueDataFrame:

    def test_to_dataframe_columns(self, memory_store):
        queue = OfflineQueue(memory_store)
        queue.append(_request("/a"))

        df = queue.to_dataframe()

        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ["id", "method", "endpoint", "enqueued_at", "age_minutes"]
        assert df.iloc[0]["endpoint"] == "/a"

    def test_empty_dataframe_keeps_columns(self):
        df = OfflineQueue(MemoryStore()).to_dataframe()

        assert df.empty
        assert "endpoint" in df.columns


class TestQueueRoundTrip:
    """Records written by the queue are the records read back"""

    def test_offset_timestamp_is_normalized_on_load(self, memory_store):
        record = QueuedRequest(endpoint="/a", method="POST").to_dict()
        record["enqueued_at"] = datetime.now(timezone.utc).isoformat()
        memory_store.set("api_offline_queue", json.dumps([record]))

        queue = OfflineQueue(memory_store)
        expired = queue.load()

        assert expired == []
        assert queue.entries()[0].enqueued_at.tzinfo is None
        assert queue.last_error is None

    def test_stale_offset_timestamp_still_expires(self, memory_store):
        record = QueuedRequest(endpoint="/a", method="POST").to_dict()
        record["enqueued_at"] = (datetime.now(timezone.utc) - timedelta(hours=30)).isoformat()
        memory_store.set("api_offline_queue", json.dumps([record]))

        queue = OfflineQueue(memory_store)

        assert len(queue.load()) == 1
        assert len(queue) == 0

    def test_aware_request_is_stored_naive(self, memory_store):
        queue = OfflineQueue(memory_store)

        queue.append(QueuedRequest(endpoint="/a", method="POST", enqueued_at=datetime.now(timezone.utc)))

        assert queue.entries()[0].enqueued_at.tzinfo is None
        assert not queue.to_dataframe().empty

    def test_unencodable_request_leaves_queue_unchanged(self, memory_store):
        queue = OfflineQueue(memory_store)
        queue.append(_request("/good"))

        with pytest.raises(SerializationError):
            queue.append(QueuedRequest(endpoint="/bad", method="POST", body=b"{}"))

        assert [r.endpoint for r in queue.entries()] == ["/good"]
        queue.append(_request("/next"))
        assert [r.endpoint for r in loads_queue(memory_store.get("api_offline_queue"))] == ["/good", "/next"]

    def test_append_then_reload_is_lossless(self, memory_store):
        original = QueuedRequest(
            endpoint="/lessons/3/answers",
            method="PUT",
            headers={"X-Client": "web"},
            body='{"answer": "hola"}',
        )
        OfflineQueue(memory_store).append(original)

        reloaded = OfflineQueue(memory_store)
        reloaded.load()

        assert reloaded.entries() == [original]
