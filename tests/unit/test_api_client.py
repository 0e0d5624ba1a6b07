# =============================================================================
# tests/unit/test_api_client.py
# Unit Tests for the Offline-Aware Request Client
# =============================================================================

import json

import pytest
import requests

from lingo_core.api import ApiClient, ApiResult
from lingo_core.offline.connection_manager import ConnectionManager
from lingo_core.offline.events import QueueProcessed, RequestQueued
from lingo_core.offline.request_queue import OfflineQueue
from lingo_core.offline.serialization import loads_queue

from tests.conftest import make_response

BASE = "http://api.test/api"


@pytest.fixture
def connection(event_bus):
    return ConnectionManager(events=event_bus, initial_online=True)


@pytest.fixture
def queue(memory_store):
    return OfflineQueue(memory_store)


@pytest.fixture
def client(offline_config, connection, queue, mock_session, sleeps, event_bus):
    return ApiClient(
        offline_config,
        connection,
        queue,
        token_provider=lambda: "secret-token",
        session=mock_session,
        events=event_bus,
        sleep=sleeps,
    )


class TestApiResult:

    def test_ok_is_truthy(self):
        result = ApiResult.ok({"a": 1}, status_code=200)
        assert result
        assert result.success

    def test_deferred_is_not_a_failure_code(self):
        result = ApiResult.deferred("abc", 3)
        assert result.queued
        assert result.error_code == "QUEUED"
        assert result.metadata == {"request_id": "abc", "queue_length": 3}


class TestOnlineExecution:
    """Requests issued while online"""

    def test_success_returns_decoded_json(self, client, mock_session):
        mock_session.request.return_value = make_response(200, json_data={"user": "ana"})

        result = client.execute("/users/me")

        assert result.data == {"user": "ana"}
        assert result.error is None
        assert result.status_code == 200

    def test_request_shape(self, client, mock_session):
        client.post("/progress", {"xp": 10})

        kwargs = mock_session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == f"{BASE}/progress"
        assert kwargs["timeout"] == 10.0
        assert json.loads(kwargs["data"].decode("utf-8")) == {"xp": 10}
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_bearer_token_attached(self, client, mock_session):
        client.get("/lessons")

        headers = mock_session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret-token"

    def test_no_token_no_authorization_header(self, offline_config, connection, queue, mock_session):
        client = ApiClient(offline_config, connection, queue, token_provider=lambda: None, session=mock_session)

        client.get("/lessons")

        assert "Authorization" not in mock_session.request.call_args.kwargs["headers"]

    def test_caller_headers_override_content_type(self, client, mock_session):
        client.execute("/upload", method="POST", headers={"Content-Type": "text/plain"}, body="hi")

        assert mock_session.request.call_args.kwargs["headers"]["Content-Type"] == "text/plain"

    def test_get_params_are_encoded(self, client, mock_session, urls_called):
        client.get("/lessons", params={"level": 2, "lang": "es"})

        assert urls_called(mock_session) == [f"{BASE}/lessons?level=2&lang=es"]

    def test_empty_body_decodes_to_none(self, client, mock_session):
        mock_session.request.return_value = make_response(204)

        result = client.delete("/lessons/1")

        assert result.success
        assert result.data is None

    def test_non_json_body_falls_back_to_text(self, client, mock_session):
        mock_session.request.return_value = make_response(200, content=b"pong")

        assert client.get("/ping").data == "pong"

    def test_blank_endpoint_fails_without_network(self, client, mock_session):
        result = client.execute("   ")

        assert result.error_code == "INVALID_REQUEST"
        mock_session.request.assert_not_called()


class TestRetryPolicy:
    """Transport errors are retried with linear backoff; HTTP errors are not"""

    def test_http_error_is_terminal(self, client, mock_session, sleeps):
        mock_session.request.return_value = make_response(500)

        result = client.post("/progress", {"xp": 1})

        assert mock_session.request.call_count == 1
        assert sleeps.calls == []
        assert result.status_code == 500
        assert result.error == "HTTP 500: Internal Server Error"
        assert result.error_code == "NET_002"

    def test_http_404_is_terminal(self, client, mock_session):
        mock_session.request.return_value = make_response(404)

        result = client.get("/missing")

        assert mock_session.request.call_count == 1
        assert result.status_code == 404

    def test_transport_error_then_success(self, client, route, sleeps):
        session = route({f"{BASE}/progress": [
            requests.exceptions.ConnectionError("reset"),
            requests.exceptions.ConnectionError("reset"),
            make_response(200, json_data={"saved": True}),
        ]})

        result = client.post("/progress", {"xp": 1})

        assert result.data == {"saved": True}
        assert session.request.call_count == 3
        assert sleeps.calls == [1.0, 2.0]

    def test_retries_are_bounded(self, client, mock_session, sleeps):
        mock_session.request.side_effect = requests.exceptions.ConnectionError("down")

        result = client.get("/lessons")

        assert mock_session.request.call_count == 4
        assert sleeps.calls == [1.0, 2.0, 3.0]
        assert result.error_code == "NET_001"
        assert not result.queued

    def test_timeout_is_a_transport_error(self, client, mock_session, sleeps):
        mock_session.request.side_effect = requests.exceptions.Timeout()

        result = client.get("/slow")

        assert mock_session.request.call_count == 4
        assert result.error == "Timeout"

    def test_retry_counter_can_start_late(self, client, mock_session, sleeps):
        mock_session.request.side_effect = requests.exceptions.ConnectionError("down")

        client.execute("/lessons", retries=2)

        assert mock_session.request.call_count == 2
        assert sleeps.calls == [3.0]


class TestOfflineQueuing:
    """Mutating requests made offline are parked, not sent"""

    def test_offline_post_is_queued(self, client, connection, queue, mock_session, memory_store):
        connection.set_offline()

        result = client.post("/progress", {"xp": 5})

        assert result.queued
        assert result.data is None
        assert result.error
        mock_session.request.assert_not_called()
        stored = loads_queue(memory_store.get("api_offline_queue"))
        assert [(r.method, r.endpoint) for r in stored] == [("POST", "/progress")]
        assert json.loads(stored[0].body) == {"xp": 5}

    def test_offline_get_is_attempted_not_queued(self, client, connection, queue, mock_session):
        connection.set_offline()
        mock_session.request.side_effect = requests.exceptions.ConnectionError("offline")

        result = client.get("/lessons")

        assert not result.queued
        assert result.error_code == "NET_001"
        assert len(queue) == 0

    def test_queued_request_publishes_event(self, client, connection, captured_events):
        connection.set_offline()

        client.put("/profile", {"name": "Ana"})

        queued = [e for e in captured_events if isinstance(e, RequestQueued)]
        assert len(queued) == 1
        assert queued[0].endpoint == "/profile"
        assert queued[0].method == "PUT"
        assert queued[0].queue_length == 1

    def test_authorization_is_not_persisted(self, client, connection, queue):
        connection.set_offline()

        client.execute(
            "/progress",
            method="POST",
            headers={"Authorization": "Bearer stale", "X-Trace": "1"},
            body="{}",
        )

        assert queue.entries()[0].headers == {"X-Trace": "1"}


class TestQueueReplay:
    """FIFO replay when connectivity returns"""

    def _queue_three(self, client, connection):
        connection.set_offline()
        client.post("/a", {})
        client.post("/b", {})
        client.post("/c", {})
        connection.set_online()

    def test_failed_entry_stays_in_place(self, client, connection, queue, route, urls_called):
        """A ok, B rejected, C ok leaves [B]; a new request lands after B"""
        self._queue_three(client, connection)
        session = route({
            f"{BASE}/a": make_response(200, json_data={}),
            f"{BASE}/b": make_response(500),
            f"{BASE}/c": make_response(200, json_data={}),
        })

        state = client.process_queue()

        assert urls_called(session) == [f"{BASE}/a", f"{BASE}/b", f"{BASE}/c"]
        assert [r.endpoint for r in queue.entries()] == ["/b"]
        assert state.failed_count == 1
        assert state.pending_count == 1

        connection.set_offline()
        client.post("/d", {})
        assert [r.endpoint for r in queue.entries()] == ["/b", "/d"]

    def test_replay_reattaches_token(self, client, connection, mock_session):
        self._queue_three(client, connection)

        client.process_queue()

        for call in mock_session.request.call_args_list:
            assert call.kwargs["headers"]["Authorization"] == "Bearer secret-token"

    def test_replay_publishes_summary(self, client, connection, captured_events):
        self._queue_three(client, connection)

        client.process_queue()

        summary = [e for e in captured_events if isinstance(e, QueueProcessed)]
        assert summary == [QueueProcessed(succeeded=3, failed=0, remaining=0)]

    def test_second_replay_sends_nothing(self, client, connection, mock_session):
        self._queue_three(client, connection)
        client.process_queue()
        mock_session.request.reset_mock()

        client.process_queue()

        mock_session.request.assert_not_called()

    def test_replay_stops_when_connection_drops(self, client, connection, queue, mock_session):
        self._queue_three(client, connection)

        def drop_after_first(**kwargs):
            connection.set_offline()
            return make_response(200, json_data={})

        mock_session.request.side_effect = drop_after_first

        client.process_queue()

        assert mock_session.request.call_count == 1
        assert [r.endpoint for r in queue.entries()] == ["/b", "/c"]

    def test_concurrent_replay_is_skipped(self, client, connection, mock_session):
        self._queue_three(client, connection)

        client._replay_lock.acquire()
        try:
            client.process_queue()
        finally:
            client._replay_lock.release()

        mock_session.request.assert_not_called()
        assert client.queued_count() == 3

    def test_clear_queue(self, client, connection):
        self._queue_three(client, connection)

        client.clear_queue()

        assert client.queued_count() == 0
        assert client.get_status_display()["pending_count"] == 0


class TestRequestNormalization:
    """Whatever execute accepts can be sent, queued and read back"""

    def test_bytes_body_is_decoded(self, client, mock_session):
        client.execute("/progress", method="POST", body=b'{"xp": 1}')

        assert mock_session.request.call_args.kwargs["data"] == b'{"xp": 1}'

    def test_offline_bytes_body_is_queued_as_text(self, client, connection, queue):
        connection.set_offline()

        result = client.execute("/progress", method="POST", body=b'{"xp": 1}')
        follow_up = client.post("/progress", {"xp": 2})

        assert result.queued and follow_up.queued
        assert [r.body for r in queue.entries()] == ['{"xp": 1}', '{"xp": 2}']

    def test_non_text_body_is_rejected(self, client, connection, queue, mock_session):
        connection.set_offline()

        result = client.execute("/progress", method="POST", body={"xp": 1})

        assert result.error_code == "INVALID_REQUEST"
        assert len(queue) == 0
        mock_session.request.assert_not_called()

    def test_invalid_utf8_body_is_rejected(self, client):
        result = client.execute("/progress", method="POST", body=b"\xff\xfe")

        assert result.error_code == "INVALID_REQUEST"

    def test_header_values_become_strings(self, client, mock_session):
        client.execute("/progress", method="POST", headers={"X-Attempt": 1, "X-Skip": None}, body="{}")

        headers = mock_session.request.call_args.kwargs["headers"]
        assert headers["X-Attempt"] == "1"
        assert "X-Skip" not in headers

    def test_non_mapping_headers_are_rejected(self, client):
        result = client.execute("/progress", method="POST", headers=["X-Attempt"], body="{}")

        assert result.error_code == "INVALID_REQUEST"

    def test_mixed_queue_survives_restart(self, client, connection, memory_store):
        connection.set_offline()
        client.post("/a", {})
        client.execute("/b", method="POST", headers={"X-Attempt": 1}, body="{}")
        client.post("/c", {})

        reloaded = OfflineQueue(memory_store)
        reloaded.load()

        assert [r.endpoint for r in reloaded.entries()] == ["/a", "/b", "/c"]
        assert reloaded.entries()[1].headers == {"X-Attempt": "1"}
        assert reloaded.last_error is None


class TestUpload:

    def test_upload_sends_multipart(self, client, mock_session):
        result = client.upload("/avatar", ("me.png", b"\x89PNG"), data={"user_id": 7})

        kwargs = mock_session.request.call_args.kwargs
        assert result.success
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == f"{BASE}/avatar"
        assert kwargs["files"] == {"file": ("me.png", b"\x89PNG")}
        assert kwargs["data"] == {"user_id": "7"}
        assert kwargs["timeout"] == 10.0
        assert "Content-Type" not in kwargs["headers"]
        assert kwargs["headers"]["Authorization"] == "Bearer secret-token"

    def test_upload_reads_file_objects(self, client, mock_session, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hola")

        with open(path, "rb") as handle:
            client.upload("/notes", handle)

        assert mock_session.request.call_args.kwargs["files"] == {"file": ("notes.txt", b"hola")}

    def test_upload_retries_transport_errors(self, client, route, sleeps):
        session = route({f"{BASE}/avatar": [
            requests.exceptions.ConnectionError("reset"),
            make_response(201, json_data={"url": "/a.png"}),
        ]})

        result = client.upload("/avatar", b"img")

        assert result.data == {"url": "/a.png"}
        assert session.request.call_count == 2
        assert sleeps.calls == [1.0]
        for call in session.request.call_args_list:
            assert call.kwargs["files"] == {"file": ("file", b"img")}

    def test_upload_offline_is_not_queued(self, client, connection, queue, mock_session):
        connection.set_offline()

        result = client.upload("/avatar", b"img")

        assert not result.queued
        assert result.error_code == "UPLOAD_OFFLINE"
        assert len(queue) == 0
        mock_session.request.assert_not_called()

    def test_unsupported_file_type(self, client, mock_session):
        result = client.upload("/avatar", 42)

        assert result.error_code == "INVALID_REQUEST"
        mock_session.request.assert_not_called()
