# =============================================================================
# lingo_core/api/client.py
# Offline-Aware Request Client
# =============================================================================
"""
ApiClient - Uniform request execution with offline queuing and retry.

Features:
- Mutating requests issued while offline are queued instead of failing
- Bounded retry with linear backoff on transport errors
- HTTP status errors are terminal for the attempt
- FIFO replay of the queue when connectivity returns
- Multipart file upload when online; uploads are never queued
- Every path resolves to an ApiResult; nothing is raised to the caller
"""

from __future__ import annotations
import json
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode
import logging

import requests

from lingo_core.api.result import ApiResult
from lingo_core.config import OfflineConfig
from lingo_core.errors import HTTPStatusError, SerializationError, TransportError
from lingo_core.logging import LogContext
from lingo_core.offline.connection_manager import ConnectionManager
from lingo_core.offline.events import EventBus, QueueProcessed, RequestQueued
from lingo_core.offline.request_queue import OfflineQueue
from lingo_core.offline.serialization import QueuedRequest

logger = logging.getLogger(__name__)

SAFE_METHOD = "GET"
JSON_CONTENT_TYPE = "application/json"


def _normalize_headers(headers: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    """Header values as strings; None values are dropped."""
    if headers is None:
        return None
    if not isinstance(headers, Mapping):
        raise ValueError(f"Headers must be a mapping, got {type(headers).__name__}")
    return {str(k): str(v) for k, v in headers.items() if v is not None}


def _normalize_body(body: Any) -> Optional[str]:
    """Request bodies are carried as text; bytes must be UTF-8."""
    if body is None or isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray)):
        try:
            return bytes(body).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValueError(f"Body is not valid UTF-8: {e}") from e
    raise ValueError(f"Body must be str or bytes, got {type(body).__name__}")


def _file_part(file: Any) -> Tuple[str, bytes]:
    """Read an upload once so retries resend the same content."""
    if isinstance(file, tuple) and len(file) == 2:
        name, content = file
    elif isinstance(file, (bytes, bytearray)):
        name, content = "file", file
    elif hasattr(file, "read"):
        name, content = os.path.basename(getattr(file, "name", "") or "file"), file.read()
    else:
        raise ValueError(f"Unsupported upload type: {type(file).__name__}")
    if isinstance(content, str):
        content = content.encode("utf-8")
    return str(name), bytes(content)


@dataclass
class SyncState:
    """Queue replay bookkeeping."""
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    pending_count: int = 0
    failed_count: int = 0
    total_synced: int = 0


class ApiClient:
    """
    Request client that survives being offline.

    Usage:
        client = ApiClient(config, connection, queue)
        result = client.post("/progress", {"xp": 10})
        if result.queued:
            ...  # replayed by process_queue() once back online
        elif result:
            print(result.data)
        else:
            print(result.error)
    """

    def __init__(
        self,
        config: OfflineConfig,
        connection: ConnectionManager,
        queue: OfflineQueue,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        session: Optional[requests.Session] = None,
        events: Optional[EventBus] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.connection = connection
        self.queue = queue
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.events = events or connection.events
        self._sleep = sleep
        self._replay_lock = threading.Lock()
        self._sync_state = SyncState(pending_count=len(queue))

    @property
    def sync_state(self) -> SyncState:
        return self._sync_state

    # =========================================================================
    # REQUEST EXECUTION
    # =========================================================================

    def execute(
        self,
        endpoint: str,
        method: str = SAFE_METHOD,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        retries: int = 0,
    ) -> ApiResult:
        """
        Execute a request, queuing it if offline and mutating.

        Args:
            endpoint: Resource path appended to api_base_url (or an absolute URL)
            method: HTTP method
            headers: Extra headers; override the JSON content type
            body: Encoded request body (str, or UTF-8 bytes)
            retries: Retry counter to start from

        Returns:
            ApiResult (never raises)
        """
        if not isinstance(endpoint, str) or not endpoint.strip():
            return ApiResult.fail("Endpoint must be a non-empty string", error_code="INVALID_REQUEST")

        try:
            headers = _normalize_headers(headers)
            body = _normalize_body(body)
        except ValueError as e:
            return ApiResult.fail(str(e), error_code="INVALID_REQUEST")

        method = (method or SAFE_METHOD).upper()

        if self.connection.is_offline and method != SAFE_METHOD:
            return self._queue_request(endpoint, method, headers, body)

        return self._send_with_retry(endpoint, method, headers, body, retries)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> ApiResult:
        if params:
            separator = "&" if "?" in endpoint else "?"
            endpoint = f"{endpoint}{separator}{urlencode(params, doseq=True)}"
        return self.execute(endpoint, method="GET")

    def post(self, endpoint: str, data: Optional[Any] = None) -> ApiResult:
        return self.execute(endpoint, method="POST", body=json.dumps(data if data is not None else {}))

    def put(self, endpoint: str, data: Optional[Any] = None) -> ApiResult:
        return self.execute(endpoint, method="PUT", body=json.dumps(data if data is not None else {}))

    def delete(self, endpoint: str) -> ApiResult:
        return self.execute(endpoint, method="DELETE")

    def upload(
        self,
        endpoint: str,
        file: Any,
        data: Optional[Dict[str, Any]] = None,
    ) -> ApiResult:
        """
        POST a file as multipart form data.

        Args:
            endpoint: Resource path appended to api_base_url
            file: bytes, a (filename, content) tuple, or a readable file object
            data: Extra form fields sent alongside the file

        Returns:
            ApiResult; uploads are never queued, so offline this is a failure
        """
        if not isinstance(endpoint, str) or not endpoint.strip():
            return ApiResult.fail("Endpoint must be a non-empty string", error_code="INVALID_REQUEST")

        if self.connection.is_offline:
            logger.info(f"Offline: refusing upload to {endpoint}")
            return ApiResult.fail(
                "File uploads cannot be queued while offline",
                error_code="UPLOAD_OFFLINE",
            )

        try:
            files = {"file": _file_part(file)}
        except (OSError, ValueError) as e:
            return ApiResult.fail(f"Cannot read upload: {e}", error_code="INVALID_REQUEST")

        form = {k: str(v) for k, v in (data or {}).items()}
        # requests sets the multipart Content-Type with its boundary
        return self._send_with_retry(
            endpoint,
            "POST",
            None,
            None,
            files=files,
            form=form,
            content_type=None,
        )

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.config.api_base_url.rstrip('/')}{endpoint}"

    def _build_headers(
        self,
        headers: Optional[Dict[str, str]],
        content_type: Optional[str] = JSON_CONTENT_TYPE,
    ) -> Dict[str, str]:
        merged = {"Content-Type": content_type} if content_type else {}
        merged.update(headers or {})
        token = self.token_provider() if self.token_provider else None
        if token:
            merged["Authorization"] = f"Bearer {token}"
        return merged

    def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[str],
        files: Optional[Dict[str, Any]] = None,
        form: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """Single network attempt. Raises TransportError or HTTPStatusError."""
        extra = {"files": files} if files else {}
        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                data=body.encode("utf-8") if body is not None else form,
                timeout=self.config.request_timeout,
                **extra,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(
                str(e) or e.__class__.__name__,
                url=url,
                method=method,
            ) from e

        if not 200 <= response.status_code < 300:
            raise HTTPStatusError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
                url=url,
            )
        return response

    def _send_with_retry(
        self,
        endpoint: str,
        method: str,
        headers: Optional[Dict[str, str]],
        body: Optional[str],
        retries: int = 0,
        files: Optional[Dict[str, Any]] = None,
        form: Optional[Dict[str, str]] = None,
        content_type: Optional[str] = JSON_CONTENT_TYPE,
    ) -> ApiResult:
        url = self._build_url(endpoint)
        request_headers = self._build_headers(headers, content_type)
        attempt = retries

        while True:
            try:
                response = self._send(method, url, request_headers, body, files, form)
            except HTTPStatusError as e:
                logger.error(f"API call failed: {method} {url}: {e.message}")
                return ApiResult.from_exception(e)
            except TransportError as e:
                if attempt < self.config.max_retries:
                    delay = self.config.retry_delay * (attempt + 1)
                    logger.warning(
                        f"Transport error on {method} {url} ({e.message}); "
                        f"retry {attempt + 1}/{self.config.max_retries} in {delay:.1f}s"
                    )
                    self._sleep(delay)
                    attempt += 1
                    continue
                logger.error(f"API call failed after {attempt} retries: {method} {url}: {e.message}")
                return ApiResult.from_exception(e)

            return ApiResult.ok(self._decode(response), status_code=response.status_code)

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # =========================================================================
    # OFFLINE QUEUE
    # =========================================================================

    def _queue_request(
        self,
        endpoint: str,
        method: str,
        headers: Optional[Dict[str, str]],
        body: Optional[str],
    ) -> ApiResult:
        # The bearer token is attached again at replay time
        stored_headers = {
            k: v for k, v in (headers or {}).items() if k.lower() != "authorization"
        }
        request = QueuedRequest(
            endpoint=endpoint,
            method=method,
            headers=stored_headers,
            body=body,
        )
        try:
            length = self.queue.append(request)
        except SerializationError as e:
            logger.error(f"Could not queue {method} {endpoint}: {e.message}")
            return ApiResult.from_exception(e)
        self._sync_state.pending_count = length
        logger.info(f"Offline: queued {method} {endpoint} ({length} pending)")

        self.events.publish(RequestQueued(
            request_id=request.id,
            endpoint=endpoint,
            method=method,
            queue_length=length,
        ))
        return ApiResult.deferred(request.id, length)

    def process_queue(self) -> SyncState:
        """
        Replay queued requests in FIFO order.

        Successful entries are removed; failed ones stay queued in place.
        Only one replay runs at a time; a concurrent call returns at once.

        Returns:
            Updated SyncState
        """
        if not self._replay_lock.acquire(blocking=False):
            logger.debug("Queue replay already in progress")
            return self._sync_state

        try:
            pending = self.queue.entries()
            if not pending:
                self._sync_state.pending_count = 0
                return self._sync_state

            self._sync_state.is_syncing = True
            self._sync_state.last_sync = datetime.now()
            succeeded = 0
            failed = 0

            with LogContext(logger, f"Replaying {len(pending)} queued requests"):
                for entry in pending:
                    if self.connection.is_offline:
                        logger.info("Connection lost during replay; remaining requests stay queued")
                        break

                    result = self._send_with_retry(
                        entry.endpoint,
                        entry.method,
                        entry.headers,
                        entry.body,
                        retries=0,
                    )
                    if result.error is None:
                        self.queue.remove([entry.id])
                        succeeded += 1
                    else:
                        logger.warning(f"Queued {entry.method} {entry.endpoint} failed: {result.error}")
                        failed += 1

            remaining = len(self.queue)
            self._sync_state.total_synced += succeeded
            self._sync_state.failed_count = failed
            self._sync_state.pending_count = remaining
            if failed == 0:
                self._sync_state.last_sync_success = datetime.now()

            logger.info(f"Queue replay complete: {succeeded} success, {failed} failed, {remaining} pending")
            self.events.publish(QueueProcessed(
                succeeded=succeeded,
                failed=failed,
                remaining=remaining,
            ))
            return self._sync_state

        finally:
            self._sync_state.is_syncing = False
            self._replay_lock.release()

    def clear_queue(self) -> None:
        self.queue.clear()
        self._sync_state.pending_count = 0

    def queued_count(self) -> int:
        return len(self.queue)

    def close(self) -> None:
        self.session.close()

    def get_status_display(self) -> Dict[str, Any]:
        """Get replay status for UI display."""
        state = self._sync_state
        return {
            "is_syncing": state.is_syncing,
            "last_sync": state.last_sync.isoformat() if state.last_sync else None,
            "last_success": state.last_sync_success.isoformat() if state.last_sync_success else None,
            "pending_count": self.queued_count(),
            "failed_count": state.failed_count,
            "total_synced": state.total_synced,
        }
