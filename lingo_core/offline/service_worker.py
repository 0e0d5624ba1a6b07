# =============================================================================
# lingo_core/offline/service_worker.py
# Cache-First Interception Layer
# =============================================================================
"""
CacheWorker - Install/activate lifecycle, cache-first fetch and background sync.

Lifecycle:
    PARSED -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVATED (-> REDUNDANT)

- install: seed the static generation from the asset manifest (all or nothing)
- activate: delete every generation in the namespace except the current pair
- fetch: same-origin / trusted-host GETs are served cache-first; successful
  same-origin network responses are copied into the dynamic generation;
  navigations fall back to the cached app shell when the network is down
- sync: flush the cached progress payload to the sync endpoint
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING
from urllib.parse import urlsplit
import logging

import requests

from lingo_core.config import OfflineConfig
from lingo_core.errors import CacheError, TransportError, error_boundary
from lingo_core.logging import LogContext
from lingo_core.offline.cache_storage import CachedResponse, CacheStorage
from lingo_core.offline.events import EventBus, ProgressSynced, WorkerStateChanged

if TYPE_CHECKING:
    from lingo_core.offline.registration import WorkerRegistration

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


@dataclass
class FetchRequest:
    """An outbound resource request seen by the interception layer."""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    destination: str = ""   # "document" for page loads
    mode: str = "cors"      # navigate, same-origin, cors, no-cors
    body: Optional[bytes] = None

    @property
    def is_navigation(self) -> bool:
        return self.destination == "document" or self.mode == "navigate"


# =============================================================================
# SELECTION RULES
# =============================================================================

def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


def should_intercept(request: FetchRequest, origin: str, trusted_hosts: Iterable[str]) -> bool:
    """Only GETs to our origin or a trusted font host are intercepted."""
    if request.method.upper() != "GET":
        return False
    if origin_of(request.url) == origin.lower().rstrip("/"):
        return True
    host = (urlsplit(request.url).hostname or "").lower()
    return any(host == h or host.endswith(f".{h}") for h in trusted_hosts)


def is_cacheable(response: Optional[CachedResponse]) -> bool:
    """Only complete same-origin responses go into the dynamic cache."""
    return response is not None and response.status == 200 and response.type == "basic"


def stale_cache_names(names: Iterable[str], prefix: str, keep: Iterable[str]) -> List[str]:
    """Generations in our namespace that are not current."""
    current = set(keep)
    return [n for n in names if n.startswith(prefix) and n not in current]


# =============================================================================
# WORKER
# =============================================================================

class CacheWorker:
    """
    One version of the interception layer.

    Usage:
        worker = CacheWorker(config, CacheStorage(Path("local_data/caches")))
        worker.install()
        worker.activate()
        response = worker.handle_fetch(FetchRequest(url="http://localhost:5173/app.js"))
    """

    def __init__(
        self,
        config: OfflineConfig,
        storage: CacheStorage,
        session: Optional[requests.Session] = None,
        events: Optional[EventBus] = None,
    ):
        self.config = config
        self.storage = storage
        self.session = session or requests.Session()
        self.events = events or EventBus()
        self.state = WorkerState.PARSED
        self.skip_waiting_requested = False
        self.registration: Optional[WorkerRegistration] = None
        self.origin = origin_of(config.origin)

    @property
    def version(self) -> str:
        return self.config.cache_name

    @property
    def static_cache_name(self) -> str:
        return self.config.static_cache_name

    @property
    def dynamic_cache_name(self) -> str:
        return self.config.dynamic_cache_name

    def _set_state(self, state: WorkerState) -> None:
        self.state = state
        logger.debug(f"[{self.version}] state -> {state.value}")
        self.events.publish(WorkerStateChanged(version=self.version, state=state.value))

    def resolve(self, path: str) -> str:
        """Absolute URL for a manifest path."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.origin}{self.config.base_path}{path}"

    # =========================================================================
    # NETWORK
    # =========================================================================

    def network_fetch(self, request: FetchRequest) -> CachedResponse:
        """
        Perform the request over the network.

        Raises:
            TransportError: no response was received
        """
        try:
            response = self.session.request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                data=request.body,
                timeout=self.config.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(
                str(e) or e.__class__.__name__,
                url=request.url,
                method=request.method,
            ) from e

        if origin_of(request.url) == self.origin:
            response_type = "basic"
        elif request.mode == "no-cors":
            response_type = "opaque"
        else:
            response_type = "cors"

        return CachedResponse(
            url=request.url,
            status=response.status_code,
            reason=response.reason or "",
            headers=dict(response.headers),
            body=response.content or b"",
            type=response_type,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def install(self) -> bool:
        """
        Seed the static cache with the asset manifest.

        Returns:
            True if every asset was cached (and skip-waiting was requested)
        """
        self._set_state(WorkerState.INSTALLING)
        urls = [self.resolve(path) for path in self.config.static_assets]

        try:
            with LogContext(logger, f"[{self.version}] Caching {len(urls)} static assets"):
                cache = self.storage.open(self.static_cache_name)
                cache.add_all(urls, lambda url: self.network_fetch(FetchRequest(url=url)))
            self.skip_waiting_requested = True
        except CacheError as e:
            logger.error(f"[{self.version}] Failed to cache static assets: {e}")
            self.skip_waiting_requested = False

        self._set_state(WorkerState.INSTALLED)
        return self.skip_waiting_requested

    def activate(self) -> List[str]:
        """
        Delete superseded cache generations and start intercepting.

        Returns:
            Names of the deleted caches
        """
        self._set_state(WorkerState.ACTIVATING)
        deleted = []

        try:
            stale = stale_cache_names(
                self.storage.keys(),
                self.config.cache_prefix,
                keep=[self.static_cache_name, self.dynamic_cache_name],
            )
            for name in stale:
                logger.info(f"[{self.version}] Deleting old cache: {name}")
                if self.storage.delete(name):
                    deleted.append(name)
        except OSError as e:
            logger.error(f"[{self.version}] Failed to purge old caches: {e}")

        self._set_state(WorkerState.ACTIVATED)
        logger.info(f"[{self.version}] Worker activated")
        return deleted

    def skip_waiting(self) -> None:
        """Ask to be promoted over the active worker right away."""
        self.skip_waiting_requested = True
        if self.registration is not None:
            self.registration.skip_waiting()

    # =========================================================================
    # FETCH
    # =========================================================================

    def handle_fetch(self, request: FetchRequest) -> CachedResponse:
        """
        Answer an intercepted request.

        Raises:
            TransportError: network failed with no cached answer or shell fallback
        """
        if self.state != WorkerState.ACTIVATED or not should_intercept(
            request, self.origin, self.config.trusted_hosts
        ):
            return self.network_fetch(request)

        cached = self.storage.match(request.url)
        if cached is not None:
            logger.debug(f"[{self.version}] Serving from cache: {request.url}")
            return cached

        try:
            response = self.network_fetch(request)
        except TransportError as e:
            logger.error(f"[{self.version}] Network request failed: {request.url}: {e.message}")
            if request.is_navigation:
                shell = self._match_shell()
                if shell is not None:
                    return shell
            raise

        if is_cacheable(response):
            self._store_dynamic(request.url, response.clone())
        return response

    def _match_shell(self) -> Optional[CachedResponse]:
        for path in self.config.shell_paths:
            shell = self.storage.match(self.resolve(path))
            if shell is not None:
                logger.info(f"[{self.version}] Offline navigation, serving shell {path}")
                return shell
        return None

    @error_boundary(default_return=False)
    def _store_dynamic(self, url: str, response: CachedResponse) -> bool:
        self.storage.open(self.dynamic_cache_name).put(url, response)
        logger.debug(f"[{self.version}] Added to dynamic cache: {url}")
        return True

    # =========================================================================
    # BACKGROUND SYNC & MESSAGES
    # =========================================================================

    def handle_sync(self, tag: str) -> bool:
        """Platform sync trigger. Returns True if a payload was flushed."""
        logger.info(f"[{self.version}] Background sync triggered: {tag}")
        if tag != self.config.sync_tag:
            return False
        return self.sync_progress()

    def sync_progress(self) -> bool:
        """
        POST the cached progress payload; drop it only on HTTP success.

        Retrying is left to the platform re-delivering the sync trigger.
        """
        payload_url = self.resolve(self.config.sync_payload_path)
        endpoint = self.resolve(self.config.sync_endpoint)

        try:
            cache = self.storage.open(self.dynamic_cache_name)
            payload = cache.match(payload_url)
            if payload is None:
                logger.debug(f"[{self.version}] No progress payload to sync")
                return False

            response = self.session.request(
                method="POST",
                url=endpoint,
                data=payload.body,
                headers={"Content-Type": "application/json"},
                timeout=self.config.request_timeout,
            )
            if not 200 <= response.status_code < 300:
                logger.warning(f"[{self.version}] Progress sync rejected: HTTP {response.status_code}")
                return False

            cache.delete(payload_url)
        except (requests.exceptions.RequestException, CacheError) as e:
            logger.error(f"[{self.version}] Failed to sync progress: {e}")
            return False

        logger.info(f"[{self.version}] Progress synced successfully")
        self.events.publish(ProgressSynced(endpoint=endpoint))
        return True

    def handle_message(self, message: Optional[dict]) -> Optional[dict]:
        """Messages from the page: SKIP_WAITING, GET_VERSION."""
        if not isinstance(message, dict):
            return None

        message_type = message.get("type")
        if message_type == "SKIP_WAITING":
            self.skip_waiting()
            return None
        if message_type == "GET_VERSION":
            return {"version": self.version}

        logger.debug(f"[{self.version}] Ignoring message: {message_type}")
        return None
