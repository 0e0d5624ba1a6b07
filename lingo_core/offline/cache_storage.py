# =============================================================================
# lingo_core/offline/cache_storage.py
# Named Response Caches (Cache Storage)
# =============================================================================
"""
CacheStorage - Named generations of cached HTTP responses keyed by URL.

Directory Structure:
-------------------
<root>/
├── lingoquest-v1.0.0-static/
│   ├── cache_index.json       # url -> status, headers, type, body file, hash
│   └── <md5(url)>.bin         # response bodies
└── lingoquest-v1.0.0-dynamic/
    └── ...

With root=None everything lives in memory.
"""

from __future__ import annotations
import hashlib
import json
import shutil
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urldefrag
import logging

from lingo_core.errors import CacheError

logger = logging.getLogger(__name__)


@dataclass
class CachedResponse:
    """Snapshot of an HTTP response."""
    url: str
    status: int = 200
    reason: str = "OK"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    type: str = "basic"     # basic (same-origin), cors, opaque

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def clone(self) -> CachedResponse:
        return replace(self, headers=dict(self.headers))

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


def cache_key(url: str) -> str:
    """Cache entries are keyed by URL without fragment."""
    return urldefrag(url)[0]


class Cache:
    """A single named cache generation."""

    INDEX_FILE = "cache_index.json"

    def __init__(self, name: str, directory: Optional[Path] = None):
        self.name = name
        self.directory = directory
        self._index: Dict[str, Dict[str, Any]] = {}
        self._bodies: Dict[str, bytes] = {}
        self._lock = threading.RLock()

        if self.directory is not None:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._load_index()

    # =========================================================================
    # INDEX PERSISTENCE
    # =========================================================================

    def _load_index(self) -> None:
        index_path = self.directory / self.INDEX_FILE
        if not index_path.exists():
            self._index = {}
            return
        try:
            with open(index_path, "r") as f:
                self._index = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Error loading index of cache '{self.name}': {e}")
            self._index = {}

    def _save_index(self) -> None:
        if self.directory is None:
            return
        index_path = self.directory / self.INDEX_FILE
        try:
            with open(index_path, "w") as f:
                json.dump(self._index, f, indent=2)
        except IOError as e:
            raise CacheError(
                f"Error saving cache index: {e}",
                cache_name=self.name,
            ) from e

    @staticmethod
    def _body_filename(key: str) -> str:
        return f"{hashlib.md5(key.encode('utf-8')).hexdigest()}.bin"

    # =========================================================================
    # ENTRY OPERATIONS
    # =========================================================================

    def match(self, url: str) -> Optional[CachedResponse]:
        """Return the cached response for a URL, or None."""
        key = cache_key(url)
        with self._lock:
            info = self._index.get(key)
            if info is None:
                return None

            body = self._read_body(key, info)
            if body is None:
                # Remove stale index entry
                del self._index[key]
                try:
                    self._save_index()
                except CacheError as e:
                    logger.error(f"Cache '{self.name}' index not updated: {e}")
                return None

            return CachedResponse(
                url=key,
                status=info["status"],
                reason=info.get("reason", ""),
                headers=dict(info.get("headers", {})),
                body=body,
                type=info.get("type", "basic"),
            )

    def _read_body(self, key: str, info: Dict[str, Any]) -> Optional[bytes]:
        if self.directory is None:
            return self._bodies.get(key)

        file_path = self.directory / info["file"]
        try:
            body = file_path.read_bytes()
        except (FileNotFoundError, IOError) as e:
            logger.warning(f"Cache '{self.name}' body missing for {key}: {e}")
            return None

        if hashlib.md5(body).hexdigest() != info.get("file_hash"):
            logger.warning(f"Cache '{self.name}' body corrupt for {key}")
            return None
        return body

    def put(self, url: str, response: CachedResponse) -> None:
        """Store a response; a later put for the same URL wins."""
        key = cache_key(url)
        with self._lock:
            info = {
                "status": response.status,
                "reason": response.reason,
                "headers": dict(response.headers),
                "type": response.type,
                "stored_at": datetime.now().isoformat(),
                "file_hash": hashlib.md5(response.body).hexdigest(),
            }

            if self.directory is None:
                self._bodies[key] = response.body
            else:
                info["file"] = self._body_filename(key)
                try:
                    (self.directory / info["file"]).write_bytes(response.body)
                except IOError as e:
                    raise CacheError(
                        f"Error writing cache body: {e}",
                        cache_name=self.name,
                        url=key,
                    ) from e

            self._index[key] = info
            self._save_index()

    def delete(self, url: str) -> bool:
        key = cache_key(url)
        with self._lock:
            info = self._index.pop(key, None)
            if info is None:
                return False

            self._bodies.pop(key, None)
            if self.directory is not None:
                try:
                    (self.directory / info["file"]).unlink(missing_ok=True)
                except IOError as e:
                    logger.error(f"Error deleting cache file: {e}")
            self._save_index()
            return True

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._index.keys())

    def add_all(self, urls: Iterable[str], fetch: Callable[[str], CachedResponse]) -> int:
        """
        Fetch every URL and store all responses, or none of them.

        Raises:
            CacheError: a fetch raised or returned a non-ok response
        """
        responses = []
        for url in urls:
            try:
                response = fetch(url)
            except Exception as e:
                raise CacheError(
                    f"Failed to fetch {url}: {e}",
                    cache_name=self.name,
                    url=url,
                ) from e
            if not response.ok:
                raise CacheError(
                    f"Failed to fetch {url}: HTTP {response.status}",
                    cache_name=self.name,
                    url=url,
                )
            responses.append((url, response))

        with self._lock:
            for url, response in responses:
                self.put(url, response)
        return len(responses)


class CacheStorage:
    """
    Registry of named caches.

    Usage:
        storage = CacheStorage(Path("local_data/caches"))
        static = storage.open("lingoquest-v1.0.0-static")
        static.put(url, response)
        storage.match(url)
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else None
        self._caches: Dict[str, Cache] = {}
        self._lock = threading.RLock()

        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)

    def _validate_name(self, name: str) -> None:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise CacheError(f"Invalid cache name: {name!r}", cache_name=name)

    def open(self, name: str) -> Cache:
        """Open a cache, creating it if needed."""
        self._validate_name(name)
        with self._lock:
            if name not in self._caches:
                directory = self.root / name if self.root is not None else None
                self._caches[name] = Cache(name, directory)
            return self._caches[name]

    def has(self, name: str) -> bool:
        return name in self.keys()

    def delete(self, name: str) -> bool:
        """Delete a cache and all of its entries."""
        with self._lock:
            existed = self.has(name)
            self._caches.pop(name, None)
            if self.root is not None and (self.root / name).is_dir():
                shutil.rmtree(self.root / name)
            return existed

    def keys(self) -> List[str]:
        """Names of all existing caches."""
        with self._lock:
            names = set(self._caches)
            if self.root is not None:
                names.update(p.name for p in self.root.iterdir() if p.is_dir())
            return sorted(names)

    def match(self, url: str) -> Optional[CachedResponse]:
        """Look a URL up across every cache."""
        for name in self.keys():
            response = self.open(name).match(url)
            if response is not None:
                return response
        return None
