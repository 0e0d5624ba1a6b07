"""
Configuration for the LingoQuest offline core.

Holds the request client's timeout/retry constants, the offline queue
horizon, and the cache worker's namespace, seed manifest and sync contract.
Values are layered: defaults, then a TOML file, then the ``[offline]`` table
of Streamlit secrets, then environment overrides.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging

import toml

from lingo_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LINGOQUEST_CONFIG"
API_BASE_URL_ENV_VAR = "LINGOQUEST_API_BASE_URL"
DEFAULT_CONFIG_FILE = Path("lingoquest.toml")


@dataclass
class OfflineConfig:
    """Configuration for the request client and the cache worker."""

    # ==================== REQUEST CLIENT ====================
    api_base_url: str = "http://localhost:3001/api"
    request_timeout: float = 10.0   # seconds
    max_retries: int = 3
    retry_delay: float = 1.0        # seconds, scaled by attempt number

    # ==================== OFFLINE QUEUE ====================
    queue_expiry_hours: float = 24.0
    queue_storage_key: str = "api_offline_queue"
    auth_token_key: str = "auth_token"
    database_path: Optional[str] = None   # None keeps the store in memory

    # ==================== CONNECTIVITY ====================
    monitor_connection: bool = False
    probe_interval: float = 10.0
    probe_timeout: float = 5.0
    probe_hosts: List[Tuple[str, int]] = field(default_factory=lambda: [
        ("8.8.8.8", 53),
        ("1.1.1.1", 53),
    ])

    # ==================== CACHE WORKER ====================
    cache_prefix: str = "lingoquest-"
    cache_version: str = "v1.0.0"
    cache_dir: Optional[str] = None       # None keeps caches in memory
    origin: str = "http://localhost:5173"
    base_path: str = ""
    static_assets: List[str] = field(default_factory=lambda: [
        "/",
        "/manifest.json",
        "/favicon.svg",
        "https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap",
    ])
    trusted_hosts: List[str] = field(default_factory=lambda: [
        "fonts.googleapis.com",
        "fonts.gstatic.com",
    ])
    shell_paths: List[str] = field(default_factory=lambda: ["/index.html", "/"])

    # ==================== BACKGROUND SYNC ====================
    sync_tag: str = "progress-sync"
    sync_payload_path: str = "/api/progress"
    sync_endpoint: str = "/api/progress"

    @property
    def queue_expiry(self) -> timedelta:
        return timedelta(hours=self.queue_expiry_hours)

    @property
    def cache_name(self) -> str:
        return f"{self.cache_prefix}{self.cache_version}"

    @property
    def static_cache_name(self) -> str:
        return f"{self.cache_name}-static"

    @property
    def dynamic_cache_name(self) -> str:
        return f"{self.cache_name}-dynamic"

    def validate(self) -> OfflineConfig:
        """Raise ConfigurationError if a value cannot work; returns self."""
        if self.request_timeout <= 0:
            raise ConfigurationError(
                "request_timeout must be positive",
                config_key="request_timeout",
                expected_type="float > 0",
            )
        if self.max_retries < 0:
            raise ConfigurationError(
                "max_retries cannot be negative",
                config_key="max_retries",
                expected_type="int >= 0",
            )
        if self.retry_delay < 0:
            raise ConfigurationError(
                "retry_delay cannot be negative",
                config_key="retry_delay",
                expected_type="float >= 0",
            )
        if self.queue_expiry_hours <= 0:
            raise ConfigurationError(
                "queue_expiry_hours must be positive",
                config_key="queue_expiry_hours",
                expected_type="float > 0",
            )
        if not self.cache_prefix:
            raise ConfigurationError(
                "cache_prefix cannot be empty",
                config_key="cache_prefix",
                expected_type="non-empty str",
            )
        return self

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> OfflineConfig:
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            logger.warning(f"Ignoring unknown offline config keys: {unknown}")

        kwargs = {k: v for k, v in values.items() if k in known}
        if "probe_hosts" in kwargs:
            kwargs["probe_hosts"] = [tuple(h) for h in kwargs["probe_hosts"]]
        return cls(**kwargs)


def _load_toml(path: Path) -> Dict[str, Any]:
    """Read the [offline] table (or the whole document) from a TOML file."""
    try:
        document = toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(
            f"Cannot read config file {path}: {e}",
            config_key=str(path),
        )
    return dict(document.get("offline", document))


def _load_secrets() -> Dict[str, Any]:
    """
    Read the [offline] table from Streamlit secrets.

    Expected secrets.toml format:
    [offline]
    api_base_url = "https://lingoquest.example.com/api"
    request_timeout = 10
    cache_version = "v1.0.1"
    """
    try:
        import streamlit as st
        if hasattr(st, "secrets") and "offline" in st.secrets:
            return dict(st.secrets["offline"])
    except Exception as e:
        # No secrets.toml configured
        logger.debug(f"Streamlit secrets unavailable: {e}")
    return {}


def load_config(
    path: Optional[Path] = None,
    use_secrets: bool = True,
) -> OfflineConfig:
    """
    Load the offline configuration.

    Args:
        path: TOML file to read (default: $LINGOQUEST_CONFIG or ./lingoquest.toml)
        use_secrets: Whether to merge the [offline] table of Streamlit secrets

    Returns:
        Validated OfflineConfig
    """
    values: Dict[str, Any] = {}

    config_path = path or Path(os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))
    config_path = Path(config_path)
    if config_path.exists():
        values.update(_load_toml(config_path))
        logger.info(f"Loaded offline config from {config_path}")
    elif path is not None:
        raise ConfigurationError(
            f"Config file not found: {config_path}",
            config_key=str(config_path),
        )

    if use_secrets:
        values.update(_load_secrets())

    base_url = os.getenv(API_BASE_URL_ENV_VAR)
    if base_url:
        values["api_base_url"] = base_url

    return OfflineConfig.from_dict(values).validate()
