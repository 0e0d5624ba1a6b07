"""
API Client Module
Offline-aware request execution for the LingoQuest backend
"""

from .result import ApiResult
from .client import ApiClient, SyncState

__all__ = [
    "ApiResult",
    "ApiClient",
    "SyncState",
]
