# =============================================================================
# lingo_core/errors/__init__.py
# Centralized Error Handling for LingoQuest
# =============================================================================

from .exceptions import (
    LingoQuestError,
    SerializationError,
    PersistenceError,
    TransportError,
    HTTPStatusError,
    CacheError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    error_boundary,
)

__all__ = [
    # Exceptions
    "LingoQuestError",
    "SerializationError",
    "PersistenceError",
    "TransportError",
    "HTTPStatusError",
    "CacheError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "error_boundary",
]
