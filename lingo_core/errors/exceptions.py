# =============================================================================
# lingo_core/errors/exceptions.py
# Custom Exception Hierarchy for LingoQuest
# =============================================================================

from typing import Optional, Dict, Any


class LingoQuestError(Exception):
    """
    Base exception for all LingoQuest errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "NET_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "LQ_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class SerializationError(LingoQuestError):
    """Raised when persisted data cannot be decoded (corrupt, not missing)"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        if field:
            details["field"] = field

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


class PersistenceError(LingoQuestError):
    """Raised when a store read or write fails"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        backend: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        if backend:
            details["backend"] = backend

        super().__init__(
            message=message,
            code="STORE_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# NETWORK EXCEPTIONS
# =============================================================================

class TransportError(LingoQuestError):
    """Raised when no response was received (timeout, refused, DNS)"""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        method: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if url:
            details["url"] = url
        if method:
            details["method"] = method

        super().__init__(
            message=message,
            code="NET_001",
            details=details,
            **kwargs,
        )


class HTTPStatusError(LingoQuestError):
    """Raised when the server answered with a non-success status"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if url:
            details["url"] = url

        super().__init__(
            message=message,
            code="NET_002",
            details=details,
            **kwargs,
        )
        self.status_code = status_code


# =============================================================================
# CACHE EXCEPTIONS
# =============================================================================

class CacheError(LingoQuestError):
    """Raised when a cache generation cannot be populated or written"""

    def __init__(
        self,
        message: str,
        cache_name: Optional[str] = None,
        url: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if cache_name:
            details["cache_name"] = cache_name
        if url:
            details["url"] = url

        super().__init__(
            message=message,
            code="CACHE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(LingoQuestError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
