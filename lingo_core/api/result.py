# =============================================================================
# lingo_core/api/result.py
# Result Container for Request Execution
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

from lingo_core.errors import LingoQuestError


@dataclass
class ApiResult:
    """
    Outcome of a request; the client never raises to its caller.

    - success: data set, error None
    - failure: data None, non-empty error
    - queued:  data None, queued True, descriptive (non-fatal) error text
    """
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: Optional[int] = None
    queued: bool = False
    metadata: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, status_code: Optional[int] = None) -> ApiResult:
        """Create a successful result"""
        return cls(data=data, status_code=status_code)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        status_code: Optional[int] = None,
        metadata: Dict[str, Any] = None,
    ) -> ApiResult:
        """Create a failed result"""
        return cls(
            error=error or "Request failed",
            error_code=error_code,
            status_code=status_code,
            metadata=metadata,
        )

    @classmethod
    def deferred(cls, request_id: str, queue_length: int) -> ApiResult:
        """Create a result for a request parked in the offline queue"""
        return cls(
            error="Request queued for when online",
            error_code="QUEUED",
            queued=True,
            metadata={"request_id": request_id, "queue_length": queue_length},
        )

    @classmethod
    def from_exception(cls, e: Exception) -> ApiResult:
        """Create a failed result from an exception"""
        if isinstance(e, LingoQuestError):
            return cls(
                error=e.message or e.code,
                error_code=e.code,
                status_code=e.details.get("status_code"),
                metadata=e.details,
            )
        return cls(
            error=str(e) or e.__class__.__name__,
            error_code="EXCEPTION",
        )
