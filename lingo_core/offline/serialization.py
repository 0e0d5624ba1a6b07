# =============================================================================
# lingo_core/offline/serialization.py
# Typed (De)serialization of the Offline Request Queue
# =============================================================================
"""
QueuedRequest records and their JSON encoding.

The persisted format is a JSON array of objects:

    [{"id": "...", "endpoint": "/progress", "method": "POST",
      "headers": {"Content-Type": "application/json"},
      "body": "{\"xp\": 10}", "enqueued_at": "2025-06-11T14:30:00"}]

Decoding never substitutes defaults for broken input: anything that is not a
well-formed array of complete records raises SerializationError.
"""

from __future__ import annotations
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from lingo_core.errors import SerializationError


def new_request_id() -> str:
    """Time-ordered, collision-resistant identifier."""
    return f"{time.time_ns()}-{uuid.uuid4().hex[:12]}"


@dataclass
class QueuedRequest:
    """A mutating request deferred while offline, replayed verbatim later."""
    endpoint: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    id: str = field(default_factory=new_request_id)
    enqueued_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        # Queue timestamps are naive local time
        if isinstance(self.enqueued_at, datetime) and self.enqueued_at.tzinfo is not None:
            self.enqueued_at = self.enqueued_at.astimezone().replace(tzinfo=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "endpoint": self.endpoint,
            "method": self.method,
            "headers": dict(self.headers),
            "body": self.body,
            "enqueued_at": self.enqueued_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, record: Any) -> QueuedRequest:
        if not isinstance(record, dict):
            raise SerializationError(
                f"Queue record must be an object, got {type(record).__name__}"
            )

        for name in ("id", "endpoint", "method", "enqueued_at"):
            if not isinstance(record.get(name), str) or not record[name]:
                raise SerializationError(
                    f"Queue record is missing '{name}'",
                    field=name,
                )

        headers = record.get("headers", {})
        if not isinstance(headers, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            raise SerializationError("Queue record headers must map str to str", field="headers")

        body = record.get("body")
        if body is not None and not isinstance(body, str):
            raise SerializationError("Queue record body must be a string or null", field="body")

        try:
            enqueued_at = datetime.fromisoformat(record["enqueued_at"])
        except ValueError as e:
            raise SerializationError(
                f"Invalid enqueued_at timestamp: {e}",
                field="enqueued_at",
            ) from e

        return cls(
            id=record["id"],
            endpoint=record["endpoint"],
            method=record["method"].upper(),
            headers=dict(headers),
            body=body,
            enqueued_at=enqueued_at,
        )


def dumps_queue(requests: List[QueuedRequest]) -> str:
    """
    Encode the queue as a JSON array.

    Every record is checked against the decoder first, so whatever is written
    can be read back.

    Raises:
        SerializationError: a record cannot be encoded or would not decode
    """
    records = []
    for request in requests:
        try:
            record = request.to_dict()
        except (AttributeError, TypeError) as e:
            raise SerializationError(f"Cannot encode queue record: {e}") from e
        QueuedRequest.from_dict(record)
        records.append(record)

    try:
        return json.dumps(records)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot encode queue record: {e}") from e


def loads_queue(payload: str) -> List[QueuedRequest]:
    """
    Decode a JSON array of queue records.

    Raises:
        SerializationError: payload is not valid JSON, not an array, or
            contains an incomplete record
    """
    try:
        records = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Queue payload is not valid JSON: {e}") from e

    if not isinstance(records, list):
        raise SerializationError(
            f"Queue payload must be a JSON array, got {type(records).__name__}"
        )

    return [QueuedRequest.from_dict(record) for record in records]
