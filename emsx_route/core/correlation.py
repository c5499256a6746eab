"""
Registry of outstanding requests keyed by correlation id.

The dispatcher records every request it submits together with the
correlation id returned by the transport, and completes the entry once the
final response for that id has been handled.
"""

import threading
from datetime import datetime
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger

from .events import CorrelationId


@dataclass
class PendingRequest:
    """
    A submitted request waiting for its response.

    Attributes:
        correlation_id (CorrelationId): Id the request was submitted under
        request (Any): The submitted request object
        submitted_at (datetime): When the request was registered
        responses (int): Number of response messages seen so far
    """

    correlation_id: CorrelationId
    request: object
    submitted_at: datetime = field(default_factory=datetime.utcnow)
    responses: int = 0


class CorrelationRegistry:
    """
    Thread-safe mapping from correlation id to the request it identifies.

    Examples:
        >>> registry = CorrelationRegistry()
        >>> cid = CorrelationId.new()
        >>> registry.register(cid, request)
        >>> registry.lookup(cid).request is request
        True
        >>> registry.complete(cid)
        >>> registry.lookup(cid) is None
        True
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[CorrelationId, PendingRequest] = {}
        self._completed: List[PendingRequest] = []

    def register(self, correlation_id: CorrelationId, request: object) -> PendingRequest:
        """
        Record a submitted request.

        Raises:
            TypeError: If correlation_id is not a CorrelationId
            ValueError: If the id is already registered
        """
        if not isinstance(correlation_id, CorrelationId):
            raise TypeError(
                f"correlation_id must be CorrelationId, got {type(correlation_id).__name__}"
            )

        with self._lock:
            if correlation_id in self._pending:
                raise ValueError(f"Correlation id {correlation_id} is already registered")
            entry = PendingRequest(correlation_id, request)
            self._pending[correlation_id] = entry

        logger.debug(f"Registered request under correlation id {correlation_id}")
        return entry

    def lookup(self, correlation_id: CorrelationId) -> Optional[PendingRequest]:
        with self._lock:
            return self._pending.get(correlation_id)

    def record_response(self, correlation_id: CorrelationId) -> Optional[PendingRequest]:
        """Count a response message against a pending request, if known."""
        with self._lock:
            entry = self._pending.get(correlation_id)
            if entry is not None:
                entry.responses += 1
            return entry

    def complete(self, correlation_id: CorrelationId) -> Optional[PendingRequest]:
        """Move a request out of the pending set. Unknown ids are ignored."""
        with self._lock:
            entry = self._pending.pop(correlation_id, None)
            if entry is not None:
                self._completed.append(entry)

        if entry is None:
            logger.debug(f"No pending request for correlation id {correlation_id}")
        return entry

    def pending(self) -> List[PendingRequest]:
        with self._lock:
            return list(self._pending.values())

    @property
    def completed(self) -> List[PendingRequest]:
        with self._lock:
            return list(self._completed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
