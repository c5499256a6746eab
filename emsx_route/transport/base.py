"""
Transport contract for EMSX sessions.

A transport owns the session resource and the background thread that
delivers events. Every operation except stop() is asynchronous: it returns
immediately and its outcome arrives later as an event on the delivery thread.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict

from .. import exceptions
from ..core.events import CorrelationId, Event, format_elements


@dataclass(frozen=True)
class Request:
    """
    Outbound request bound to one service operation.

    Attributes:
        service_name (str): Service the request targets
        operation (str): Operation name (e.g. 'GroupRouteEx')
        payload (Dict[str, Any]): Ordered element tree of the request
    """

    service_name: str
    operation: str
    payload: Dict[str, Any]

    def __str__(self) -> str:
        return format_elements(self.operation, self.payload)


@dataclass(frozen=True)
class Service:
    """
    Handle of an opened service.

    Examples:
        >>> service = Service("//blp/emapisvc_beta")
        >>> service.create_request("GroupRouteEx", {"EMSX_BROKER": "BMTB"}).operation
        'GroupRouteEx'
    """

    name: str

    def create_request(self, operation: str, payload: Dict[str, Any]) -> Request:
        if not operation:
            raise ValueError("operation must be non-empty string")
        return Request(self.name, operation, dict(payload))


# Called on the delivery thread with each event batch and the transport that
# produced it. The return value reports whether the batch was handled.
EventHandler = Callable[[Event, "Transport"], bool]


class Transport(ABC):
    """
    Session transport delivering events to a single handler.

    Implementations guarantee that the handler is never invoked concurrently
    with itself: batches are delivered one at a time from one thread.

    Attributes:
        handler (EventHandler): Consumer of every delivered event batch
    """

    def __init__(self, handler: EventHandler):
        if not callable(handler):
            raise TypeError(f"handler must be callable, got {type(handler).__name__}")
        self.handler = handler

    @abstractmethod
    def start_async(self) -> bool:
        """Begin connecting. Returns False if the start could not be initiated."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the session, blocking until the delivery thread has drained."""

    @abstractmethod
    def open_service_async(self, name: str) -> bool:
        """Request a service. The outcome arrives as a SERVICE_STATUS event."""

    @abstractmethod
    def get_service(self, name: str) -> Service:
        """
        Return the handle of an opened service.

        Raises:
            ServiceNotAvailableError: If the service has not been opened
        """

    @abstractmethod
    def send_request(self, request: Request, correlation_id: CorrelationId) -> CorrelationId:
        """Submit a request. Responses arrive as RESPONSE events tagged with the id."""

    def close(self) -> None:
        """Release resources held by the transport. Safe to call repeatedly."""

    def _require_service(self, opened: Dict[str, Service], name: str) -> Service:
        try:
            return opened[name]
        except KeyError:
            raise exceptions.ServiceNotAvailableError(
                f"Service {name} has not been opened"
            ) from None
