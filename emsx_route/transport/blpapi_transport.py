"""
EMSX transport backed by the Bloomberg API (blpapi).

BlpapiTransport wraps a blpapi.Session: blpapi owns the connection and the
event delivery thread, this class converts between blpapi objects and the
local event model so the dispatcher never touches the SDK directly.

Requires the optional 'blpapi' dependency:
    pip install "emsx-grouproute[blpapi]"
"""

import threading
from typing import Any, Dict, Mapping, Optional, TextIO

import blpapi
from loguru import logger

from ..core.console import ConsoleOut
from ..core.events import CorrelationId, Event, EventCategory, Message
from ..exceptions import ServiceNotAvailableError, TransportError
from .base import EventHandler, Request, Service, Transport


_CATEGORIES = {
    blpapi.Event.SESSION_STATUS: EventCategory.SESSION_STATUS,
    blpapi.Event.SERVICE_STATUS: EventCategory.SERVICE_STATUS,
    blpapi.Event.RESPONSE: EventCategory.RESPONSE,
    blpapi.Event.PARTIAL_RESPONSE: EventCategory.PARTIAL_RESPONSE,
    blpapi.Event.REQUEST_STATUS: EventCategory.REQUEST_STATUS,
    blpapi.Event.ADMIN: EventCategory.ADMIN,
    blpapi.Event.TIMEOUT: EventCategory.TIMEOUT,
}

_COMPLEX_TYPES = (blpapi.DataType.SEQUENCE, blpapi.DataType.CHOICE)


def element_to_python(element: "blpapi.Element") -> Any:
    """Convert a blpapi element into scalars, lists and dicts."""
    if element.isArray():
        if element.datatype() in _COMPLEX_TYPES:
            return [
                element_to_python(element.getValueAsElement(i))
                for i in range(element.numValues())
            ]
        return [element.getValue(i) for i in range(element.numValues())]

    if element.datatype() == blpapi.DataType.CHOICE:
        choice = element.getChoice()
        return {str(choice.name()): element_to_python(choice)}

    if element.datatype() == blpapi.DataType.SEQUENCE:
        return {
            str(child.name()): element_to_python(child)
            for child in element.elements()
            if not child.isNull()
        }

    return element.getValue()


def convert_message(msg: "blpapi.Message") -> Message:
    elements = element_to_python(msg.asElement())
    if not isinstance(elements, dict):
        elements = {"value": elements}

    correlation_ids = tuple(
        CorrelationId(cid.value())
        for cid in msg.correlationIds()
        if cid.valueType() == blpapi.CorrelationId.INT_TYPE
    )
    return Message(str(msg.messageType()), elements, correlation_ids)


def convert_event(event: "blpapi.Event") -> Event:
    category = _CATEGORIES.get(event.eventType(), EventCategory.OTHER)
    return Event(category, tuple(convert_message(msg) for msg in event))


def populate_element(element: "blpapi.Element", payload: Mapping[str, Any]) -> None:
    """Write an ordered element tree into a blpapi request element."""
    for name, value in payload.items():
        if isinstance(value, Mapping):
            populate_element(element.getElement(name), value)
        elif isinstance(value, (list, tuple)):
            if not value:
                continue
            child = element.getElement(name)
            for item in value:
                if isinstance(item, Mapping):
                    populate_element(child.appendElement(), item)
                else:
                    child.appendValue(item)
        else:
            element.setElement(name, value)


class BlpapiTransport(Transport):
    """
    Transport over a blpapi.Session.

    blpapi delivers events on its own thread and never calls the handler
    concurrently with itself.

    Attributes:
        server_host (str): Host of the API endpoint
        server_port (int): Port of the API endpoint
        max_event_queue_size (int): Bound of the session's event queue

    Events that cannot be converted are reported on the console under
    console_lock and never reach the handler.

    Examples:
        >>> transport = BlpapiTransport(dispatcher.process_event, "localhost", 8194)
        >>> transport.start_async()
        True
        >>> transport.stop()
    """

    def __init__(
        self,
        handler: EventHandler,
        server_host: str = "localhost",
        server_port: int = 8194,
        max_event_queue_size: int = 10000,
        console_lock: Optional[threading.Lock] = None,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(handler)

        self._console_lock = console_lock if console_lock is not None else threading.Lock()
        self._stream = stream
        self.server_host = server_host
        self.server_port = server_port
        self.max_event_queue_size = max_event_queue_size

        options = blpapi.SessionOptions()
        options.setServerHost(server_host)
        options.setServerPort(server_port)
        options.setMaxEventQueueSize(max_event_queue_size)

        self._session = blpapi.Session(options, self._on_event)
        self._services: Dict[str, "blpapi.Service"] = {}
        self._started = False

    def _on_event(self, event: "blpapi.Event", _session: "blpapi.Session") -> None:
        # Nothing may escape into the blpapi delivery thread
        try:
            self.handler(convert_event(event), self)
        except blpapi.Exception as e:
            logger.error(f"Failed to convert blpapi event: {e}")
            ConsoleOut.emit(self._console_lock, f"Library Exception !!!{e}", self._stream)
        except Exception as e:
            logger.exception(f"Unexpected error while converting blpapi event: {e}")
            ConsoleOut.emit(self._console_lock, f"Unexpected Exception !!!{e}", self._stream)

    def start_async(self) -> bool:
        try:
            self._started = bool(self._session.startAsync())
        except blpapi.Exception as e:
            raise TransportError(str(e)) from e

        if self._started:
            logger.info(f"blpapi session starting ({self.server_host}:{self.server_port})")
        else:
            logger.error("blpapi session failed to start")
        return self._started

    def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        try:
            self._session.stop()
        except blpapi.Exception as e:
            raise TransportError(str(e)) from e
        logger.info("blpapi session stopped")

    def open_service_async(self, name: str) -> bool:
        try:
            self._session.openServiceAsync(name)
        except blpapi.Exception as e:
            raise TransportError(str(e)) from e
        return True

    def get_service(self, name: str) -> Service:
        try:
            self._services[name] = self._session.getService(name)
        except blpapi.NotFoundException as e:
            raise ServiceNotAvailableError(str(e)) from e
        except blpapi.Exception as e:
            raise TransportError(str(e)) from e
        return Service(name)

    def send_request(self, request: Request, correlation_id: CorrelationId) -> CorrelationId:
        service = self._services.get(request.service_name)
        if service is None:
            raise ServiceNotAvailableError(
                f"Service {request.service_name} has not been opened"
            )

        try:
            blp_request = service.createRequest(request.operation)
            populate_element(blp_request.asElement(), request.payload)
            self._session.sendRequest(
                blp_request,
                correlationId=blpapi.CorrelationId(correlation_id.value),
            )
        except blpapi.Exception as e:
            raise TransportError(str(e)) from e

        return correlation_id

    def close(self) -> None:
        self.stop()
