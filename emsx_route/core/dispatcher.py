"""
Event dispatcher for the group route session

The dispatcher is the single consumer of events delivered by the transport.
It routes each batch by category and, inside a batch, each message by its
type:

    SESSION_STATUS   SessionStarted        -> open the EMSX service
                     SessionStartupFailure -> report, batch fails
    SERVICE_STATUS   ServiceOpened         -> build and submit the request
                     ServiceOpenFailure    -> report, batch fails
    RESPONSE         ErrorInfo             -> report code and text
                     GroupRouteEx          -> report success/failed routes
    anything else                          -> report type and content

Locking:
    The first three categories are handled while holding the dispatch lock,
    which serializes them against the stop sequence of the control thread.
    The fallback path runs without the lock. This asymmetry is a known race
    with shutdown and is kept as is; see test_dispatcher_locking.
"""

from typing import Callable, Optional, TextIO

from loguru import logger

from ..exceptions import TransportError
from ..transport.base import Request, Service, Transport
from .console import ConsoleOut
from .context import SessionContext
from .correlation import CorrelationRegistry
from .events import (
    ERROR_INFO,
    GROUP_ROUTE_EX,
    SERVICE_OPEN_FAILURE,
    SERVICE_OPENED,
    SESSION_STARTED,
    SESSION_STARTUP_FAILURE,
    CorrelationId,
    Event,
    EventCategory,
    Message,
)
from .models import ErrorInfo, GroupRouteResult


RequestFactory = Callable[[Service], Request]


class EventDispatcher:
    """
    Routes transport events to the session, service and response handlers.

    The transport calls process_event() from its delivery thread, one batch
    at a time. Handlers write their output through ConsoleOut and may call
    back into the transport (open a service, send the request).

    Attributes:
        context (SessionContext): Shared stop flag and locks
        service_name (str): Service opened once the session starts
        request_factory (RequestFactory): Builds the request once the
            service is open
        registry (CorrelationRegistry): Submitted requests by correlation id

    Examples:
        >>> context = SessionContext()
        >>> dispatcher = EventDispatcher(context, "//blp/emapisvc_beta",
        ...                              build_group_route_request)
        >>> transport = SimulatedTransport(dispatcher.process_event)
        >>> transport.start_async()
    """

    def __init__(
        self,
        context: SessionContext,
        service_name: str,
        request_factory: RequestFactory,
        registry: Optional[CorrelationRegistry] = None,
        stream: Optional[TextIO] = None,
    ):
        if not isinstance(context, SessionContext):
            raise TypeError(
                f"context must be SessionContext instance, got {type(context).__name__}"
            )
        if not service_name or not isinstance(service_name, str):
            raise ValueError("service_name must be non-empty string")

        self.context = context
        self.service_name = service_name
        self.request_factory = request_factory
        self.registry = registry if registry is not None else CorrelationRegistry()
        self._stream = stream

    def _out(self) -> ConsoleOut:
        return ConsoleOut(self.context.console_lock, self._stream)

    def _print(self, text: str) -> None:
        ConsoleOut.emit(self.context.console_lock, text, self._stream)

    def process_event(self, event: Event, session: Transport) -> bool:
        """
        Handle one event batch.

        Never raises: transport errors and unexpected exceptions are reported
        and turned into a False result for the batch.

        Args:
            event (Event): Batch delivered by the transport
            session (Transport): Transport that delivered the batch

        Returns:
            bool: True if the batch was handled, False on failure
        """
        try:
            logger.debug(f"Dispatching {event}")

            if event.category == EventCategory.SESSION_STATUS:
                with self.context.dispatch_serialized():
                    return self._process_session_event(event, session)
            elif event.category == EventCategory.SERVICE_STATUS:
                with self.context.dispatch_serialized():
                    return self._process_service_event(event, session)
            elif event.category == EventCategory.RESPONSE:
                with self.context.dispatch_serialized():
                    return self._process_response_event(event)
            else:
                return self._process_misc_event(event)

        except TransportError as e:
            logger.error(f"Transport error while processing {event}: {e.description}")
            self._print(f"Library Exception !!!{e.description}")
        except Exception as e:
            logger.exception(f"Unexpected error while processing {event}: {e}")
            self._print(f"Unexpected Exception !!!{e}")

        return False

    def _process_session_event(self, event: Event, session: Transport) -> bool:
        self._print("Processing SESSION_EVENT")

        for msg in event:
            if msg.message_type == SESSION_STARTED:
                self._print("Session started...")
                if self.context.stopped:
                    logger.info(f"Session is stopping, not opening {self.service_name}")
                    continue
                session.open_service_async(self.service_name)

            elif msg.message_type == SESSION_STARTUP_FAILURE:
                self._print("Session startup failed")
                logger.error(f"Session startup failed:\n{msg}")
                return False

        return True

    def _process_service_event(self, event: Event, session: Transport) -> bool:
        self._print("Processing SERVICE_EVENT")

        for msg in event:
            if msg.message_type == SERVICE_OPENED:
                self._print("Service opened...")
                if self.context.stopped:
                    logger.info("Session is stopping, not sending the request")
                    continue
                self._submit_request(session)

            elif msg.message_type == SERVICE_OPEN_FAILURE:
                self._print("Error: Service failed to open")
                logger.error(f"Service {self.service_name} failed to open:\n{msg}")
                return False

        return True

    def _submit_request(self, session: Transport) -> CorrelationId:
        service = session.get_service(self.service_name)
        request = self.request_factory(service)

        self._print(f"Request: {request}")

        correlation_id = session.send_request(request, CorrelationId.new())
        self.registry.register(correlation_id, request)

        logger.info(f"Sent {request.operation} request with correlation id {correlation_id}")
        return correlation_id

    def _process_response_event(self, event: Event) -> bool:
        self._print("Processing RESPONSE_EVENT")

        for msg in event:
            self._print(f"MESSAGE: {msg}")

            if msg.message_type == ERROR_INFO:
                error = ErrorInfo.from_message(msg)
                self._print(
                    f"ERROR CODE: {error.error_code}\tERROR MESSAGE: {error.error_message}"
                )

            elif msg.message_type == GROUP_ROUTE_EX:
                self._report_group_route(GroupRouteResult.from_message(msg))

            self._complete(msg)

        return True

    def _report_group_route(self, result: GroupRouteResult) -> None:
        for route in result.success_routes:
            self._print(f"Success: {route.sequence}, {route.route_id}")

        for route in result.failed_routes:
            self._print(f"Failed: {route.sequence}, {route.error_code}: {route.error_message}")

        self._print(f"MESSAGE:{result.message}")

    def _complete(self, msg: Message) -> None:
        # A RESPONSE event is the final answer for its correlation ids
        for correlation_id in msg.correlation_ids:
            self.registry.record_response(correlation_id)
            self.registry.complete(correlation_id)

    def _process_misc_event(self, event: Event) -> bool:
        self._print("Processing UNHANDLED event")

        for msg in event:
            with self._out() as out:
                out.writeline(msg.message_type)
                out.writeline(str(msg))

        return True

    def __call__(self, event: Event, session: Transport) -> bool:
        return self.process_event(event, session)
