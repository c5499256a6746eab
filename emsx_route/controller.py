"""
Session controller for the group route example.

GroupRouteSession owns the transport and the dispatcher and drives the
lifecycle:

    connect (async) -> [delivery thread: open service -> send request ->
    print responses] -> operator presses ENTER -> stop flag set under the
    dispatch lock -> blocking stop -> release resources

The blocking console read is the only place the control thread waits.
"""

from typing import Callable, Optional, TextIO

from loguru import logger

from .config import SessionSettings
from .core.console import ConsoleOut
from .core.context import SessionContext
from .core.correlation import CorrelationRegistry
from .core.dispatcher import EventDispatcher, RequestFactory
from .core.request_builder import build_group_route_request
from .transport.base import EventHandler, Transport


TransportFactory = Callable[[SessionSettings, EventHandler, SessionContext], Transport]


def default_transport_factory(
    settings: SessionSettings,
    handler: EventHandler,
    context: Optional[SessionContext] = None,
) -> Transport:
    """Create the transport named by settings.transport."""
    if settings.transport == "blpapi":
        # Imported here so the simulated transport works without blpapi installed
        from .transport.blpapi_transport import BlpapiTransport

        return BlpapiTransport(
            handler,
            server_host=settings.server_host,
            server_port=settings.server_port,
            max_event_queue_size=settings.max_event_queue_size,
            console_lock=context.console_lock if context is not None else None,
        )

    from .transport.simulated import SimulatedTransport

    return SimulatedTransport(
        handler,
        services=(settings.service_name,),
        max_event_queue_size=settings.max_event_queue_size,
    )


class GroupRouteSession:
    """
    Drives one session from connect to shutdown.

    Attributes:
        settings (SessionSettings): Immutable connection settings
        context (SessionContext): Stop flag and locks shared with the
            dispatcher
        dispatcher (EventDispatcher): Created by create_session()
        transport (Transport): Created by create_session()

    Examples:
        >>> with GroupRouteSession(SessionSettings()) as session:
        ...     session.run()
        Connecting to localhost:8194
        ...
    """

    def __init__(
        self,
        settings: SessionSettings,
        transport_factory: TransportFactory = default_transport_factory,
        request_factory: RequestFactory = build_group_route_request,
        input_func: Callable[[], str] = input,
        stream: Optional[TextIO] = None,
    ):
        if not isinstance(settings, SessionSettings):
            raise TypeError(
                f"settings must be SessionSettings instance, got {type(settings).__name__}"
            )

        self.settings = settings
        self.context = SessionContext()
        self.registry = CorrelationRegistry()
        self.dispatcher: Optional[EventDispatcher] = None
        self.transport: Optional[Transport] = None

        self._transport_factory = transport_factory
        self._request_factory = request_factory
        self._input = input_func
        self._stream = stream

    def _print(self, text: str) -> None:
        ConsoleOut.emit(self.context.console_lock, text, self._stream)

    def create_session(self) -> bool:
        """
        Build the dispatcher and transport and start the session.

        Returns:
            bool: Result of the transport's start_async()
        """
        self._print(
            f"Connecting to {self.settings.server_host}:{self.settings.server_port}"
        )

        self.dispatcher = EventDispatcher(
            self.context,
            self.settings.service_name,
            self._request_factory,
            registry=self.registry,
            stream=self._stream,
        )
        self.transport = self._transport_factory(
            self.settings, self.dispatcher.process_event, self.context
        )

        started = self.transport.start_async()
        if not started:
            logger.error(
                f"Failed to start session to "
                f"{self.settings.server_host}:{self.settings.server_port}"
            )
        return started

    def run(self) -> None:
        """
        Run the session until the operator presses ENTER.

        If the session cannot be started, the partially created session is
        torn down and run() returns without waiting for input.
        """
        if not self.create_session():
            self._print("Failed to start session.")
            self.close()
            return

        self._print("\nPress ENTER to quit")
        self._input()

        self.context.request_stop()
        self.transport.stop()

        pending = self.registry.pending()
        if pending:
            logger.warning(f"Stopped with {len(pending)} request(s) still unanswered")

        self._print("\nExiting...")

    def close(self) -> None:
        """Release the transport. Safe to call repeatedly."""
        if self.transport is not None:
            transport, self.transport = self.transport, None
            transport.close()
            logger.debug("Session resources released")

    def __enter__(self) -> "GroupRouteSession":
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        self.close()
        return False
