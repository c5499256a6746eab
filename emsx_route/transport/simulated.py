"""
In-process simulated EMSX transport.

SimulatedTransport behaves like a session against a local EMSX service: it
owns one delivery thread fed by a bounded queue, answers start, open service
and GroupRouteEx requests with the events a real session would deliver, and
drains the queue on stop(). It lets the client run end to end without a
terminal connection (simulated order routing, no broker involved).
"""

import itertools
import queue
import threading
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from ..core.events import (
    ERROR_INFO,
    GROUP_ROUTE_EX,
    SERVICE_OPEN_FAILURE,
    SERVICE_OPENED,
    SESSION_CONNECTION_UP,
    SESSION_STARTED,
    SESSION_STARTUP_FAILURE,
    SESSION_TERMINATED,
    CorrelationId,
    Event,
    EventCategory,
    Message,
)
from .base import EventHandler, Request, Service, Transport


DEFAULT_SERVICES = ("//blp/emapisvc_beta", "//blp/emapisvc")

_SHUTDOWN = object()

Responder = Callable[[Request, CorrelationId], List[Message]]


class SimulatedBroker:
    """
    Responder that routes group route requests against a fake broker.

    Every requested sequence is routed and receives the next route id,
    except sequences listed in rejects, which come back as failed routes.

    Attributes:
        rejects (Dict[int, tuple]): sequence -> (error_code, error_message)
        known_sequences (set, optional): If given, sequences not in it fail
            with error code 3 "Order not found"
        first_route_id (int): Route id assigned to the first routed order

    Examples:
        >>> broker = SimulatedBroker(rejects={3734837: (12, "broker rejected")})
        >>> transport = SimulatedTransport(handler, responder=broker)
    """

    def __init__(
        self,
        rejects: Optional[Dict[int, tuple]] = None,
        known_sequences: Optional[Iterable[int]] = None,
        first_route_id: int = 1,
    ):
        self.rejects = dict(rejects or {})
        self.known_sequences = set(known_sequences) if known_sequences is not None else None
        self._route_ids = itertools.count(first_route_id)

    def __call__(self, request: Request, correlation_id: CorrelationId) -> List[Message]:
        if request.operation != GROUP_ROUTE_EX:
            return [Message(
                ERROR_INFO,
                {
                    "ERROR_CODE": 2,
                    "ERROR_MESSAGE": f"Unsupported operation {request.operation}",
                },
                (correlation_id,),
            )]

        sequences = request.payload.get("EMSX_SEQUENCE", [])
        if not sequences:
            return [Message(
                ERROR_INFO,
                {"ERROR_CODE": 1, "ERROR_MESSAGE": "EMSX_SEQUENCE is required"},
                (correlation_id,),
            )]

        success, failed = [], []
        for sequence in sequences:
            if sequence in self.rejects:
                code, text = self.rejects[sequence]
                failed.append({
                    "EMSX_SEQUENCE": sequence,
                    "ERROR_CODE": code,
                    "ERROR_MESSAGE": text,
                })
            elif self.known_sequences is not None and sequence not in self.known_sequences:
                failed.append({
                    "EMSX_SEQUENCE": sequence,
                    "ERROR_CODE": 3,
                    "ERROR_MESSAGE": "Order not found",
                })
            else:
                success.append({
                    "EMSX_SEQUENCE": sequence,
                    "EMSX_ROUTE_ID": next(self._route_ids),
                })

        elements = {}
        if success:
            elements["EMSX_SUCCESS_ROUTES"] = success
        if failed:
            elements["EMSX_FAILED_ROUTES"] = failed
        elements["MESSAGE"] = (
            f"{len(success)} of {len(sequences)} order(s) routed to "
            f"{request.payload.get('EMSX_BROKER', '')}"
        )
        return [Message(GROUP_ROUTE_EX, elements, (correlation_id,))]


class SimulatedTransport(Transport):
    """
    Thread-based transport simulating an EMSX session.

    Events are queued by the session operations and delivered to the handler
    by a single daemon thread, strictly one batch at a time. The queue holds
    at most max_event_queue_size batches; batches that do not fit are dropped
    with a warning.

    Attributes:
        handler (EventHandler): Consumer of every event batch
        services (tuple): Service names that open successfully
        responder (Responder): Produces response messages for a request
        fail_startup (bool): Deliver SessionStartupFailure instead of
            SessionStarted
        dropped_events (int): Number of batches lost to a full queue

    Examples:
        >>> transport = SimulatedTransport(dispatcher.process_event)
        >>> transport.start_async()
        True
        >>> # ... events are delivered on the transport thread ...
        >>> transport.stop()
    """

    def __init__(
        self,
        handler: EventHandler,
        services: Iterable[str] = DEFAULT_SERVICES,
        responder: Optional[Responder] = None,
        max_event_queue_size: int = 10000,
        fail_startup: bool = False,
    ):
        super().__init__(handler)

        if max_event_queue_size <= 0:
            raise ValueError(
                f"max_event_queue_size must be positive, got {max_event_queue_size}"
            )

        self.services = tuple(services)
        self.responder = responder if responder is not None else SimulatedBroker()
        self.fail_startup = fail_startup
        self.dropped_events = 0

        self._queue: queue.Queue = queue.Queue(maxsize=max_event_queue_size)
        self._opened: Dict[str, Service] = {}
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._running = False
        self._sent: List[Request] = []

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def sent_requests(self) -> List[Request]:
        """Requests submitted through send_request(), in order."""
        with self._state_lock:
            return list(self._sent)

    def start_async(self) -> bool:
        with self._state_lock:
            if self._running:
                logger.warning("Simulated session already started")
                return False
            self._running = True
            self._thread = threading.Thread(
                target=self._deliver_events,
                name="emsx-event-delivery",
                daemon=True,
            )
            self._thread.start()

        logger.info("Simulated session starting")

        if self.fail_startup:
            self._post(Event(EventCategory.SESSION_STATUS, (
                Message(SESSION_STARTUP_FAILURE, {
                    "reason": {"description": "Simulated startup failure"},
                }),
            )))
        else:
            self._post(Event(EventCategory.SESSION_STATUS, (
                Message(SESSION_CONNECTION_UP, {"server": "localhost:8194"}),
                Message(SESSION_STARTED, {}),
            )))
        return True

    def open_service_async(self, name: str) -> bool:
        logger.debug(f"Opening simulated service {name}")

        if name in self.services:
            with self._state_lock:
                self._opened[name] = Service(name)
            message = Message(SERVICE_OPENED, {"serviceName": name})
        else:
            message = Message(SERVICE_OPEN_FAILURE, {
                "serviceName": name,
                "reason": {"description": "Service not found"},
            })

        return self._post(Event(EventCategory.SERVICE_STATUS, (message,)))

    def get_service(self, name: str) -> Service:
        with self._state_lock:
            return self._require_service(self._opened, name)

    def send_request(self, request: Request, correlation_id: CorrelationId) -> CorrelationId:
        self.get_service(request.service_name)

        with self._state_lock:
            self._sent.append(request)

        messages = self.responder(request, correlation_id)
        self._post(Event(EventCategory.RESPONSE, tuple(messages)))
        return correlation_id

    def wait_until_idle(self) -> None:
        """
        Block until every queued event, including events queued by the
        handler while processing, has been delivered.
        """
        if self._running:
            self._queue.join()

    def post(self, event: Event) -> bool:
        """Queue an arbitrary event for delivery, as the service would."""
        return self._post(event)

    def _post(self, event: Event) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            self.dropped_events += 1
            logger.warning(
                f"Event queue full ({self._queue.maxsize}), dropping {event}"
            )
            return False

    def _deliver_events(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is _SHUTDOWN:
                    break
                self.handler(event, self)
            except Exception as e:
                # The handler contract is to never raise; keep the thread alive
                logger.error(f"Event handler raised on {event}: {e}")
            finally:
                self._queue.task_done()

        logger.debug("Event delivery thread exiting")

    def stop(self) -> None:
        """
        Terminate the session and wait for the delivery thread to finish.

        Every event queued before stop() is delivered first. Safe to call
        when the session was never started or is already stopped.
        """
        with self._state_lock:
            if not self._running:
                logger.debug("Simulated session is not running")
                return
            self._running = False
            thread = self._thread

        logger.info("Stopping simulated session...")

        # Blocking puts: the terminal events must not be dropped
        self._queue.put(Event(EventCategory.SESSION_STATUS, (
            Message(SESSION_TERMINATED, {}),
        )))
        self._queue.put(_SHUTDOWN)

        if thread is not None and thread is not threading.current_thread():
            thread.join()

        with self._state_lock:
            self._opened.clear()
            self._thread = None

        logger.info("Simulated session stopped")

    def close(self) -> None:
        self.stop()

    def __repr__(self) -> str:
        status = "running" if self._running else "stopped"
        return f"SimulatedTransport({status}, services={list(self.services)})"
