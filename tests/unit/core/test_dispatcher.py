"""
Unit tests for EventDispatcher.

Tests cover:
- Session status handling (open service, startup failure)
- Service status handling (request submission, open failure)
- Response handling (ErrorInfo, GroupRouteEx success/failed routes)
- Fallback reporting of other event categories
- Per-message routing inside mixed batches
- Top-level exception guard
"""

import io
from unittest.mock import ANY

import pytest

from emsx_route.core.dispatcher import EventDispatcher
from emsx_route.core.events import (
    SERVICE_OPEN_FAILURE,
    SERVICE_OPENED,
    SESSION_CONNECTION_UP,
    SESSION_STARTED,
    SESSION_STARTUP_FAILURE,
    SLOW_CONSUMER_WARNING,
    CorrelationId,
    Event,
    EventCategory,
    Message,
)
from emsx_route.exceptions import TransportError
from emsx_route.transport.base import Request
from tests.factories import (
    SERVICE_NAME,
    error_info_message,
    group_route_message,
    lines_of,
    response_event,
    service_event,
    session_event,
)


def result_lines(output):
    """Success, failure and trailing status lines of a group route report."""
    return [
        line for line in lines_of(output)
        if line.startswith(("Success: ", "Failed: "))
        or (line.startswith("MESSAGE:") and not line.startswith("MESSAGE: "))
    ]


class TestDispatcherInitialization:
    """Test dispatcher construction."""

    def test_init_with_valid_params(self, context):
        dispatcher = EventDispatcher(context, SERVICE_NAME, lambda service: None)

        assert dispatcher.context is context
        assert dispatcher.service_name == SERVICE_NAME
        assert len(dispatcher.registry) == 0

    def test_init_with_invalid_context(self):
        with pytest.raises(TypeError, match="context must be SessionContext instance"):
            EventDispatcher("not a context", SERVICE_NAME, lambda service: None)

    def test_init_with_empty_service_name(self, context):
        with pytest.raises(ValueError, match="service_name must be non-empty string"):
            EventDispatcher(context, "", lambda service: None)


class TestSessionStatus:
    """Test SESSION_STATUS handling."""

    def test_session_started_opens_service_once(self, dispatcher, session, output):
        result = dispatcher.process_event(session_event(SESSION_STARTED), session)

        assert result is True
        session.open_service_async.assert_called_once_with(SERVICE_NAME)
        assert lines_of(output) == ["Processing SESSION_EVENT", "Session started..."]

    def test_startup_failure_returns_false_without_opening(self, dispatcher, session, output):
        result = dispatcher.process_event(session_event(SESSION_STARTUP_FAILURE), session)

        assert result is False
        session.open_service_async.assert_not_called()
        assert "Session startup failed" in lines_of(output)

    def test_startup_failure_aborts_rest_of_batch(self, dispatcher, session):
        event = session_event(SESSION_STARTUP_FAILURE, SESSION_STARTED)

        result = dispatcher.process_event(event, session)

        assert result is False
        session.open_service_async.assert_not_called()

    def test_every_message_in_batch_is_routed(self, dispatcher, session):
        """A leading unrecognized message does not hide the ones after it."""
        event = session_event(SESSION_CONNECTION_UP, SESSION_STARTED)

        result = dispatcher.process_event(event, session)

        assert result is True
        session.open_service_async.assert_called_once_with(SERVICE_NAME)

    def test_no_service_opened_after_stop(self, dispatcher, session, context):
        context.request_stop()

        result = dispatcher.process_event(session_event(SESSION_STARTED), session)

        assert result is True
        session.open_service_async.assert_not_called()


class TestServiceStatus:
    """Test SERVICE_STATUS handling."""

    def test_service_opened_submits_one_request(self, dispatcher, session, output):
        # Act
        result = dispatcher.process_event(service_event(SERVICE_OPENED), session)

        # Assert
        assert result is True
        session.get_service.assert_called_once_with(SERVICE_NAME)
        session.send_request.assert_called_once_with(ANY, ANY)

        request, correlation_id = session.send_request.call_args.args
        assert isinstance(request, Request)
        assert request.operation == "GroupRouteEx"
        assert request.service_name == SERVICE_NAME
        assert isinstance(correlation_id, CorrelationId)

        lines = lines_of(output)
        assert lines[:3] == ["Processing SERVICE_EVENT", "Service opened...",
                             "Request: GroupRouteEx = {"]

    def test_submitted_request_is_registered(self, dispatcher, session):
        dispatcher.process_event(service_event(SERVICE_OPENED), session)

        request, correlation_id = session.send_request.call_args.args
        pending = dispatcher.registry.pending()
        assert len(pending) == 1
        assert pending[0].correlation_id == correlation_id
        assert pending[0].request is request

    def test_service_open_failure_returns_false(self, dispatcher, session, output):
        result = dispatcher.process_event(service_event(SERVICE_OPEN_FAILURE), session)

        assert result is False
        session.send_request.assert_not_called()
        assert "Error: Service failed to open" in lines_of(output)

    def test_request_factory_receives_service_handle(self, context, session, output):
        seen = []

        def factory(service):
            seen.append(service)
            return service.create_request("GroupRouteEx", {"EMSX_SEQUENCE": [1]})

        dispatcher = EventDispatcher(context, SERVICE_NAME, factory, stream=output)
        dispatcher.process_event(service_event(SERVICE_OPENED), session)

        assert [service.name for service in seen] == [SERVICE_NAME]

    def test_no_request_after_stop(self, dispatcher, session, context):
        context.request_stop()

        result = dispatcher.process_event(service_event(SERVICE_OPENED), session)

        assert result is True
        session.send_request.assert_not_called()


class TestResponse:
    """Test RESPONSE handling."""

    def test_group_route_result_lines_in_order(self, dispatcher, session, output):
        """Two routed orders, one rejected, then the status message."""
        # Arrange
        msg = group_route_message(
            success=[(3734835, 101), (3734836, 102)],
            failed=[(3734837, 12, "broker rejected")],
            message="2 of 3 order(s) routed",
        )

        # Act
        result = dispatcher.process_event(response_event(msg), session)

        # Assert
        assert result is True
        assert result_lines(output) == [
            "Success: 3734835, 101",
            "Success: 3734836, 102",
            "Failed: 3734837, 12: broker rejected",
            "MESSAGE:2 of 3 order(s) routed",
        ]

    def test_message_is_printed_before_its_results(self, dispatcher, session, output):
        msg = group_route_message(success=[(1, 2)])

        dispatcher.process_event(response_event(msg), session)

        lines = lines_of(output)
        assert lines[0] == "Processing RESPONSE_EVENT"
        assert lines[1] == "MESSAGE: GroupRouteEx = {"
        assert lines.index("Success: 1, 2") > 1

    def test_absent_and_empty_failed_routes_print_the_same(self, context, session):
        outputs = []
        for failed in (None, []):
            output = io.StringIO()
            dispatcher = EventDispatcher(context, SERVICE_NAME, lambda s: None, stream=output)
            dispatcher.process_event(
                response_event(group_route_message(success=[(1, 2)], failed=failed)),
                session,
            )
            outputs.append(result_lines(output))

        assert outputs[0] == outputs[1]
        assert not any(line.startswith("Failed: ") for line in outputs[0])

    @pytest.mark.parametrize("count", [1, 3, 5])
    def test_one_line_per_failed_route(self, dispatcher, session, output, count):
        failed = [(100 + i, i, f"reason {i}") for i in range(count)]

        dispatcher.process_event(response_event(group_route_message(failed=failed)), session)

        failed_lines = [line for line in lines_of(output) if line.startswith("Failed: ")]
        assert failed_lines == [f"Failed: {100 + i}, {i}: reason {i}" for i in range(count)]

    def test_failed_routes_reported_without_success_routes(self, dispatcher, session, output):
        msg = group_route_message(success=None, failed=[(7, 3, "Order not found")])

        dispatcher.process_event(response_event(msg), session)

        assert "Failed: 7, 3: Order not found" in lines_of(output)

    def test_error_info(self, dispatcher, session, output):
        result = dispatcher.process_event(
            response_event(error_info_message(1, "Invalid EMSX_SEQUENCE")), session
        )

        assert result is True
        assert "ERROR CODE: 1\tERROR MESSAGE: Invalid EMSX_SEQUENCE" in lines_of(output)

    def test_mixed_batch_routes_each_message(self, dispatcher, session, output):
        """Every message of a batch is reported and routed by its own type."""
        event = response_event(
            error_info_message(5, "first"),
            group_route_message(success=[(1, 10)], message="second"),
            Message("UnknownResponse", {"note": "third"}),
            error_info_message(6, "fourth"),
        )

        result = dispatcher.process_event(event, session)

        lines = lines_of(output)
        assert result is True
        assert sum(1 for line in lines if line.startswith("MESSAGE: ")) == 4
        assert "ERROR CODE: 5\tERROR MESSAGE: first" in lines
        assert "Success: 1, 10" in lines
        assert "MESSAGE:second" in lines
        assert "MESSAGE: UnknownResponse = {" in lines
        assert "ERROR CODE: 6\tERROR MESSAGE: fourth" in lines

    def test_response_completes_pending_request(self, dispatcher, session):
        dispatcher.process_event(service_event(SERVICE_OPENED), session)
        _, correlation_id = session.send_request.call_args.args

        dispatcher.process_event(
            response_event(group_route_message(success=[(1, 2)], correlation_id=correlation_id)),
            session,
        )

        assert dispatcher.registry.pending() == []
        assert [entry.correlation_id for entry in dispatcher.registry.completed] == [correlation_id]
        assert dispatcher.registry.completed[0].responses == 1


class TestOtherEvents:
    """Test the fallback path for unhandled categories."""

    @pytest.mark.parametrize("category", [
        EventCategory.ADMIN,
        EventCategory.PARTIAL_RESPONSE,
        EventCategory.REQUEST_STATUS,
        EventCategory.TIMEOUT,
        EventCategory.OTHER,
    ])
    def test_reports_type_and_content(self, dispatcher, session, output, category):
        msg = Message(SLOW_CONSUMER_WARNING, {"queued": 10000})

        result = dispatcher.process_event(Event(category, (msg,)), session)

        assert result is True
        assert lines_of(output) == [
            "Processing UNHANDLED event",
            "SlowConsumerWarning",
            "SlowConsumerWarning = {",
            "    queued = 10000",
            "}",
        ]
        session.open_service_async.assert_not_called()
        session.send_request.assert_not_called()

    def test_reports_every_message(self, dispatcher, session, output):
        event = Event(EventCategory.ADMIN, (Message("First"), Message("Second")))

        dispatcher.process_event(event, session)

        lines = lines_of(output)
        assert lines.count("First") == 1
        assert lines.count("Second") == 1


class TestExceptionGuard:
    """Test that nothing propagates out of process_event."""

    def test_transport_error_returns_false(self, dispatcher, session, output):
        session.open_service_async.side_effect = TransportError("Session not started")

        result = dispatcher.process_event(session_event(SESSION_STARTED), session)

        assert result is False
        assert "Library Exception !!!Session not started" in lines_of(output)

    def test_malformed_response_returns_false(self, dispatcher, session, output):
        msg = Message("GroupRouteEx", {"EMSX_SUCCESS_ROUTES": []})

        result = dispatcher.process_event(response_event(msg), session)

        assert result is False
        assert any(line.startswith("Library Exception !!!") for line in lines_of(output))

    def test_malformed_failed_entry_suppresses_whole_result(self, dispatcher, session, output):
        """The result is parsed in full before any route line is printed."""
        msg = Message("GroupRouteEx", {
            "EMSX_SUCCESS_ROUTES": [{"EMSX_SEQUENCE": 1, "EMSX_ROUTE_ID": 10}],
            "EMSX_FAILED_ROUTES": [{"EMSX_SEQUENCE": 2}],
            "MESSAGE": "partial",
        })

        result = dispatcher.process_event(response_event(msg), session)

        lines = lines_of(output)
        assert result is False
        assert not any(line.startswith("Success: ") for line in lines)
        assert any(line.startswith("Library Exception !!!") for line in lines)

    def test_unexpected_error_returns_false(self, context, session, output):
        def broken_factory(service):
            raise RuntimeError("builder exploded")

        dispatcher = EventDispatcher(context, SERVICE_NAME, broken_factory, stream=output)

        result = dispatcher.process_event(service_event(SERVICE_OPENED), session)

        assert result is False
        assert "Unexpected Exception !!!builder exploded" in lines_of(output)

    def test_lock_released_after_error(self, dispatcher, session, context):
        session.open_service_async.side_effect = TransportError("boom")

        dispatcher.process_event(session_event(SESSION_STARTED), session)

        assert context.dispatch_lock.acquire(blocking=False)
        context.dispatch_lock.release()

    def test_dispatcher_is_callable_as_handler(self, dispatcher, session):
        assert dispatcher(session_event(SESSION_STARTED), session) is True
