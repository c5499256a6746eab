"""
Tests for which dispatch paths take the dispatch lock.

Session, service and response events are serialized against the stop
sequence. The fallback path for other categories is not, and these tests
pin that behavior down so a change to it is deliberate.
"""

import threading

from emsx_route.core.events import (
    SESSION_STARTED,
    SLOW_CONSUMER_WARNING,
    Event,
    EventCategory,
    Message,
)
from tests.factories import (
    group_route_message,
    lines_of,
    response_event,
    session_event,
)


def run_in_thread(target):
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread


class TestDispatchLocking:
    """Lock coverage of each dispatch path."""

    def test_fallback_runs_while_dispatch_lock_is_held(self, dispatcher, session, context, output):
        """Other events are handled even while the control thread holds the lock."""
        results = []
        event = Event(EventCategory.ADMIN, (Message(SLOW_CONSUMER_WARNING),))

        with context.dispatch_lock:
            thread = run_in_thread(lambda: results.append(dispatcher.process_event(event, session)))
            thread.join(timeout=5)

            assert not thread.is_alive()

        assert results == [True]
        assert lines_of(output)[:2] == ["Processing UNHANDLED event", "SlowConsumerWarning"]

    def test_response_waits_for_dispatch_lock(self, dispatcher, session, context, output):
        results = []
        event = response_event(group_route_message(success=[(1, 2)]))

        with context.dispatch_lock:
            thread = run_in_thread(lambda: results.append(dispatcher.process_event(event, session)))
            thread.join(timeout=0.2)

            assert thread.is_alive()
            assert output.getvalue() == ""

        thread.join(timeout=5)

        assert not thread.is_alive()
        assert results == [True]
        assert "Success: 1, 2" in lines_of(output)

    def test_session_event_after_stop_under_lock_opens_nothing(self, dispatcher, session, context):
        """A stop applied while a session event waits for the lock wins."""
        with context.dispatch_lock:
            thread = run_in_thread(
                lambda: dispatcher.process_event(session_event(SESSION_STARTED), session)
            )
            thread.join(timeout=0.2)
            context.request_stop()

        thread.join(timeout=5)

        assert not thread.is_alive()
        session.open_service_async.assert_not_called()
