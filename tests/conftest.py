"""
Pytest configuration and shared fixtures for EMSX group route client tests.

This module provides:
- SessionContext / EventDispatcher fixtures writing to an in-memory stream
- A Mock transport standing in for the session
- Isolation from EMSX_* variables in the developer's environment
"""

import io
import os
from unittest.mock import Mock

import pytest

from emsx_route.config import ENV_OVERRIDES
from emsx_route.core.context import SessionContext
from emsx_route.core.dispatcher import EventDispatcher
from emsx_route.core.request_builder import build_group_route_request
from emsx_route.transport.base import Service, Transport
from tests.factories import SERVICE_NAME


@pytest.fixture(autouse=True)
def clean_emsx_env(monkeypatch):
    """
    Keep EMSX_* variables of the developer's shell out of the tests, and
    drop any that a test loaded from a .env file.
    """
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    yield
    for name in ENV_OVERRIDES:
        os.environ.pop(name, None)


@pytest.fixture
def context():
    """Provide a fresh SessionContext."""
    return SessionContext()


@pytest.fixture
def output():
    """Provide an in-memory console stream."""
    return io.StringIO()


@pytest.fixture
def session():
    """
    Provide a Mock transport.

    get_service() returns a Service handle and send_request() returns the
    correlation id it was given, like a real session.
    """
    transport = Mock(spec=Transport)
    transport.get_service.side_effect = lambda name: Service(name)
    transport.send_request.side_effect = lambda request, correlation_id: correlation_id
    transport.open_service_async.return_value = True
    return transport


@pytest.fixture
def dispatcher(context, output):
    """Provide an EventDispatcher building the default group route request."""
    return EventDispatcher(context, SERVICE_NAME, build_group_route_request, stream=output)
