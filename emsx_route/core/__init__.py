"""
Core module for the group route session.

This module provides the session-side building blocks:
- events: Event categories, messages and correlation ids
- console: Atomic buffered console output (ConsoleOut)
- context: Shared stop flag and locks (SessionContext)
- dispatcher: Event routing state machine (EventDispatcher)
- models / request_builder: The GroupRouteEx payload and its results
"""

from .console import ConsoleOut
from .context import SessionContext
from .events import CorrelationId, Event, EventCategory, Message

__all__ = [
    "ConsoleOut",
    "SessionContext",
    "CorrelationId",
    "Event",
    "EventCategory",
    "Message",
]
