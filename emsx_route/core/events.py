"""
Event model for the EMSX session layer

This module defines the immutable records a transport hands to the event
dispatcher: categorized event batches, the typed messages they carry, and
the correlation ids that tie responses back to the request that caused them.

Delivery contract:
    A transport delivers events to exactly one consumer entry point, from a
    single delivery thread, one batch at a time. The consumer is never called
    concurrently with itself, but it does run concurrently with the thread
    that owns the session (see SessionContext for how the two coordinate).
"""

import itertools
import threading
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Tuple

from ..exceptions import ElementNotFoundError, InvalidConversionError


# Session status messages
SESSION_CONNECTION_UP = "SessionConnectionUp"
SESSION_STARTED = "SessionStarted"
SESSION_STARTUP_FAILURE = "SessionStartupFailure"
SESSION_TERMINATED = "SessionTerminated"

# Service status messages
SERVICE_OPENED = "ServiceOpened"
SERVICE_OPEN_FAILURE = "ServiceOpenFailure"

# Response messages
ERROR_INFO = "ErrorInfo"
GROUP_ROUTE_EX = "GroupRouteEx"

# Admin messages
SLOW_CONSUMER_WARNING = "SlowConsumerWarning"


class EventCategory(Enum):
    """
    Category of an event batch delivered by the transport.

    Only SESSION_STATUS, SERVICE_STATUS and RESPONSE have dedicated handlers
    in the dispatcher; every other member is reported verbatim.

    Examples:
        >>> EventCategory.RESPONSE
        <EventCategory.RESPONSE: 'response'>

        >>> str(EventCategory.SESSION_STATUS)
        'SESSION_STATUS'
    """

    SESSION_STATUS = "session_status"
    SERVICE_STATUS = "service_status"
    RESPONSE = "response"
    PARTIAL_RESPONSE = "partial_response"
    REQUEST_STATUS = "request_status"
    ADMIN = "admin"
    TIMEOUT = "timeout"
    OTHER = "other"

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"<EventCategory.{self.name}: '{self.value}'>"


_id_counter = itertools.count(1)
_id_lock = threading.Lock()


@dataclass(frozen=True)
class CorrelationId:
    """
    Opaque token linking a submitted request to its response events.

    Identity is the integer value; the optional label is for display only.

    Examples:
        >>> cid = CorrelationId.new()
        >>> cid == CorrelationId(cid.value)
        True
    """

    value: int
    label: Optional[str] = field(default=None, compare=False)

    @classmethod
    def new(cls, label: Optional[str] = None) -> "CorrelationId":
        """Allocate a fresh, process-unique correlation id."""
        with _id_lock:
            value = next(_id_counter)
        return cls(value, label)

    def __str__(self) -> str:
        if self.label:
            return f"[ value={self.value} label={self.label} ]"
        return f"[ value={self.value} ]"


@dataclass(frozen=True)
class Message:
    """
    One typed record inside an event batch.

    Attributes:
        message_type (str): Name of the message type (e.g. 'SessionStarted')
        elements (Mapping[str, Any]): Ordered element values. Values are
            scalars, lists, or nested mappings.
        correlation_ids (Tuple[CorrelationId, ...]): Requests this message
            answers, empty for session and service status messages

    Raises:
        TypeError: If message_type is not a non-empty string
    """

    message_type: str
    elements: Mapping[str, Any] = field(default_factory=dict)
    correlation_ids: Tuple[CorrelationId, ...] = ()

    def __post_init__(self):
        if not self.message_type or not isinstance(self.message_type, str):
            raise TypeError("message_type must be non-empty string")
        # Freeze a private copy so the sender cannot mutate a delivered message
        object.__setattr__(self, "elements", MappingProxyType(dict(self.elements)))
        object.__setattr__(self, "correlation_ids", tuple(self.correlation_ids))

    def has_element(self, name: str) -> bool:
        return name in self.elements

    def get_element(self, name: str) -> Any:
        """
        Return the raw value of an element.

        Raises:
            ElementNotFoundError: If the message has no such element
        """
        try:
            return self.elements[name]
        except KeyError:
            raise ElementNotFoundError(
                f"Element '{name}' not found in {self.message_type} message"
            ) from None

    def get_element_as_int(self, name: str) -> int:
        """
        Return an element value as an integer.

        Raises:
            ElementNotFoundError: If the message has no such element
            InvalidConversionError: If the value is not an integer
        """
        value = self.get_element(name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidConversionError(
                f"Element '{name}' of {self.message_type} is not an integer: {value!r}"
            )
        return value

    def get_element_as_string(self, name: str) -> str:
        """
        Return an element value as a string.

        Raises:
            ElementNotFoundError: If the message has no such element
            InvalidConversionError: If the value is a list or nested element
        """
        value = self.get_element(name)
        if isinstance(value, (list, tuple, Mapping)):
            raise InvalidConversionError(
                f"Element '{name}' of {self.message_type} is not a scalar"
            )
        return str(value)

    def __str__(self) -> str:
        return format_elements(self.message_type, self.elements)


def format_elements(type_name: str, elements: Mapping[str, Any]) -> str:
    """Render a named element tree in the indented "Name = { ... }" layout."""
    lines = [f"{type_name} = {{"]
    for name, value in elements.items():
        lines.extend(_format_element(name, value, 1))
    lines.append("}")
    return "\n".join(lines)


def _format_element(name: str, value: Any, depth: int) -> list:
    pad = "    " * depth
    if isinstance(value, Mapping):
        lines = [f"{pad}{name} = {{"]
        for child_name, child in value.items():
            lines.extend(_format_element(child_name, child, depth + 1))
        lines.append(f"{pad}}}")
        return lines
    if isinstance(value, (list, tuple)):
        lines = [f"{pad}{name}[] = {{"]
        for item in value:
            if isinstance(item, Mapping):
                lines.append(f"{pad}    {name} = {{")
                for child_name, child in item.items():
                    lines.extend(_format_element(child_name, child, depth + 2))
                lines.append(f"{pad}    }}")
            else:
                lines.append(f"{pad}    {_format_scalar(item)}")
        lines.append(f"{pad}}}")
        return lines
    return [f"{pad}{name} = {_format_scalar(value)}"]


def _format_scalar(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)


@dataclass(frozen=True)
class Event:
    """
    Immutable, categorized batch of messages delivered by a transport.

    Iterating an event yields every message exactly once, in delivery order.

    Attributes:
        category (EventCategory): Category of the batch
        messages (Tuple[Message, ...]): Messages in delivery order

    Raises:
        TypeError: If category is not an EventCategory or a message is not
            a Message instance

    Examples:
        >>> event = Event(EventCategory.SESSION_STATUS, (Message(SESSION_STARTED),))
        >>> [m.message_type for m in event]
        ['SessionStarted']
    """

    category: EventCategory
    messages: Tuple[Message, ...] = ()

    def __post_init__(self):
        if not isinstance(self.category, EventCategory):
            raise TypeError(
                f"category must be EventCategory enum, got {type(self.category).__name__}"
            )
        messages = tuple(self.messages)
        for message in messages:
            if not isinstance(message, Message):
                raise TypeError(
                    f"messages must contain Message instances, got {type(message).__name__}"
                )
        object.__setattr__(self, "messages", messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)

    def __str__(self) -> str:
        return f"Event({self.category.name}, {len(self.messages)} message(s))"
