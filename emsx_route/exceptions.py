"""
Exception hierarchy for the EMSX group route client.

TransportError and its subclasses stand for failures raised by the session
layer (the "library exceptions" of the vendor SDK). The dispatcher and the
command line entry point catch them; nothing else is expected to.
"""


class EmsxRouteError(Exception):
    """Base class for all errors raised by this package."""
    pass


class TransportError(EmsxRouteError):
    """
    Raised by the transport layer while talking to the session.

    Attributes:
        description (str): Human readable description reported on the console
    """

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description


class ElementNotFoundError(TransportError):
    """Raised when a message does not carry a requested element."""
    pass


class InvalidConversionError(TransportError):
    """Raised when an element value cannot be read as the requested type."""
    pass


class ServiceNotAvailableError(TransportError):
    """Raised when a request targets a service that has not been opened."""
    pass


class ConfigError(EmsxRouteError):
    """
    Raised when configuration is missing or invalid.

    This exception indicates a problem with config.yaml or the EMSX_*
    environment overrides that must be resolved before a session can start.
    """
    pass
