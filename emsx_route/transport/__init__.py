"""
Transport module for EMSX sessions.

This module handles:
- The transport contract (Transport, Service, Request)
- SimulatedTransport: in-process session with a simulated broker
- BlpapiTransport: Bloomberg API session (optional blpapi dependency,
  import emsx_route.transport.blpapi_transport explicitly)
"""

from .base import Request, Service, Transport
from .simulated import SimulatedBroker, SimulatedTransport

__all__ = [
    "Request",
    "Service",
    "Transport",
    "SimulatedBroker",
    "SimulatedTransport",
]
