"""
EMSX Group Route Client - example client for the EMSX trading-session API

This package routes several existing EMSX orders to one broker in a single
"group route" request and prints the asynchronous responses as they arrive.

Modules:
    core: Event model, session context, console sink and event dispatcher
    transport: Session transports (simulated in-process broker, blpapi)
    controller: Session lifecycle (connect, wait for operator, stop)
    config: Settings loading from config.yaml and environment
"""

__version__ = "0.1.0"
__author__ = "EMSX Examples Team"
