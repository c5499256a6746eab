"""
Process-wide session state shared by the control thread and the delivery thread.

SessionContext carries two independent locks:

- dispatch_lock serializes event handling against the shutdown sequence.
  The stop flag is only ever written while it is held.
- console_lock serializes console flushes (see ConsoleOut).

Keeping them separate means a slow console write never holds up dispatch,
and a long dispatch never holds up console output from the other thread.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Set

from loguru import logger


class SessionContext:
    """
    Shared stop flag and locks for one session.

    Attributes:
        dispatch_lock (threading.RLock): Dispatch serialization lock
        console_lock (threading.Lock): Console flush lock
        pending_subscriptions (Set[str]): Subscription topics awaiting
            confirmation. Not used by the group route flow.

    Examples:
        >>> context = SessionContext()
        >>> context.is_stopped
        False
        >>> context.request_stop()
        >>> context.is_stopped
        True
    """

    def __init__(self):
        self.dispatch_lock = threading.RLock()
        self.console_lock = threading.Lock()
        self.pending_subscriptions: Set[str] = set()
        self._stopped = False

    @contextmanager
    def dispatch_serialized(self) -> Iterator["SessionContext"]:
        """Hold the dispatch lock for the duration of the block."""
        with self.dispatch_lock:
            yield self

    @property
    def stopped(self) -> bool:
        """
        Stop flag without locking.

        Only for callers that already hold the dispatch lock; everyone else
        uses is_stopped.
        """
        return self._stopped

    @property
    def is_stopped(self) -> bool:
        """Stop flag, read under the dispatch lock."""
        with self.dispatch_lock:
            return self._stopped

    def request_stop(self) -> None:
        """Set the stop flag under the dispatch lock. Idempotent."""
        with self.dispatch_lock:
            if not self._stopped:
                self._stopped = True
                logger.info("Session stop requested")
