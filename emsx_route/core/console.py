"""
Console sink shared by the main thread and the event delivery thread.

Each ConsoleOut collects text in a private buffer and writes the whole buffer
to the output stream in one step, under the console lock, when its scope
ends. Output from concurrent callers is therefore never interleaved inside a
buffer; which buffer reaches the stream first is whoever takes the lock first.
"""

import io
import sys
import threading
from typing import Optional, TextIO

from loguru import logger


class ConsoleOut:
    """
    Buffered console writer flushed atomically on scope exit.

    Attributes:
        lock (threading.Lock): Console lock shared by all writers
        stream (TextIO, optional): Target stream. None means the current
            sys.stdout, resolved at flush time.

    Examples:
        >>> lock = threading.Lock()
        >>> with ConsoleOut(lock) as out:
        ...     out.write("Success: ")
        ...     out.writeline("3734835, 101")
        Success: 3734835, 101
    """

    def __init__(self, lock: threading.Lock, stream: Optional[TextIO] = None):
        self.lock = lock
        self.stream = stream
        self._buffer = io.StringIO()

    def write(self, text: str) -> "ConsoleOut":
        """Append text to the buffer. Returns self so calls can be chained."""
        self._buffer.write(str(text))
        return self

    def writeline(self, text: str = "") -> "ConsoleOut":
        """Append text followed by a newline."""
        self._buffer.write(f"{text}\n")
        return self

    def flush(self) -> None:
        """
        Write the accumulated buffer to the stream under the console lock.

        The buffer is cleared afterwards. Failures of the underlying stream
        are logged and not raised.
        """
        text = self._buffer.getvalue()
        self._buffer = io.StringIO()
        if not text:
            return

        with self.lock:
            stream = self.stream if self.stream is not None else sys.stdout
            try:
                stream.write(text)
                stream.flush()
            except (OSError, ValueError) as e:
                logger.debug(f"Console write failed: {e}")

    def __enter__(self) -> "ConsoleOut":
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        self.flush()
        return False

    @classmethod
    def emit(cls, lock: threading.Lock, text: str,
             stream: Optional[TextIO] = None) -> None:
        """Write a single line as its own atomic buffer."""
        with cls(lock, stream) as out:
            out.writeline(text)
