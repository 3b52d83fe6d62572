"""Line framing for the drive unit's textual protocol.

Message layout::

    +--------------------------+----------+
    |  ASCII command/response  |  CR  LF  |
    |  variable length         |  2 bytes |
    +--------------------------+----------+

- Commands are ASCII mnemonics with comma-separated arguments.
- Responses carry no identifier, so each one must be matched to the single
  request waiting for it.
- The serial port delivers arbitrary chunks: a response may be split over
  several chunks, and one chunk may hold the tail of one line and the start
  of the next.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..errors import ProtocolViolation

logger = logging.getLogger(__name__)

TERMINATOR = b"\r\n"
ENCODING = "ascii"

ResponseCallback = Callable[[str], None]


def encode_line(command: str) -> bytes:
    """Encode a command as a CR-LF terminated byte string."""
    return command.encode(ENCODING) + TERMINATOR


class ResponseFramer:
    """Accumulates received bytes and hands out complete responses.

    One consumer at a time registers with :meth:`expect`. Each CR-LF found in
    the buffer completes exactly one response; bytes after the terminator stay
    buffered for the next response.

    Usage::

        framer = ResponseFramer()
        framer.expect(on_response)
        framer.feed(b"+012.3,")
        framer.feed(b" .5\\r\\n")   # on_response("+012.3, .5")
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._waiter: ResponseCallback | None = None

    @property
    def pending(self) -> bool:
        """True while a consumer is waiting for a response."""
        return self._waiter is not None

    @property
    def buffered(self) -> bytes:
        return bytes(self._buffer)

    def expect(self, callback: ResponseCallback) -> None:
        """Register the consumer of the next complete response.

        Raises:
            ProtocolViolation: If a consumer is already registered.
        """
        if self._waiter is not None:
            raise ProtocolViolation("A response consumer is already registered")
        self._waiter = callback

    def cancel(self) -> None:
        """Drop the registered consumer without delivering anything."""
        self._waiter = None

    def feed(self, data: bytes) -> None:
        """Append a received chunk and deliver any completed responses."""
        self._buffer.extend(data)
        while True:
            end = self._buffer.find(TERMINATOR)
            if end < 0:
                return
            line = bytes(self._buffer[:end])
            del self._buffer[: end + len(TERMINATOR)]
            self._deliver(line.decode(ENCODING, errors="replace").strip())

    def reset(self) -> None:
        """Clear the buffer and the registered consumer."""
        self._buffer.clear()
        self._waiter = None

    def _deliver(self, response: str) -> None:
        waiter = self._waiter
        if waiter is None:
            logger.warning("Discarding unsolicited response: %r", response)
            return
        self._waiter = None
        logger.debug("Response received: %r", response)
        waiter(response)
