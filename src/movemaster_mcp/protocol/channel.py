"""Serialized command dispatch over a line-framed transport.

The protocol carries no request identifiers, so a response can only be
matched to a request if at most one request is outstanding. The channel
enforces that: overlapping use raises :class:`ProtocolViolation` instead of
writing a second command.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from ..config import RESPONSE_TIMEOUT_S, SETTLE_DELAY_S
from ..errors import (
    Disconnected,
    PortNotOpen,
    ProtocolViolation,
    ResponseTimeout,
    WriteFailed,
)
from .framing import ResponseFramer, encode_line

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the channel needs from an opened byte stream."""

    @property
    def connected(self) -> bool: ...

    def write(self, data: bytes) -> int: ...


class CommandChannel:
    """A single lane of commands to one device.

    ``feed`` must be called on the event loop thread with every chunk the
    transport receives.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        response_timeout: float = RESPONSE_TIMEOUT_S,
        settle_delay: float = SETTLE_DELAY_S,
    ) -> None:
        self._transport = transport
        self._framer = ResponseFramer()
        self._response_timeout = response_timeout
        self._settle_delay = settle_delay
        self._busy = False
        self._closed = False
        self._invalid_reason: str | None = None
        self._pending: asyncio.Future[str] | None = None

    @property
    def usable(self) -> bool:
        return not self._closed and self._invalid_reason is None

    @property
    def busy(self) -> bool:
        return self._busy

    def feed(self, data: bytes) -> None:
        """Pass received bytes to the framer."""
        if self._closed:
            return
        self._framer.feed(data)

    async def settle(self) -> None:
        """Wait the pacing interval the device needs between commands."""
        await asyncio.sleep(self._settle_delay)

    async def send_no_answer(self, command: str) -> None:
        """Write a command that produces no response, then settle.

        The lane stays held during the settle delay.
        """
        self._acquire()
        try:
            logger.debug("Sending command: %s", command)
            await self._write(command)
            await self.settle()
        finally:
            self._busy = False

    async def send_with_answer(self, command: str) -> str:
        """Write a command and wait for its single response line.

        Raises:
            ResponseTimeout: No response within the bound. The channel is
                desynchronized afterwards and must be reopened.
        """
        self._acquire()
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()
        self._pending = future
        try:
            self._framer.expect(_resolver(future))
            logger.debug("Sending command with answer: %s", command)
            await self._write(command)
            return await asyncio.wait_for(future, self._response_timeout)
        except asyncio.TimeoutError:
            self._framer.reset()
            self._invalidate(f"no response to {command!r}")
            raise ResponseTimeout(
                f"No response to {command!r} within {self._response_timeout}s"
            ) from None
        except asyncio.CancelledError:
            # The command may already be on the wire; its reply would be
            # matched to the next request.
            self._invalidate(f"request {command!r} cancelled")
            raise
        finally:
            self._framer.cancel()
            self._pending = None
            self._busy = False

    def close(self) -> None:
        """Release framer state and fail any waiting request."""
        if self._closed:
            return
        self._closed = True
        self._framer.reset()
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(Disconnected("Channel closed"))

    def _acquire(self) -> None:
        if self._closed:
            raise Disconnected("Channel is closed")
        if self._invalid_reason is not None:
            raise Disconnected(
                f"Channel desynchronized ({self._invalid_reason}); reconnect first"
            )
        if self._busy:
            self._invalidate("overlapping request")
            raise ProtocolViolation("Another command is still outstanding")
        if not self._transport.connected:
            raise PortNotOpen("Port is not open")
        self._busy = True

    def _invalidate(self, reason: str) -> None:
        logger.error("Channel invalidated: %s", reason)
        self._invalid_reason = reason

    async def _write(self, command: str) -> None:
        data = encode_line(command)
        try:
            await asyncio.to_thread(self._transport.write, data)
        except (PortNotOpen, WriteFailed):
            raise
        except OSError as e:
            raise WriteFailed(f"Error writing to port: {e}") from e


def _resolver(future: asyncio.Future[str]):
    def resolve(response: str) -> None:
        if not future.done():
            future.set_result(response)

    return resolve
