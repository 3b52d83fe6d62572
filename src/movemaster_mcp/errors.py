"""Exception types raised by the protocol engine."""

from __future__ import annotations


class MovemasterError(Exception):
    """Base class for every engine failure."""


class PortNotOpen(MovemasterError, ConnectionError):
    """An operation needed the serial port but it is not open."""


class WriteFailed(MovemasterError, OSError):
    """The transport rejected a write."""


class ResponseTimeout(MovemasterError, TimeoutError):
    """No CR-LF terminated response arrived within the bound."""


class MalformedResponse(MovemasterError, ValueError):
    """The device answered with text that could not be parsed."""


class ValidationError(MovemasterError, ValueError):
    """An argument is out of the range the device accepts."""


class NoCachedPose(MovemasterError, RuntimeError):
    """A relative move was requested before any pose is known."""


class ProtocolViolation(MovemasterError, RuntimeError):
    """A second request was issued while one is still outstanding."""


class Disconnected(MovemasterError, ConnectionError):
    """The channel was closed or desynchronized."""


class CommandError(MovemasterError):
    """The device reported a non-zero error code after a command."""

    def __init__(self, code) -> None:
        super().__init__(f"Command errored: {code.name} ({code.value})")
        self.code = code


__all__ = [
    "MovemasterError",
    "PortNotOpen",
    "WriteFailed",
    "ResponseTimeout",
    "MalformedResponse",
    "ValidationError",
    "NoCachedPose",
    "ProtocolViolation",
    "Disconnected",
    "CommandError",
]
