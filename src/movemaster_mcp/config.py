"""
Central configuration for line settings, pacing and timeouts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class LineConfig:
    """Serial line settings expected by the drive unit."""

    baudrate: int = 9600
    bytesize: int = 7
    stopbits: int = 2
    parity: str = "E"
    rts: bool = True
    dtr: bool = True
    xonxoff: bool = True


DEFAULT_LINE_CONFIG = LineConfig()

# The drive unit has no per-command acknowledgement and a small input buffer,
# so fire-and-forget commands are paced.
SETTLE_DELAY_S: float = float(os.getenv("MOVEMASTER_SETTLE_DELAY", "0.1"))

# Upper bound on waiting for a CR-LF terminated response (seconds).
RESPONSE_TIMEOUT_S: float = float(os.getenv("MOVEMASTER_RESPONSE_TIMEOUT", "5.0"))

# Reader thread poll interval (seconds).
READ_TIMEOUT_S: float = 0.05

DEFAULT_PORT: str | None = os.getenv("MOVEMASTER_PORT") or None
LOG_LEVEL: str = os.getenv("MOVEMASTER_LOG_LEVEL", "INFO").upper()
